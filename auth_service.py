"""
Login, registration and password changes.

Login is two calls with no server-side state between them. `login` checks
the password and either returns a token or, for MFA users, a challenge
carrying the user id. `verify_login_token` takes that id plus a TOTP code
and re-derives everything it needs from storage.
"""

import logging
from typing import Optional

from pydantic import BaseModel, ValidationError

import mfa
from database import create_document, get_collection, now, parse_object_id
from errors import Conflict, Internal, InvalidCredentials, InvalidInput, InvalidMfaCode, NotFound
from schemas import RoleName, User
from security import create_access_token, dummy_verify, hash_password, verify_password

logger = logging.getLogger(__name__)


class LoginResult(BaseModel):
    access_token: Optional[str] = None
    token_type: Optional[str] = None
    mfa_required: bool = False
    user_id: Optional[str] = None


def resolve_role(role_name: Optional[str]) -> dict:
    try:
        name = RoleName(role_name)
    except ValueError:
        raise InvalidInput("Invalid role specified")
    role = get_collection("role").find_one({"name": name.value})
    if not role:
        raise InvalidInput("Invalid role specified")
    return role


def role_name_for(user: dict) -> RoleName:
    role = get_collection("role").find_one({"_id": user.get("role_id")})
    if not role:
        logger.error("User %s references missing role %s", user.get("_id"), user.get("role_id"))
        raise Internal()
    return RoleName(role["name"])


def issue_token(user: dict) -> LoginResult:
    token = create_access_token(str(user["_id"]), role_name_for(user))
    return LoginResult(access_token=token, token_type="bearer")


def register(username: str, email: str, password: str, role_name: str) -> str:
    if not username or not email or not password:
        raise InvalidInput("Please provide username, email and password")

    users = get_collection("user")
    if users.find_one({"$or": [{"email": email}, {"username": username}]}):
        raise Conflict("User or email already exists")

    role = resolve_role(role_name)

    try:
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role_id=role["_id"],
        )
    except ValidationError:
        raise InvalidInput("Invalid username or email")

    doc = create_document("user", user)
    logger.info("Registered user %s with role %s", username, role["name"])
    return str(doc["_id"])


def login(username: str, password: str) -> LoginResult:
    user = get_collection("user").find_one({"username": username})
    if not user:
        # same bcrypt cost as a real check so timing does not reveal the username
        dummy_verify()
    if not user or not verify_password(password, user.get("password_hash")):
        logger.warning("Failed login for username %r", username)
        raise InvalidCredentials()

    if user.get("mfa_enabled"):
        return LoginResult(mfa_required=True, user_id=str(user["_id"]))

    return issue_token(user)


def verify_login_token(user_id: str, code: str) -> LoginResult:
    oid = parse_object_id(user_id)
    user = get_collection("user").find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFound("User not found")

    try:
        mfa.verify(user.get("mfa_secret") if user.get("mfa_enabled") else None, code)
    except InvalidMfaCode:
        logger.warning("Invalid MFA login code for user %s", user_id)
        raise

    return issue_token(user)


def update_password(user_id: str, current_password: Optional[str], new_password: Optional[str]) -> None:
    if not current_password or not new_password:
        raise InvalidInput("Please provide current and new passwords")

    users = get_collection("user")
    oid = parse_object_id(user_id)
    user = users.find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFound("User not found")

    if not verify_password(current_password, user.get("password_hash")):
        raise InvalidCredentials("Incorrect current password")

    users.update_one(
        {"_id": oid},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": now()}},
    )
    logger.info("Password updated for user %s", user_id)
