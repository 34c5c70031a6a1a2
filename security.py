"""
Password hashing, token issuing and request authentication.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel

from errors import Forbidden, Unauthenticated
from schemas import RoleName

logger = logging.getLogger(__name__)

# Security settings
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """Identity decoded from a verified bearer token."""
    user_id: str
    role: RoleName


# Passwords

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def dummy_verify() -> None:
    pwd_context.dummy_verify()


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # unrecognised or corrupt hash
        return False


# Tokens

def create_access_token(user_id: str, role: RoleName, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": user_id, "role": RoleName(role).value, "exp": expire}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Principal:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.PyJWTError:
        raise Unauthenticated()

    user_id = payload.get("sub")
    try:
        role = RoleName(payload.get("role"))
    except ValueError:
        raise Unauthenticated()
    if not user_id:
        raise Unauthenticated()
    return Principal(user_id=user_id, role=role)


# Dependencies

def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthenticated("Not authenticated")
    return decode_access_token(credentials.credentials)


def require_roles(*roles: RoleName):
    allowed = frozenset(roles)

    def checker(principal: Principal = Depends(get_current_user)) -> Principal:
        if principal.role not in allowed:
            logger.warning("User %s with role %s denied, requires one of %s",
                           principal.user_id, principal.role.value, sorted(r.value for r in allowed))
            raise Forbidden("role_not_allowed")
        return principal
    return checker
