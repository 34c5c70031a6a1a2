"""
TOTP multi-factor authentication.

Setup is a two-step cycle: `generate_secret` stores a pending secret and
hands back the provisioning artifacts, `verify_and_enable` promotes it once
the user proves their authenticator produces matching codes. Login step two
uses `verify` against the confirmed secret only.
"""

import base64
import io
import logging
import os
from typing import Optional

import pyotp
import qrcode
from pydantic import BaseModel
from pymongo import ReturnDocument

from database import get_collection, now, parse_object_id
from errors import InvalidMfaCode, NotFound, NotReady

logger = logging.getLogger(__name__)

MFA_ISSUER = os.getenv("MFA_ISSUER", "PixelForge Nexus")
# codes from the previous and next 30 second step are accepted
VALID_WINDOW = 1


class MfaSetup(BaseModel):
    secret: str
    uri: str
    qr_code_data_uri: str


def qr_code_data_uri(uri: str) -> str:
    img = qrcode.make(uri)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


def verify(secret: Optional[str], code: Optional[str]) -> bool:
    """Check `code` against a confirmed secret. Raises InvalidMfaCode on mismatch."""
    code = (code or "").strip()
    if not secret or not code.isdigit():
        raise InvalidMfaCode()
    if not pyotp.TOTP(secret).verify(code, valid_window=VALID_WINDOW):
        raise InvalidMfaCode()
    return True


def generate_secret(user_id: str) -> MfaSetup:
    users = get_collection("user")
    oid = parse_object_id(user_id)
    user = users.find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFound("User not found")

    secret = pyotp.random_base32()
    uri = pyotp.totp.TOTP(secret).provisioning_uri(name=user["username"], issuer_name=MFA_ISSUER)

    # replaces any earlier pending secret, confirmed secret stays untouched
    users.update_one({"_id": oid}, {"$set": {"mfa_temp_secret": secret, "updated_at": now()}})
    logger.info("Generated pending MFA secret for user %s", user_id)

    return MfaSetup(secret=secret, uri=uri, qr_code_data_uri=qr_code_data_uri(uri))


def verify_and_enable(user_id: str, code: Optional[str]) -> None:
    users = get_collection("user")
    oid = parse_object_id(user_id)
    user = users.find_one({"_id": oid}) if oid else None
    if not user:
        raise NotFound("User not found")

    pending = user.get("mfa_temp_secret")
    if not pending:
        raise NotReady()

    try:
        verify(pending, code)
    except InvalidMfaCode:
        logger.warning("Invalid MFA setup code for user %s", user_id)
        raise

    # only promotes if the pending secret we checked is still the one stored
    promoted = users.find_one_and_update(
        {"_id": oid, "mfa_temp_secret": pending},
        {
            "$set": {"mfa_secret": pending, "mfa_enabled": True, "updated_at": now()},
            "$unset": {"mfa_temp_secret": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    if promoted is None:
        raise NotReady("MFA secret changed during verification, generate a new one")
    logger.info("MFA enabled for user %s", user_id)
