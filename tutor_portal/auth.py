"""
Password hashing and signed tokens for portal sign-in and password resets.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from tutor_portal.config import Settings, get_settings
from tutor_portal.db import UserRecord

ACCESS_TOKEN = "access"
PASSWORD_RESET_TOKEN = "password_reset"
MIN_PASSWORD_LENGTH = 8


class InvalidTokenError(Exception):
    """Raised when a token is malformed, expired or of the wrong type."""


def hash_password(password: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    # Bcrypt only considers the first 72 bytes.
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    password_bytes = password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(password_bytes, password_hash.encode("utf-8"))
    except ValueError:
        return False


def _fingerprint(password_hash: str) -> str:
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


def _encode(claims: Dict[str, Any], expires_in: timedelta, settings: Settings) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user: UserRecord, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return _encode(
        {"sub": user.id, "email": user.email, "type": ACCESS_TOKEN},
        timedelta(minutes=settings.access_token_expire_minutes),
        settings,
    )


def create_password_reset_token(
    user: UserRecord, settings: Optional[Settings] = None
) -> str:
    """
    Issue a reset token bound to the user's current password hash, so it
    stops working as soon as the password changes.
    """
    settings = settings or get_settings()
    return _encode(
        {
            "sub": user.id,
            "type": PASSWORD_RESET_TOKEN,
            "fp": _fingerprint(user.password_hash),
        },
        timedelta(minutes=settings.reset_token_expire_minutes),
        settings,
    )


def decode_token(
    token: str, *, expected_type: str = ACCESS_TOKEN, settings: Optional[Settings] = None
) -> Dict[str, Any]:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise InvalidTokenError("Could not validate credentials") from exc
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise InvalidTokenError("Invalid token type")
    return payload


def reset_token_matches(payload: Dict[str, Any], user: UserRecord) -> bool:
    return payload.get("fp") == _fingerprint(user.password_hash)
