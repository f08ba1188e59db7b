"""
Auth security helpers: password hashing and JWT access tokens.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from typing import Any

import bcrypt
import jwt

from core.config import Settings

logger = logging.getLogger(__name__)

_ephemeral_secret: str | None = None


class AuthSecurityError(RuntimeError):
    pass


def jwt_secret(settings: Settings) -> str:
    """
    Signing secret from JWT_SECRET.

    Production requires it. Elsewhere a random per-process secret is used so
    local runs work; tokens then die with the process.
    """
    global _ephemeral_secret
    if settings.jwt_secret:
        return settings.jwt_secret
    if settings.is_production:
        raise AuthSecurityError("JWT_SECRET is not configured.")
    if _ephemeral_secret is None:
        _ephemeral_secret = secrets.token_urlsafe(48)
        logger.warning("JWT_SECRET is not set; using a random per-process secret.")
    return _ephemeral_secret


def now_epoch_s() -> int:
    return int(time.time())


def hash_password(plain_password: str) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise AuthSecurityError("Password is empty.")
    return bcrypt.hashpw(password, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        return False


def build_access_token(
    settings: Settings,
    *,
    user_id: int,
    email: str,
    role: str,
    organization_id: int | None = None,
    expires_in_s: int | None = None,
) -> str:
    issued_at = now_epoch_s()
    lifetime = expires_in_s if expires_in_s is not None else settings.access_token_expire_minutes * 60

    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "org": organization_id,
        "type": "access",
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(payload, jwt_secret(settings), algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Access token is empty.")

    try:
        payload = jwt.decode(raw, jwt_secret(settings), algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthSecurityError("Access token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid access token.") from exc

    token_type = str(payload.get("type") or "").strip().lower()
    if token_type != "access":
        raise AuthSecurityError("Token is not an access token.")

    return payload


def build_refresh_token() -> str:
    # URL-safe random string for client storage/transmission.
    return secrets.token_urlsafe(48)


def hash_refresh_token(raw_refresh_token: str) -> str:
    token = (raw_refresh_token or "").encode("utf-8")
    if not token:
        raise AuthSecurityError("Refresh token is empty.")
    return hashlib.sha256(token).hexdigest()
