"""
Auth business logic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.config import Settings
from core.db import PoolProvider
from core.errors import ConflictError, Forbidden, Unauthorized, ValidationError

from . import repository, schemas, security


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_user_response(user_row: dict) -> schemas.UserResponse:
    organization_id = user_row.get("organization_id")
    return schemas.UserResponse(
        id=int(user_row["id"]),
        name=user_row.get("name"),
        email=str(user_row["email"]),
        role=schemas.Role(str(user_row["role"])),
        organization_id=int(organization_id) if organization_id is not None else None,
        is_active=bool(user_row["is_active"]),
        created_at=user_row["created_at"],
    )


async def _issue_token_pair(
    db: PoolProvider,
    settings: Settings,
    *,
    user_row: dict,
    user_agent: str | None = None,
    ip_address: str | None = None,
    replaced_token_id: int | None = None,
) -> schemas.TokenPairResponse:
    user_id = int(user_row["id"])

    access_token = security.build_access_token(
        settings,
        user_id=user_id,
        email=str(user_row["email"]),
        role=str(user_row["role"]),
        organization_id=user_row.get("organization_id"),
    )
    raw_refresh_token = security.build_refresh_token()
    refresh_hash = security.hash_refresh_token(raw_refresh_token)
    expires_at = _utc_now() + timedelta(days=settings.refresh_token_expire_days)

    refresh_row = await repository.insert_refresh_token(
        db,
        user_id=user_id,
        token_hash=refresh_hash,
        expires_at=expires_at,
        user_agent=user_agent,
        ip_address=ip_address,
    )

    if replaced_token_id is not None:
        await repository.set_refresh_token_replacement(
            db,
            old_token_id=replaced_token_id,
            new_token_id=int(refresh_row["id"]),
        )

    return schemas.TokenPairResponse(
        access_token=access_token,
        refresh_token=raw_refresh_token,
    )


async def register(
    db: PoolProvider,
    settings: Settings,
    payload: schemas.RegisterRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.AuthResponse:
    # New accounts start without an organization; an admin assigns one.
    if payload.role.value not in schemas.SELF_REGISTER_ROLES:
        raise Forbidden(f"{payload.role.value} accounts cannot be self-registered.")

    existing = await repository.get_user_by_email(db, payload.email)
    if existing is not None:
        raise ConflictError("Email is already registered.")

    password_hash = security.hash_password(payload.password)
    user_row = await repository.create_user(
        db,
        name=payload.name,
        email=payload.email,
        password_hash=password_hash,
        role=payload.role.value,
    )

    tokens = await _issue_token_pair(
        db,
        settings,
        user_row=user_row,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return schemas.AuthResponse(user=_to_user_response(user_row), tokens=tokens)


async def login(
    db: PoolProvider,
    settings: Settings,
    payload: schemas.LoginRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.AuthResponse:
    user_row = await repository.get_user_by_email(db, payload.email)
    if user_row is None:
        raise Unauthorized("Invalid email or password.")

    if not bool(user_row.get("is_active", False)):
        raise Forbidden("User is inactive.")

    is_valid = security.verify_password(payload.password, str(user_row.get("password_hash") or ""))
    if not is_valid:
        raise Unauthorized("Invalid email or password.")

    tokens = await _issue_token_pair(
        db,
        settings,
        user_row=user_row,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    return schemas.AuthResponse(user=_to_user_response(user_row), tokens=tokens)


async def refresh_tokens(
    db: PoolProvider,
    settings: Settings,
    payload: schemas.RefreshRequest,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> schemas.TokenPairResponse:
    incoming_refresh = (payload.refresh_token or "").strip()
    if not incoming_refresh:
        raise ValidationError("refresh_token is required.")

    incoming_hash = security.hash_refresh_token(incoming_refresh)
    old_token_row = await repository.get_refresh_token_by_hash(db, incoming_hash)
    if old_token_row is None:
        raise Unauthorized("Invalid refresh token.")

    if old_token_row.get("revoked_at") is not None:
        raise Unauthorized("Refresh token is revoked.")

    token_id = int(old_token_row["id"])
    expires_at = old_token_row.get("expires_at")
    if not isinstance(expires_at, datetime) or expires_at <= _utc_now():
        await repository.revoke_refresh_token_by_id(db, token_id)
        raise Unauthorized("Refresh token is expired.")

    user_row = await repository.get_user_by_id(db, int(old_token_row["user_id"]))
    if user_row is None or not bool(user_row.get("is_active", False)):
        await repository.revoke_refresh_token_by_id(db, token_id)
        raise Unauthorized("Invalid refresh token owner.")

    await repository.rotate_refresh_token(db, token_id)

    return await _issue_token_pair(
        db,
        settings,
        user_row=user_row,
        user_agent=user_agent,
        ip_address=ip_address,
        replaced_token_id=token_id,
    )


async def logout(
    db: PoolProvider,
    payload: schemas.LogoutRequest,
    *,
    current_user_id: int,
) -> dict[str, bool]:
    refresh_token = (payload.refresh_token or "").strip()
    if refresh_token:
        token_hash = security.hash_refresh_token(refresh_token)
        await repository.revoke_refresh_token_by_hash(db, token_hash)
        return {"success": True}

    await repository.revoke_all_refresh_tokens_for_user(db, current_user_id)
    return {"success": True}


async def me(db: PoolProvider, user_id: int) -> schemas.UserResponse:
    user_row = await repository.get_user_by_id(db, user_id)
    if user_row is None:
        raise Unauthorized("User not found.")
    return _to_user_response(user_row)
