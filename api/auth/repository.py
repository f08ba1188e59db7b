"""
Auth persistence helpers (users and refresh tokens).
"""

from __future__ import annotations

from datetime import datetime, timezone

from core.db import PoolProvider

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        name TEXT,
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'recruiter',
        organization_id INTEGER,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS users_email_lower_idx ON users (lower(email))",
    "CREATE INDEX IF NOT EXISTS users_organization_idx ON users (organization_id)",
    """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        token_hash TEXT NOT NULL UNIQUE,
        expires_at TIMESTAMPTZ NOT NULL,
        revoked_at TIMESTAMPTZ,
        replaced_by_token_id INTEGER,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        last_used_at TIMESTAMPTZ,
        user_agent TEXT,
        ip_address TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS refresh_tokens_user_idx ON refresh_tokens (user_id)",
)

_USER_COLUMNS = "id, name, email, password_hash, role, organization_id, is_active, created_at, updated_at"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def ensure_schema(db: PoolProvider) -> None:
    await db.execute_script(SCHEMA)


async def create_user(
    db: PoolProvider,
    *,
    email: str,
    password_hash: str,
    role: str,
    name: str | None = None,
    organization_id: int | None = None,
    is_active: bool = True,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO users (name, email, password_hash, role, organization_id, is_active)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING {_USER_COLUMNS}
        """,
        name,
        normalize_email(email),
        password_hash,
        role,
        organization_id,
        is_active,
    )
    if row is None:
        raise RuntimeError("Failed to create user.")
    return row


async def get_user_by_email(db: PoolProvider, email: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {_USER_COLUMNS}
        FROM users
        WHERE lower(email) = lower($1)
        """,
        normalize_email(email),
    )


async def get_user_by_id(db: PoolProvider, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {_USER_COLUMNS}
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def insert_refresh_token(
    db: PoolProvider,
    *,
    user_id: int,
    token_hash: str,
    expires_at: datetime,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> dict:
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)

    row = await db.fetch_one(
        """
        INSERT INTO refresh_tokens (user_id, token_hash, expires_at, user_agent, ip_address)
        VALUES ($1, $2, $3, $4, $5)
        RETURNING id, user_id, token_hash, expires_at, revoked_at,
                  replaced_by_token_id, created_at, last_used_at, user_agent, ip_address
        """,
        user_id,
        token_hash,
        expires_at,
        user_agent,
        ip_address,
    )
    if row is None:
        raise RuntimeError("Failed to insert refresh token.")
    return row


async def get_refresh_token_by_hash(db: PoolProvider, token_hash: str) -> dict | None:
    return await db.fetch_one(
        """
        SELECT id, user_id, token_hash, expires_at, revoked_at,
               replaced_by_token_id, created_at, last_used_at, user_agent, ip_address
        FROM refresh_tokens
        WHERE token_hash = $1
        """,
        token_hash,
    )


async def rotate_refresh_token(db: PoolProvider, token_id: int) -> None:
    await db.execute(
        """
        UPDATE refresh_tokens
        SET last_used_at = now(),
            revoked_at = COALESCE(revoked_at, now())
        WHERE id = $1
        """,
        token_id,
    )


async def revoke_refresh_token_by_hash(db: PoolProvider, token_hash: str) -> bool:
    row = await db.fetch_one(
        """
        UPDATE refresh_tokens
        SET revoked_at = now()
        WHERE token_hash = $1
          AND revoked_at IS NULL
        RETURNING id
        """,
        token_hash,
    )
    return row is not None


async def revoke_refresh_token_by_id(db: PoolProvider, token_id: int) -> bool:
    row = await db.fetch_one(
        """
        UPDATE refresh_tokens
        SET revoked_at = now()
        WHERE id = $1
          AND revoked_at IS NULL
        RETURNING id
        """,
        token_id,
    )
    return row is not None


async def revoke_all_refresh_tokens_for_user(db: PoolProvider, user_id: int) -> None:
    await db.execute(
        """
        UPDATE refresh_tokens
        SET revoked_at = now()
        WHERE user_id = $1
          AND revoked_at IS NULL
        """,
        user_id,
    )


async def set_refresh_token_replacement(db: PoolProvider, *, old_token_id: int, new_token_id: int) -> None:
    await db.execute(
        """
        UPDATE refresh_tokens
        SET replaced_by_token_id = $2
        WHERE id = $1
        """,
        old_token_id,
        new_token_id,
    )
