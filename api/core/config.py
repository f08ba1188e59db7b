"""
Process configuration read from environment variables.

Settings are read once per process (`get_settings()` is cached). Tests build
their own `Settings(...)` and pass it to `create_app()`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

PRODUCTION = "production"

SCHEMA_POLICY_CONTINUE = "continue"
SCHEMA_POLICY_FAIL_FAST = "fail_fast"

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "https://ats-orcin.vercel.app",
    "https://ats-software-frontend.vercel.app",
    "https://cms-organization.vercel.app",
)


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    port: int = 8080

    database_url: str = ""
    db_host: str = ""
    db_port: int = 5432
    db_user: str = ""
    db_password: str = ""
    db_database: str = ""
    db_pool_min: int = 1
    db_pool_max: int = 10
    db_command_timeout: int = 30

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30

    allowed_origins: tuple[str, ...] = field(default_factory=tuple)
    max_body_bytes: int = 1024 * 1024
    schema_init_policy: str = SCHEMA_POLICY_CONTINUE
    test_db_retries: int = 0

    log_level: str = "INFO"
    log_format: str = "plain"

    @classmethod
    def from_env(cls) -> "Settings":
        policy = _env_str("SCHEMA_INIT_POLICY", SCHEMA_POLICY_CONTINUE).lower()
        if policy not in (SCHEMA_POLICY_CONTINUE, SCHEMA_POLICY_FAIL_FAST):
            policy = SCHEMA_POLICY_CONTINUE

        return cls(
            environment=_env_str("APP_ENV", "development").lower(),
            port=_env_int("PORT", 8080),
            database_url=_env_str("DATABASE_URL"),
            db_host=_env_str("DB_HOST"),
            db_port=_env_int("DB_PORT", 5432),
            db_user=_env_str("DB_USER"),
            db_password=os.environ.get("DB_PASSWORD", ""),
            db_database=_env_str("DB_DATABASE"),
            db_pool_min=_env_int("DB_POOL_MIN", 1),
            db_pool_max=_env_int("DB_POOL_MAX", 10),
            db_command_timeout=_env_int("DB_COMMAND_TIMEOUT", 30),
            jwt_secret=_env_str("JWT_SECRET"),
            jwt_algorithm=_env_str("JWT_ALG", "HS256"),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MIN", 60),
            refresh_token_expire_days=_env_int("REFRESH_TOKEN_EXPIRE_DAYS", 30),
            allowed_origins=_env_list("ALLOWED_ORIGINS"),
            max_body_bytes=_env_int("MAX_BODY_BYTES", 1024 * 1024),
            schema_init_policy=policy,
            test_db_retries=max(0, _env_int("TEST_DB_RETRIES", 0)),
            log_level=_env_str("LOG_LEVEL", "INFO"),
            log_format=_env_str("LOG_FORMAT", "plain").lower(),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def cors_origins(self) -> list[str]:
        """
        Allowed CORS origins. Outside production every origin is allowed.
        """
        if not self.is_production:
            return ["*"]
        origins = list(DEFAULT_ALLOWED_ORIGINS)
        for origin in self.allowed_origins:
            if origin not in origins:
                origins.append(origin)
        return origins

    def missing_required(self) -> list[str]:
        missing: list[str] = []
        if not self.jwt_secret:
            missing.append("JWT_SECRET")
        if self.database_url:
            return missing
        for name, value in (
            ("DB_HOST", self.db_host),
            ("DB_USER", self.db_user),
            ("DB_PASSWORD", self.db_password),
            ("DB_DATABASE", self.db_database),
        ):
            if not value:
                missing.append(name)
        return missing


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
