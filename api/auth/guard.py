"""
Auth guard: bearer authentication and role authorization.

One guard per app, stored on `app.state.auth_guard`. Per request the caller
goes Unauthenticated -> Authenticated -> Authorized, or is rejected with
`Unauthorized` / `Forbidden`.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from core.config import Settings
from core.db import PoolProvider
from core.errors import Forbidden, InternalError, Unauthorized

from . import repository, security
from .schemas import AuthContext, Role

logger = logging.getLogger(__name__)

UserLookup = Callable[[int], Awaitable["dict | None"]]


def extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if not raw:
        raise Unauthorized("Missing Authorization header.")

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise Unauthorized("Invalid Authorization header format.")

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise Unauthorized("Authorization must be: Bearer <token>.")
    return token


class AuthGuard:
    def __init__(
        self,
        pool_provider: PoolProvider,
        settings: Settings,
        *,
        user_lookup: UserLookup | None = None,
    ) -> None:
        self._settings = settings
        self._lookup = user_lookup or (lambda user_id: repository.get_user_by_id(pool_provider, user_id))

    async def authenticate(self, token: str) -> AuthContext:
        try:
            payload = security.decode_access_token(self._settings, token)
        except security.AuthSecurityError as exc:
            if not self._settings.jwt_secret and self._settings.is_production:
                logger.error("Cannot verify access tokens: %s", exc)
                raise InternalError("Authentication is not configured.") from exc
            raise Unauthorized(str(exc)) from exc

        subject = str(payload.get("sub") or "").strip()
        if not subject.isdigit():
            raise Unauthorized("Invalid access token subject.")

        user_row = await self._lookup(int(subject))
        if user_row is None:
            raise Unauthorized("User not found.")
        if not bool(user_row.get("is_active", False)):
            raise Forbidden("User is inactive.")

        try:
            role = Role(str(user_row.get("role") or ""))
        except ValueError as exc:
            raise Forbidden("User has no valid role.") from exc

        organization_id = user_row.get("organization_id")
        return AuthContext(
            user_id=int(user_row["id"]),
            email=str(user_row.get("email") or payload.get("email") or ""),
            role=role,
            organization_id=int(organization_id) if organization_id is not None else None,
        )

    def authorize(self, context: AuthContext, required_roles: Iterable[Role]) -> None:
        allowed = frozenset(required_roles)
        if allowed and context.role not in allowed:
            raise Forbidden()
