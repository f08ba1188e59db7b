"""
Auth dependencies for protected FastAPI routes.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Header, Request

from core.routing import RoutePolicy

from .guard import AuthGuard, extract_bearer_token
from .schemas import AuthContext


def get_guard(request: Request) -> AuthGuard:
    return request.app.state.auth_guard


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return extract_bearer_token(authorization)


async def get_auth_context(
    request: Request,
    access_token: str = Depends(get_bearer_token),
    guard: AuthGuard = Depends(get_guard),
) -> AuthContext:
    context = await guard.authenticate(access_token)
    request.state.auth = context
    return context


def require_policy(policy: RoutePolicy) -> Callable:
    """
    Router-level guard: authenticate, then check the roles the policy
    allows for the request's method.
    """

    async def dependency(
        request: Request,
        context: AuthContext = Depends(get_auth_context),
        guard: AuthGuard = Depends(get_guard),
    ) -> AuthContext:
        guard.authorize(context, policy.roles_for(request.method))
        return context

    return dependency
