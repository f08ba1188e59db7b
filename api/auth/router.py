"""
Auth API endpoints.

Register, login and refresh are public; `me` and `logout` authenticate the
caller themselves.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from core.db import PoolProvider

from . import schemas, service
from .dependencies import get_auth_context

router = APIRouter()

SECRET_FIELDS = frozenset({"password", "refresh_token"})


def _db(request: Request) -> PoolProvider:
    return request.app.state.pool_provider


def _client_meta(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": request.client.host if request.client else None,
    }


@router.post("/register", status_code=201)
async def register(payload: schemas.RegisterRequest, request: Request) -> schemas.AuthResponse:
    return await service.register(_db(request), request.app.state.settings, payload, **_client_meta(request))


@router.post("/login")
async def login(payload: schemas.LoginRequest, request: Request) -> schemas.AuthResponse:
    return await service.login(_db(request), request.app.state.settings, payload, **_client_meta(request))


@router.post("/refresh")
async def refresh(payload: schemas.RefreshRequest, request: Request) -> dict:
    tokens = await service.refresh_tokens(
        _db(request), request.app.state.settings, payload, **_client_meta(request)
    )
    return {"success": True, "tokens": tokens.model_dump()}


@router.post("/logout")
async def logout(
    request: Request,
    context: schemas.AuthContext = Depends(get_auth_context),
) -> dict:
    # Optional body, read only once the caller is authenticated.
    body = await request.body()
    try:
        payload = schemas.LogoutRequest.model_validate_json(body) if body.strip() else schemas.LogoutRequest()
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors()) from None
    return await service.logout(_db(request), payload, current_user_id=context.user_id)


@router.get("/me")
async def me(
    request: Request,
    context: schemas.AuthContext = Depends(get_auth_context),
) -> dict:
    user = await service.me(_db(request), context.user_id)
    return {"success": True, "user": user.model_dump(mode="json")}
