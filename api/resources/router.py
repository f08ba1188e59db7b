"""
Router factory for table-backed resources.

Every resource router has the same shape:

    GET    ""            list (limit / offset)
    GET    "/{item_id}"  fetch one
    POST   ""            create
    PUT    "/{item_id}"  update
    DELETE "/{item_id}"  delete

Authentication / role checks are attached when the router is mounted (see
`core.routing.mount_bindings`); handlers only read the resulting context.
"""

from __future__ import annotations

from typing import Any, Iterable

from fastapi import APIRouter, Depends, Query, Request

from auth.dependencies import get_auth_context
from auth.schemas import AuthContext
from core.errors import ValidationError
from core.routing import ALL_METHODS

from .controller import ResourceController


async def _json_object(request: Request) -> dict[str, Any]:
    # Parsed in the handler, after the guard dependency has run.
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON.") from None
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def build_router(name: str, *, methods: Iterable[str] = ALL_METHODS) -> APIRouter:
    allowed = {method.upper() for method in methods}
    router = APIRouter()

    def controller(request: Request) -> ResourceController:
        return request.app.state.controllers[name]

    if "GET" in allowed:

        @router.get("")
        async def list_items(
            request: Request,
            limit: int = Query(50, ge=1, le=500),
            offset: int = Query(0, ge=0),
            context: AuthContext = Depends(get_auth_context),
        ) -> dict:
            rows = await controller(request).list(context, limit=limit, offset=offset)
            return {"success": True, "data": rows, "count": len(rows), "limit": limit, "offset": offset}

        @router.get("/{item_id}")
        async def get_item(
            item_id: int,
            request: Request,
            context: AuthContext = Depends(get_auth_context),
        ) -> dict:
            row = await controller(request).get(context, item_id)
            return {"success": True, "data": row}

    if "POST" in allowed:

        @router.post("", status_code=201)
        async def create_item(
            request: Request,
            context: AuthContext = Depends(get_auth_context),
        ) -> dict:
            payload = await _json_object(request)
            row = await controller(request).create(context, payload)
            return {"success": True, "data": row}

    if "PUT" in allowed:

        @router.put("/{item_id}")
        async def update_item(
            item_id: int,
            request: Request,
            context: AuthContext = Depends(get_auth_context),
        ) -> dict:
            payload = await _json_object(request)
            row = await controller(request).update(context, item_id, payload)
            return {"success": True, "data": row}

    if "DELETE" in allowed:

        @router.delete("/{item_id}")
        async def delete_item(
            item_id: int,
            request: Request,
            context: AuthContext = Depends(get_auth_context),
        ) -> dict:
            deleted_id = await controller(request).delete(context, item_id)
            return {"success": True, "id": deleted_id}

    return router
