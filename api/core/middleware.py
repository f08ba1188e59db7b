"""
ASGI middleware making up the request pipeline.

`install_middleware()` registers them so that a request passes, in order:

security headers -> gzip -> CORS -> body limit -> access log
-> schema init -> sanitizer -> router
"""

from __future__ import annotations

import json
import logging
import time
from typing import Sequence
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import Settings
from .error_handlers import error_response
from .errors import PayloadTooLarge
from .routing import RouteBinding, match_binding
from .sanitize import sanitize_payload, sanitize_query
from .schema import API_PREFIX, SchemaRegistry

logger = logging.getLogger(__name__)

SECURITY_HEADERS = (
    (b"content-security-policy", b"default-src 'self';base-uri 'self';frame-ancestors 'self';object-src 'none'"),
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"cross-origin-resource-policy", b"same-origin"),
    (b"referrer-policy", b"no-referrer"),
    (b"strict-transport-security", b"max-age=15552000; includeSubDomains"),
    (b"x-content-type-options", b"nosniff"),
    (b"x-dns-prefetch-control", b"off"),
    (b"x-download-options", b"noopen"),
    (b"x-frame-options", b"SAMEORIGIN"),
    (b"x-permitted-cross-domain-policies", b"none"),
)

_BODY_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _header(scope: Scope, name: bytes) -> bytes | None:
    for key, value in scope.get("headers") or []:
        if key.lower() == name:
            return value
    return None


async def _read_body(receive: Receive) -> tuple[bytes, list[Message]]:
    chunks: list[bytes] = []
    messages: list[Message] = []
    while True:
        message = await receive()
        messages.append(message)
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks), messages


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = [
                    (key, value)
                    for key, value in message.get("headers", [])
                    if key.lower() not in (b"server", b"x-powered-by")
                ]
                present = {key.lower() for key, _ in headers}
                headers.extend((key, value) for key, value in SECURITY_HEADERS if key not in present)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)


class BodyLimitMiddleware:
    """
    Reject bodies over `max_bytes` with 413 before anything downstream runs.
    """

    def __init__(self, app: ASGIApp, *, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in _BODY_METHODS:
            await self.app(scope, receive, send)
            return

        declared = _header(scope, b"content-length")
        if declared is not None:
            try:
                too_large = int(declared) > self.max_bytes
            except ValueError:
                too_large = False
            if too_large:
                await self._reject(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        # Chunked body: buffer it to find its size.
        body, messages = await _read_body(receive)
        if len(body) > self.max_bytes:
            await self._reject(scope, receive, send)
            return
        if messages and messages[-1]["type"] == "http.disconnect":
            return
        await self.app(scope, _replay(body, receive), send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.warning("Rejected oversized request body on %s", scope.get("path"))
        response = error_response(PayloadTooLarge())
        await response(scope, receive, send)


class AccessLogMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message["status"])
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            path = scope.get("path", "")
            query = scope.get("query_string", b"")
            if query:
                path = f"{path}?{query.decode('latin-1')}"
            logger.info(
                "%s %s %s %dms",
                scope.get("method"),
                path,
                status_code,
                duration_ms,
                extra={
                    "method": scope.get("method"),
                    "path": scope.get("path"),
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )


class SchemaInitMiddleware:
    """
    Make sure the tables an `/api/` request needs exist before routing it.
    """

    def __init__(self, app: ASGIApp, *, registry: SchemaRegistry) -> None:
        self.app = app
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope.get("path", "").startswith(API_PREFIX):
            await self.app(scope, receive, send)
            return

        try:
            await self.registry.ensure_for(scope["path"])
        except Exception as exc:
            # Only reached with the fail_fast policy.
            logger.error("Schema initialization failed for %s", scope["path"], exc_info=True)
            response = error_response(exc)
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


class SanitizeMiddleware:
    """
    Normalize query strings and JSON bodies of `/api/` requests.
    """

    def __init__(self, app: ASGIApp, *, bindings: Sequence[RouteBinding]) -> None:
        self.app = app
        self.bindings = tuple(bindings)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope.get("path", "").startswith(API_PREFIX):
            await self.app(scope, receive, send)
            return

        scope = dict(scope)
        query = scope.get("query_string", b"")
        if query:
            pairs = parse_qsl(query.decode("latin-1"), keep_blank_values=True)
            scope["query_string"] = urlencode(sanitize_query(pairs)).encode("latin-1")

        content_type = (_header(scope, b"content-type") or b"").decode("latin-1").lower()
        if scope["method"] not in _BODY_METHODS or "application/json" not in content_type:
            await self.app(scope, receive, send)
            return

        body, messages = await _read_body(receive)
        if messages and messages[-1]["type"] == "http.disconnect":
            return

        binding = match_binding(self.bindings, scope["path"])
        try:
            payload = json.loads(body) if body else None
        except ValueError:
            # Malformed JSON goes through untouched; the handler reports it.
            await self.app(scope, _replay(body, receive), send)
            return

        if payload is not None:
            payload = sanitize_payload(
                payload,
                fields=binding.fields if binding else None,
                allow_list=binding.allow_list if binding else None,
                preserve=binding.preserve if binding else frozenset(),
            )
            body = json.dumps(payload).encode("utf-8")
            headers = [(k, v) for k, v in scope["headers"] if k.lower() != b"content-length"]
            headers.append((b"content-length", str(len(body)).encode("latin-1")))
            scope["headers"] = headers

        await self.app(scope, _replay(body, receive), send)


def install_middleware(
    app: FastAPI,
    settings: Settings,
    *,
    registry: SchemaRegistry,
    bindings: Sequence[RouteBinding],
) -> None:
    # add_middleware() wraps the current stack, so register innermost first.
    app.add_middleware(SanitizeMiddleware, bindings=bindings)
    app.add_middleware(SchemaInitMiddleware, registry=registry)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(BodyLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
