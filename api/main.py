from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import asyncpg
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from auth import dependencies as auth_dependencies
from auth.guard import AuthGuard, UserLookup
from core.config import Settings, get_settings
from core.db import PoolProvider
from core.error_handlers import register_error_handlers
from core.errors import DependencyError
from core.middleware import install_middleware
from core.observability import setup_logging
from core.routing import mount_bindings
from resources import registry
from resources.controller import ResourceController

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    pool_provider: PoolProvider | None = None,
    user_lookup: UserLookup | None = None,
    controllers: dict[str, ResourceController] | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    provider = pool_provider or PoolProvider(settings)

    if settings.is_production:
        missing = settings.missing_required()
        if missing:
            logger.error("Missing required environment variables: %s", ", ".join(missing))
            logger.error("Continuing startup; features depending on them will fail.")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        setup_logging(settings.log_level, settings.log_format)
        try:
            yield
        finally:
            await provider.close()

    app = FastAPI(title="Recruiting API", lifespan=lifespan)
    app.state.settings = settings
    app.state.pool_provider = provider
    app.state.auth_guard = AuthGuard(provider, settings, user_lookup=user_lookup)
    # One controller per resource for the life of the app.
    app.state.controllers = {**registry.build_controllers(provider), **(controllers or {})}

    bindings = registry.build_bindings(provider, app.state.controllers)
    schema_registry = registry.build_schema_registry(bindings, policy=settings.schema_init_policy)
    app.state.bindings = tuple(bindings)
    app.state.schema_registry = schema_registry

    install_middleware(app, settings, registry=schema_registry, bindings=bindings)
    register_error_handlers(app)
    mount_bindings(app, bindings, guard=auth_dependencies.require_policy)

    @app.get("/test-db")
    async def test_db(request: Request):
        attempts = settings.test_db_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                pool = await request.app.state.pool_provider.get_pool()
                async with pool.acquire() as conn:
                    now = await conn.fetchval("SELECT NOW()")
                return {"success": True, "time": now}
            except (DependencyError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
                logger.error("Database query error (attempt %d/%d): %s", attempt, attempts, exc)
        return JSONResponse(status_code=500, content={"success": False, "error": "Database error"})

    @app.get("/")
    async def root() -> dict:
        return {"success": True, "message": "Backend is live on Vercel!"}

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Server running on port %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
