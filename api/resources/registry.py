"""
The ordered list of route bindings served by the API, and the controllers
behind them.
"""

from __future__ import annotations

from auth import repository as auth_repository
from auth import router as auth_router
from core.db import PoolProvider
from core.routing import ALL_METHODS, RouteBinding, RoutePolicy
from core.schema import SchemaInitializer, SchemaRegistry

from . import (
    custom_fields,
    hiring_managers,
    job_seekers,
    jobs,
    leads,
    offices,
    organizations,
    tasks,
    teams,
    users,
)
from .controller import ResourceController
from .router import build_router

# (url slug, module, baseline schema)
RESOURCES = (
    ("users", users, False),
    ("organizations", organizations, False),
    ("jobs", jobs, False),
    ("job-seekers", job_seekers, False),
    ("hiring-managers", hiring_managers, False),
    ("custom-fields", custom_fields, False),
    ("leads", leads, False),
    ("tasks", tasks, False),
    ("offices", offices, True),
    ("teams", teams, True),
)


def build_controllers(db: PoolProvider) -> dict[str, ResourceController]:
    return {slug: ResourceController(db, module.SPEC) for slug, module, _ in RESOURCES}


def build_bindings(db: PoolProvider, controllers: dict[str, ResourceController]) -> list[RouteBinding]:
    auth_schema = SchemaInitializer("auth", lambda: auth_repository.ensure_schema(db))
    bindings = [
        RouteBinding(
            name="auth",
            prefix="/api/auth",
            router=auth_router.router,
            policy=RoutePolicy.public(),
            schema=(auth_schema,),
            baseline=True,
            preserve=auth_router.SECRET_FIELDS,
        )
    ]

    for slug, module, baseline in RESOURCES:
        controller = controllers[slug]
        spec = module.SPEC
        # The users table is created by the auth baseline.
        schema = () if slug == "users" else (SchemaInitializer(slug, controller.ensure_schema),)
        bindings.append(
            RouteBinding(
                name=slug,
                prefix=f"/api/{slug}",
                router=build_router(slug, methods=getattr(module, "METHODS", ALL_METHODS)),
                policy=module.POLICY,
                schema=schema,
                baseline=baseline,
                fields=spec.field_kinds,
                allow_list=frozenset(spec.column_names),
            )
        )
    return bindings


def build_schema_registry(bindings: list[RouteBinding], *, policy: str) -> SchemaRegistry:
    baseline = [initializer for binding in bindings if binding.baseline for initializer in binding.schema]
    by_prefix = {binding.prefix: binding.schema for binding in bindings if binding.schema and not binding.baseline}
    return SchemaRegistry(baseline=baseline, by_prefix=by_prefix, policy=policy)
