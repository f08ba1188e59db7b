"""
Route bindings: which router serves which URL prefix, under which policy.

Bindings are built once at startup, validated, then mounted in list order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence

from fastapi import APIRouter, Depends, FastAPI

from .schema import SchemaInitializer, path_has_prefix

ALL_METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass(frozen=True)
class RoutePolicy:
    """
    `roles` maps an HTTP method to the roles allowed to call it.
    A method missing from `roles` (or mapped to an empty set) is open to any
    authenticated caller.
    """

    auth_required: bool = True
    roles: Mapping[str, frozenset] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        frozen = {method.upper(): frozenset(allowed) for method, allowed in dict(self.roles).items()}
        object.__setattr__(self, "roles", MappingProxyType(frozen))

    def roles_for(self, method: str) -> frozenset:
        return self.roles.get(method.upper(), frozenset())

    @classmethod
    def public(cls) -> "RoutePolicy":
        return cls(auth_required=False)

    @classmethod
    def restricted(cls, *, read: Iterable = (), write: Iterable = (), delete: Iterable | None = None) -> "RoutePolicy":
        write_roles = frozenset(write)
        return cls(
            roles={
                "GET": frozenset(read),
                "POST": write_roles,
                "PUT": write_roles,
                "DELETE": frozenset(delete) if delete is not None else write_roles,
            }
        )


@dataclass(frozen=True)
class RouteBinding:
    name: str
    prefix: str
    router: APIRouter
    policy: RoutePolicy = field(default_factory=RoutePolicy)
    schema: tuple[SchemaInitializer, ...] = ()
    baseline: bool = False
    fields: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    allow_list: frozenset[str] | None = None
    preserve: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", self.prefix.rstrip("/"))
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def matches(self, path: str) -> bool:
        return path_has_prefix(path, self.prefix)


def validate_bindings(bindings: Sequence[RouteBinding]) -> None:
    """
    Reject duplicate names and overlapping prefixes.
    """
    names: set[str] = set()
    for index, binding in enumerate(bindings):
        if not binding.prefix.startswith("/"):
            raise ValueError(f"Route prefix must start with '/': {binding.prefix!r}")
        if binding.name in names:
            raise ValueError(f"Duplicate route binding name: {binding.name!r}")
        names.add(binding.name)

        for other in bindings[:index]:
            if path_has_prefix(binding.prefix, other.prefix) or path_has_prefix(other.prefix, binding.prefix):
                raise ValueError(
                    f"Route prefix {binding.prefix!r} overlaps {other.prefix!r} ({other.name})"
                )


def match_binding(bindings: Sequence[RouteBinding], path: str) -> RouteBinding | None:
    for binding in bindings:
        if binding.matches(path):
            return binding
    return None


def mount_bindings(
    app: FastAPI,
    bindings: Sequence[RouteBinding],
    *,
    guard: Callable[[RoutePolicy], Callable[..., Any]],
) -> None:
    """
    Include every binding's router at its prefix, in order.

    `guard(policy)` returns the FastAPI dependency that authenticates and
    authorizes a request; it is attached only when the policy needs auth.
    """
    validate_bindings(bindings)
    for binding in bindings:
        dependencies = [Depends(guard(binding.policy))] if binding.policy.auth_required else []
        app.include_router(
            binding.router,
            prefix=binding.prefix,
            tags=[binding.name],
            dependencies=dependencies,
        )
