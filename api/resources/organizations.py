"""
Organizations: the tenants. Non-admin callers only see their own row.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import TEXT

from .controller import Column, ResourceSpec
from .roles import ADMIN, MANAGERS

SPEC = ResourceSpec(
    name="Organization",
    table="organizations",
    columns=(
        Column("name", TEXT, required=True),
        Column("website"),
        Column("industry"),
        Column("phone"),
        Column("address"),
        Column("status", TEXT, choices=("active", "inactive", "prospect"), default_sql="'active'"),
        Column("notes"),
    ),
    scope_column="id",
    order_by="name ASC",
)

POLICY = RoutePolicy.restricted(read=MANAGERS, write=ADMIN)
