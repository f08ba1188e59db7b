"""
Offices belong to an organization. Part of the baseline schema.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import ADMIN, ANY

SPEC = ResourceSpec(
    name="Office",
    table="offices",
    columns=(
        Column("organization_id", INTEGER),
        Column("name", TEXT, required=True),
        Column("address"),
        Column("city"),
        Column("country"),
        Column("phone"),
    ),
    order_by="name ASC",
)

POLICY = RoutePolicy.restricted(read=ANY, write=ADMIN)
