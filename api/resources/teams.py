"""
Teams group users inside an office. Part of the baseline schema.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import MANAGERS, STAFF

SPEC = ResourceSpec(
    name="Team",
    table="teams",
    columns=(
        Column("organization_id", INTEGER),
        Column("office_id", INTEGER),
        Column("name", TEXT, required=True),
        Column("description"),
        Column("lead_user_id", INTEGER),
    ),
    order_by="name ASC",
)

POLICY = RoutePolicy.restricted(read=STAFF, write=MANAGERS)
