"""
Hiring managers: client-side contacts who own job openings.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import ADMIN, MANAGERS, STAFF

SPEC = ResourceSpec(
    name="Hiring manager",
    table="hiring_managers",
    columns=(
        Column("organization_id", INTEGER),
        Column("first_name", TEXT, required=True),
        Column("last_name", TEXT, required=True),
        Column("email"),
        Column("phone"),
        Column("title"),
        Column("department"),
        Column("office_id", INTEGER),
    ),
)

POLICY = RoutePolicy.restricted(read=STAFF, write=MANAGERS, delete=ADMIN)
