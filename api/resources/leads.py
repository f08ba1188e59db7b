"""
Sales leads (prospective client organizations / contacts).
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import INTEGER, NUMERIC, TEXT

from .controller import Column, ResourceSpec
from .roles import MANAGERS, STAFF

SPEC = ResourceSpec(
    name="Lead",
    table="leads",
    columns=(
        Column("organization_id", INTEGER),
        Column("first_name", TEXT, required=True),
        Column("last_name"),
        Column("email"),
        Column("phone"),
        Column("company"),
        Column("title"),
        Column("source"),
        Column(
            "status",
            TEXT,
            choices=("new", "contacted", "qualified", "converted", "lost"),
            default_sql="'new'",
        ),
        Column("estimated_value", NUMERIC),
        Column("owner_id", INTEGER),
    ),
)

POLICY = RoutePolicy.restricted(read=STAFF, write=STAFF, delete=MANAGERS)
