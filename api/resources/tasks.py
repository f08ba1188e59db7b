"""
Tasks assigned to users, optionally attached to another record.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import BOOLEAN, DATE, INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import STAFF

SPEC = ResourceSpec(
    name="Task",
    table="tasks",
    columns=(
        Column("organization_id", INTEGER),
        Column("title", TEXT, required=True),
        Column("description"),
        Column("due_date", DATE),
        Column("priority", TEXT, choices=("low", "medium", "high", "urgent"), default_sql="'medium'"),
        Column("status", TEXT, choices=("open", "in_progress", "done", "cancelled"), default_sql="'open'"),
        Column("is_completed", BOOLEAN, default_sql="FALSE"),
        Column("assigned_to", INTEGER),
        Column("related_type"),
        Column("related_id", INTEGER),
    ),
    order_by="due_date ASC NULLS LAST, id DESC",
)

POLICY = RoutePolicy.restricted(read=STAFF, write=STAFF)
