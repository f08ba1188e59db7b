"""
Custom field definitions an organization adds to its entities.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import BOOLEAN, INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import ADMIN, ANY

ENTITY_TYPES = ("job", "job_seeker", "hiring_manager", "organization", "lead", "task")

SPEC = ResourceSpec(
    name="Custom field",
    table="custom_fields",
    columns=(
        Column("organization_id", INTEGER),
        Column("entity_type", TEXT, required=True, choices=ENTITY_TYPES),
        Column("field_name", TEXT, required=True),
        Column("field_label", TEXT, required=True),
        Column(
            "field_type",
            TEXT,
            choices=("text", "number", "date", "boolean", "select", "textarea"),
            default_sql="'text'",
        ),
        Column("options"),
        Column("is_required", BOOLEAN, default_sql="FALSE"),
        Column("sort_order", INTEGER, default_sql="0"),
    ),
    indexes=(
        "CREATE UNIQUE INDEX IF NOT EXISTS custom_fields_unique_idx "
        "ON custom_fields (COALESCE(organization_id, 0), entity_type, field_name)",
    ),
    order_by="entity_type ASC, sort_order ASC, id ASC",
)

POLICY = RoutePolicy.restricted(read=ANY, write=ADMIN)
