"""
Job openings.
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import DATE, INTEGER, NUMERIC, TEXT

from .controller import Column, ResourceSpec
from .roles import ANY, MANAGERS, STAFF

SPEC = ResourceSpec(
    name="Job",
    table="jobs",
    columns=(
        Column("organization_id", INTEGER),
        Column("title", TEXT, required=True),
        Column("description"),
        Column("location"),
        Column(
            "employment_type",
            TEXT,
            choices=("full_time", "part_time", "contract", "temporary", "internship"),
        ),
        Column("salary_min", NUMERIC),
        Column("salary_max", NUMERIC),
        Column("status", TEXT, choices=("draft", "open", "on_hold", "closed", "filled"), default_sql="'open'"),
        Column("hiring_manager_id", INTEGER),
        Column("office_id", INTEGER),
        Column("openings", INTEGER, default_sql="1"),
        Column("start_date", DATE),
    ),
    indexes=("CREATE INDEX IF NOT EXISTS jobs_status_idx ON jobs (status)",),
)

POLICY = RoutePolicy.restricted(read=ANY, write=STAFF, delete=MANAGERS)
