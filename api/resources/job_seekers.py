"""
Job seekers (candidates).
"""

from __future__ import annotations

from core.routing import RoutePolicy
from core.sanitize import DATE, INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import MANAGERS, STAFF

SPEC = ResourceSpec(
    name="Job seeker",
    table="job_seekers",
    columns=(
        Column("organization_id", INTEGER),
        Column("first_name", TEXT, required=True),
        Column("last_name", TEXT, required=True),
        Column("email"),
        Column("phone"),
        Column("resume_url"),
        Column("current_title"),
        Column("skills"),
        Column("source"),
        Column(
            "status",
            TEXT,
            choices=("new", "screening", "interviewing", "offered", "placed", "rejected"),
            default_sql="'new'",
        ),
        Column("available_from", DATE),
        Column("job_id", INTEGER),
    ),
    indexes=("CREATE INDEX IF NOT EXISTS job_seekers_email_idx ON job_seekers (lower(email))",),
)

POLICY = RoutePolicy.restricted(read=STAFF, write=STAFF, delete=MANAGERS)
