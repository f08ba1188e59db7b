"""
User administration. Users are created through /api/auth/register, so this
router has no POST; the table itself belongs to the auth schema.
"""

from __future__ import annotations

from auth import repository as auth_repository
from auth.schemas import Role
from core.routing import RoutePolicy
from core.sanitize import BOOLEAN, INTEGER, TEXT

from .controller import Column, ResourceSpec
from .roles import ADMIN, MANAGERS

METHODS = ("GET", "PUT", "DELETE")

SPEC = ResourceSpec(
    name="User",
    table="users",
    columns=(
        Column("name"),
        Column("email", TEXT, required=True),
        Column("role", TEXT, required=True, choices=tuple(role.value for role in Role)),
        Column("organization_id", INTEGER),
        Column("is_active", BOOLEAN),
    ),
    track_creator=False,
    schema_sql=auth_repository.SCHEMA,
)

POLICY = RoutePolicy.restricted(read=MANAGERS, write=ADMIN)
