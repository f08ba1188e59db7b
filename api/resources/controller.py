"""
Table-backed CRUD controller shared by every resource.

A resource is described by a `ResourceSpec` (table, columns, tenant scope).
The controller owns its table's DDL (`ensure_schema`) and the list / get /
create / update / delete queries. Table and column names only ever come
from the static ResourceSpec definitions, never from request data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from auth.schemas import AuthContext, Role
from core.db import PoolProvider
from core.errors import NotFound, ValidationError
from core.sanitize import BOOLEAN, DATE, INTEGER, NUMERIC, TEXT

SQL_TYPES = {
    TEXT: "TEXT",
    INTEGER: "INTEGER",
    NUMERIC: "NUMERIC(14, 2)",
    BOOLEAN: "BOOLEAN",
    DATE: "DATE",
}


@dataclass(frozen=True)
class Column:
    name: str
    kind: str = TEXT
    required: bool = False
    choices: tuple[str, ...] = ()
    default_sql: str | None = None

    def ddl(self) -> str:
        parts = [self.name, SQL_TYPES[self.kind]]
        if self.required:
            parts.append("NOT NULL")
        if self.default_sql is not None:
            parts.append(f"DEFAULT {self.default_sql}")
        return " ".join(parts)


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    table: str
    columns: tuple[Column, ...]
    # Column holding the tenant id: "organization_id", "id" for the
    # organizations table itself, or None for unscoped tables.
    scope_column: str | None = "organization_id"
    track_creator: bool = True
    schema_sql: tuple[str, ...] = ()
    indexes: tuple[str, ...] = ()
    order_by: str = "id DESC"

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def field_kinds(self) -> dict[str, str]:
        return {column.name: column.kind for column in self.columns}

    @property
    def select_list(self) -> str:
        names = ["id", *self.column_names]
        if self.track_creator:
            names.append("created_by")
        names.extend(["created_at", "updated_at"])
        return ", ".join(names)

    def ddl(self) -> tuple[str, ...]:
        if self.schema_sql:
            return self.schema_sql

        body = ["id SERIAL PRIMARY KEY", *(column.ddl() for column in self.columns)]
        if self.track_creator:
            body.append("created_by INTEGER")
        body.append("created_at TIMESTAMPTZ NOT NULL DEFAULT now()")
        body.append("updated_at TIMESTAMPTZ NOT NULL DEFAULT now()")
        statements = [f"CREATE TABLE IF NOT EXISTS {self.table} ({', '.join(body)})"]
        if self.scope_column == "organization_id":
            statements.append(
                f"CREATE INDEX IF NOT EXISTS {self.table}_organization_idx ON {self.table} (organization_id)"
            )
        statements.extend(self.indexes)
        return tuple(statements)


def to_db_value(column: Column, value: Any) -> Any:
    if value is None:
        if column.required:
            raise ValidationError(f"{column.name} is required.")
        return None

    if column.kind == TEXT:
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{column.name} must be a string.")
        text = str(value)
        if column.choices and text not in column.choices:
            raise ValidationError(f"{column.name} must be one of: {', '.join(column.choices)}.")
        return text

    if column.kind == INTEGER:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{column.name} must be an integer.")
        return value

    if column.kind == NUMERIC:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValidationError(f"{column.name} must be a number.")
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError(f"{column.name} must be a number.") from exc

    if column.kind == BOOLEAN:
        if not isinstance(value, bool):
            raise ValidationError(f"{column.name} must be true or false.")
        return value

    if column.kind == DATE:
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value))
        except ValueError as exc:
            raise ValidationError(f"{column.name} must be a date (YYYY-MM-DD).") from exc

    return value


class ResourceController:
    def __init__(self, db: PoolProvider, spec: ResourceSpec) -> None:
        self.db = db
        self.spec = spec
        self._columns = {column.name: column for column in spec.columns}

    async def ensure_schema(self) -> None:
        await self.db.execute_script(self.spec.ddl())

    def _tenant(self, context: AuthContext) -> int | None:
        """
        Organization the caller is confined to, or None for unscoped access.
        """
        if self.spec.scope_column is None:
            return None
        if context.organization_id is None:
            if context.role == Role.ADMIN:
                return None
            # Callers without an organization only see unassigned rows.
            return 0
        return context.organization_id

    def _scope_clause(self, context: AuthContext, args: list[Any]) -> str:
        tenant = self._tenant(context)
        if tenant is None:
            return ""
        if tenant == 0:
            return f" AND {self.spec.scope_column} IS NULL"
        args.append(tenant)
        return f" AND {self.spec.scope_column} = ${len(args)}"

    def _values(self, payload: dict[str, Any], *, partial: bool) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name, column in self._columns.items():
            if name not in payload:
                if column.required and not partial:
                    raise ValidationError(f"{name} is required.")
                continue
            values[name] = to_db_value(column, payload[name])
        return values

    async def list(self, context: AuthContext, *, limit: int = 50, offset: int = 0) -> list[dict]:
        args: list[Any] = []
        where = self._scope_clause(context, args)
        args.extend([limit, offset])
        return await self.db.fetch_all(
            f"""
            SELECT {self.spec.select_list}
            FROM {self.spec.table}
            WHERE TRUE{where}
            ORDER BY {self.spec.order_by}
            LIMIT ${len(args) - 1} OFFSET ${len(args)}
            """,
            *args,
        )

    async def get(self, context: AuthContext, item_id: int) -> dict:
        args: list[Any] = [item_id]
        where = self._scope_clause(context, args)
        row = await self.db.fetch_one(
            f"""
            SELECT {self.spec.select_list}
            FROM {self.spec.table}
            WHERE id = $1{where}
            """,
            *args,
        )
        if row is None:
            raise NotFound(f"{self.spec.name} not found.")
        return row

    async def create(self, context: AuthContext, payload: dict[str, Any]) -> dict:
        values = self._values(payload, partial=False)
        tenant = self._tenant(context)
        if self.spec.scope_column == "organization_id" and tenant is not None:
            values["organization_id"] = tenant or None
        if self.spec.track_creator:
            values["created_by"] = context.user_id
        if not values:
            raise ValidationError("No fields to create.")

        names = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(names) + 1))
        row = await self.db.fetch_one(
            f"""
            INSERT INTO {self.spec.table} ({', '.join(names)})
            VALUES ({placeholders})
            RETURNING {self.spec.select_list}
            """,
            *values.values(),
        )
        if row is None:
            raise RuntimeError(f"Failed to create {self.spec.name}.")
        return row

    async def update(self, context: AuthContext, item_id: int, payload: dict[str, Any]) -> dict:
        values = self._values(payload, partial=True)
        if self.spec.scope_column == "organization_id" and self._tenant(context) is not None:
            values.pop("organization_id", None)
        if not values:
            raise ValidationError("No fields to update.")

        args: list[Any] = list(values.values())
        assignments = [f"{name} = ${i}" for i, name in enumerate(values, start=1)]
        assignments.append("updated_at = now()")
        args.append(item_id)
        id_placeholder = len(args)
        where = self._scope_clause(context, args)
        row = await self.db.fetch_one(
            f"""
            UPDATE {self.spec.table}
            SET {', '.join(assignments)}
            WHERE id = ${id_placeholder}{where}
            RETURNING {self.spec.select_list}
            """,
            *args,
        )
        if row is None:
            raise NotFound(f"{self.spec.name} not found.")
        return row

    async def delete(self, context: AuthContext, item_id: int) -> int:
        args: list[Any] = [item_id]
        where = self._scope_clause(context, args)
        row = await self.db.fetch_one(
            f"""
            DELETE FROM {self.spec.table}
            WHERE id = $1{where}
            RETURNING id
            """,
            *args,
        )
        if row is None:
            raise NotFound(f"{self.spec.name} not found.")
        return int(row["id"])
