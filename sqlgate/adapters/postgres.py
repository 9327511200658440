"""PostgreSQL targets (asyncpg)."""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlgate.adapters.base import PlanEstimate, TargetDialect
from sqlgate.schemas.catalog import ColumnInfo, TableInfo

_COST_RE = re.compile(r"cost=[\d.]+\.\.(?P<cost>[\d.]+)\s+rows=(?P<rows>\d+)")


def parse_plan_root(line: str) -> tuple[float | None, int | None]:
    """Pull total cost and row estimate out of the top line of ``EXPLAIN``."""
    m = _COST_RE.search(line)
    if not m:
        return None, None
    return float(m.group("cost")), int(m.group("rows"))


class PostgresDialect(TargetDialect):
    name = "postgresql"
    driver = "postgresql+asyncpg"
    default_port = 5432
    system_schemas = frozenset({"pg_catalog", "information_schema", "pg_toast"})

    async def list_tables(
        self, conn: AsyncConnection, schema: str | None = None
    ) -> list[TableInfo]:
        sql = f"""
            SELECT table_schema, table_name, table_type
            FROM information_schema.tables
            WHERE {self._schema_exclusion('table_schema')}
              AND table_schema NOT LIKE 'pg_temp%'
        """
        params: dict[str, Any] = {}
        if schema:
            sql += " AND table_schema = :schema"
            params["schema"] = schema
        sql += " ORDER BY table_schema, table_name"
        result = await conn.execute(text(sql), params)
        return [
            TableInfo(
                schema_name=row["table_schema"],
                table_name=row["table_name"],
                table_type="VIEW" if row["table_type"] == "VIEW" else "TABLE",
            )
            for row in result.mappings()
        ]

    async def list_columns(
        self, conn: AsyncConnection, schema: str, table: str
    ) -> list[ColumnInfo]:
        result = await conn.execute(
            text("""
                SELECT column_name, data_type, character_maximum_length,
                       numeric_precision, numeric_scale, is_nullable
                FROM information_schema.columns
                WHERE table_schema = :schema AND table_name = :table_name
                ORDER BY ordinal_position
            """),
            {"schema": schema, "table_name": table},
        )
        return [
            ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                length=row["character_maximum_length"],
                precision=row["numeric_precision"],
                scale=row["numeric_scale"],
                nullable=row["is_nullable"] == "YES",
            )
            for row in result.mappings()
        ]

    async def explain(
        self, conn: AsyncConnection, statement: str, params: dict[str, Any], plan_id: str
    ) -> PlanEstimate:
        # Plain EXPLAIN (no ANALYZE) never runs the statement.
        result = await conn.execute(text(f"EXPLAIN {statement}"), params)
        lines = [row[0] for row in result]
        if not lines:
            return PlanEstimate()
        cost, rows = parse_plan_root(lines[0])
        return PlanEstimate(plan_text="\n".join(lines), estimated_cost=cost, estimated_rows=rows)

    def clear_table_sql(self, table: str) -> str:
        # TRUNCATE is transactional on PostgreSQL.
        return f"TRUNCATE TABLE {table}"
