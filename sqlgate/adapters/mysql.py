"""MySQL / MariaDB targets (aiomysql)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlgate.adapters.base import PlanEstimate, TargetDialect
from sqlgate.schemas.catalog import ColumnInfo, TableInfo


class MySQLDialect(TargetDialect):
    name = "mysql"
    driver = "mysql+aiomysql"
    default_port = 3306
    system_schemas = frozenset({"mysql", "sys", "performance_schema", "information_schema"})

    async def list_tables(
        self, conn: AsyncConnection, schema: str | None = None
    ) -> list[TableInfo]:
        sql = f"""
            SELECT table_schema, table_name, table_type, table_rows
            FROM information_schema.tables
            WHERE {self._schema_exclusion('table_schema')}
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
                row_count=row["table_rows"],
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
        result = await conn.execute(text(f"EXPLAIN {statement}"), params)
        rows = list(result.mappings())
        if not rows:
            return PlanEstimate()
        lines = [
            f"{row.get('id')} {row.get('select_type')} {row.get('table')} "
            f"type={row.get('type')} key={row.get('key')} rows={row.get('rows')}"
            for row in rows
        ]
        estimated = rows[0].get("rows")
        return PlanEstimate(
            plan_text="\n".join(lines),
            estimated_rows=int(estimated) if estimated is not None else None,
        )
