"""Oracle targets (python-oracledb, async mode)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlgate.adapters.base import PlanEstimate, TargetDialect
from sqlgate.models.target import Target
from sqlgate.schemas.catalog import ColumnInfo, TableInfo


class OracleDialect(TargetDialect):
    name = "oracle"
    driver = "oracle+oracledb"
    default_port = 1521
    probe_sql = "SELECT 1 FROM DUAL"
    system_schemas = frozenset({
        "SYS", "SYSTEM", "OUTLN", "DBSNMP", "WMSYS", "EXFSYS", "CTXSYS",
        "XDB", "ANONYMOUS", "XS$NULL", "OJVMSYS", "MDSYS", "ORDSYS",
    })

    def connection_url(self, target: Target, password: str | None) -> URL:
        return URL.create(
            self.driver,
            username=target.username or None,
            password=password,
            host=target.host,
            port=target.port or self.default_port,
            query={"service_name": target.database} if target.database else {},
        )

    async def list_tables(
        self, conn: AsyncConnection, schema: str | None = None
    ) -> list[TableInfo]:
        owner_filter = " AND owner = :schema" if schema else ""
        sql = f"""
            SELECT owner AS schema_name, table_name, 'TABLE' AS table_type, num_rows AS row_count
            FROM all_tables
            WHERE {self._schema_exclusion('owner')}{owner_filter}
            UNION ALL
            SELECT owner, view_name, 'VIEW', NULL
            FROM all_views
            WHERE {self._schema_exclusion('owner')}{owner_filter}
            ORDER BY 1, 2
        """
        params = {"schema": schema.upper()} if schema else {}
        result = await conn.execute(text(sql), params)
        return [
            TableInfo(
                schema_name=row["schema_name"],
                table_name=row["table_name"],
                table_type=row["table_type"],
                row_count=row["row_count"],
            )
            for row in result.mappings()
        ]

    async def list_columns(
        self, conn: AsyncConnection, schema: str, table: str
    ) -> list[ColumnInfo]:
        result = await conn.execute(
            text("""
                SELECT column_name, data_type, data_length, data_precision, data_scale, nullable
                FROM all_tab_columns
                WHERE owner = :owner AND table_name = :table_name
                ORDER BY column_id
            """),
            {"owner": schema, "table_name": table},
        )
        return [
            ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"],
                length=row["data_length"],
                precision=row["data_precision"],
                scale=row["data_scale"],
                nullable=row["nullable"] == "Y",
            )
            for row in result.mappings()
        ]

    async def explain(
        self, conn: AsyncConnection, statement: str, params: dict[str, Any], plan_id: str
    ) -> PlanEstimate:
        await conn.execute(text(f"EXPLAIN PLAN SET STATEMENT_ID = '{plan_id}' FOR {statement}"), params)
        result = await conn.execute(
            text("""
                SELECT id,
                       LPAD(' ', 2 * depth) || operation
                         || NVL2(options, ' ' || options, '')
                         || NVL2(object_name, ' ' || object_name, '') AS step,
                       cost, cardinality
                FROM plan_table
                WHERE statement_id = :plan_id
                ORDER BY id
            """),
            {"plan_id": plan_id},
        )
        rows = list(result.mappings())
        if not rows:
            return PlanEstimate()
        root = rows[0]
        return PlanEstimate(
            plan_text="\n".join(row["step"] for row in rows),
            estimated_cost=float(root["cost"]) if root["cost"] is not None else None,
            estimated_rows=int(root["cardinality"]) if root["cardinality"] is not None else None,
        )

    async def cleanup_plan(self, conn: AsyncConnection, plan_id: str) -> None:
        await conn.execute(
            text("DELETE FROM plan_table WHERE statement_id = :plan_id"), {"plan_id": plan_id}
        )
