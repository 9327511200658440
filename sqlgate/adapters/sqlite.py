"""SQLite targets (aiosqlite). Mostly used for local and test fleets."""

from __future__ import annotations

import re
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlgate.adapters.base import PlanEstimate, TargetDialect
from sqlgate.models.target import Target
from sqlgate.schemas.catalog import ColumnInfo, TableInfo

_TYPE_RE = re.compile(r"^\s*(?P<base>[^(]+?)\s*\(\s*(?P<a>\d+)\s*(?:,\s*(?P<b>\d+)\s*)?\)")

MAIN_SCHEMA = "main"


def _split_type(declared: str) -> tuple[str, int | None, int | None]:
    m = _TYPE_RE.match(declared)
    if not m:
        return declared.strip(), None, None
    scale = int(m.group("b")) if m.group("b") else None
    return m.group("base").strip(), int(m.group("a")), scale


class SQLiteDialect(TargetDialect):
    name = "sqlite"
    driver = "sqlite+aiosqlite"

    def connection_url(self, target: Target, password: str | None) -> URL:
        return URL.create(self.driver, database=target.database or None)

    async def list_tables(
        self, conn: AsyncConnection, schema: str | None = None
    ) -> list[TableInfo]:
        if schema and schema != MAIN_SCHEMA:
            return []
        result = await conn.execute(
            text("""
                SELECT name, type FROM sqlite_master
                WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'
                ORDER BY name
            """)
        )
        return [
            TableInfo(schema_name=MAIN_SCHEMA, table_name=row["name"], table_type=row["type"].upper())
            for row in result.mappings()
        ]

    async def list_columns(
        self, conn: AsyncConnection, schema: str, table: str
    ) -> list[ColumnInfo]:
        quoted = table.replace('"', '""')
        result = await conn.execute(text(f'PRAGMA table_info("{quoted}")'))
        columns = []
        for row in result.mappings():
            data_type, length, scale = _split_type(row["type"] or "")
            columns.append(
                ColumnInfo(
                    name=row["name"],
                    data_type=data_type,
                    length=length,
                    precision=length if scale is not None else None,
                    scale=scale,
                    nullable=not row["notnull"] and not row["pk"],
                )
            )
        return columns

    async def explain(
        self, conn: AsyncConnection, statement: str, params: dict[str, Any], plan_id: str
    ) -> PlanEstimate:
        result = await conn.execute(text(f"EXPLAIN QUERY PLAN {statement}"), params)
        depth: dict[int, int] = {}
        lines = []
        for node_id, parent, _, detail in result:
            depth[node_id] = depth.get(parent, -1) + 1
            lines.append("  " * depth[node_id] + detail)
        # SQLite exposes no cost model.
        return PlanEstimate(plan_text="\n".join(lines))

    def qualify(self, schema: str | None, table: str) -> str:
        return table if schema in (None, MAIN_SCHEMA) else f"{schema}.{table}"
