"""Abstract base class for target database dialects.

Support another database engine by implementing this interface and
registering it in ``sqlgate.adapters.dialects``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlgate.models.target import Target
from sqlgate.schemas.catalog import ColumnInfo, TableInfo


class PlanEstimate(BaseModel):
    """What a dialect's native plan facility tells us about a statement."""

    plan_text: str = ""
    estimated_cost: float | None = None
    estimated_rows: int | None = None


class TargetDialect(ABC):
    """Contract that every supported target engine must satisfy."""

    name: str
    driver: str
    default_port: int | None = None
    probe_sql: str = "SELECT 1"
    system_schemas: frozenset[str] = frozenset()

    def connection_url(self, target: Target, password: str | None) -> URL:
        return URL.create(
            self.driver,
            username=target.username or None,
            password=password,
            host=target.host or None,
            port=target.port or self.default_port,
            database=target.database or None,
        )

    async def probe(self, conn: AsyncConnection) -> bool:
        result = await conn.execute(text(self.probe_sql))
        return result.scalar() is not None

    @abstractmethod
    async def list_tables(
        self, conn: AsyncConnection, schema: str | None = None
    ) -> list[TableInfo]:
        """Tables and views outside the system-owned schemas."""

    @abstractmethod
    async def list_columns(
        self, conn: AsyncConnection, schema: str, table: str
    ) -> list[ColumnInfo]:
        """Column metadata for one table, in declaration order."""

    @abstractmethod
    async def explain(
        self, conn: AsyncConnection, statement: str, params: dict[str, Any], plan_id: str
    ) -> PlanEstimate:
        """Ask the engine for its execution plan without running the statement."""

    async def cleanup_plan(self, conn: AsyncConnection, plan_id: str) -> None:
        """Remove any plan artifacts ``explain`` left behind. Default: none."""

    def qualify(self, schema: str | None, table: str) -> str:
        return f"{schema}.{table}" if schema else table

    def snapshot_sql(self, source: str, backup: str) -> str:
        return f"CREATE TABLE {backup} AS SELECT * FROM {source}"

    def clear_table_sql(self, table: str) -> str:
        # Transactional on every engine, unlike TRUNCATE on most of them.
        return f"DELETE FROM {table}"

    def restore_sql(self, table: str, backup: str) -> str:
        return f"INSERT INTO {table} SELECT * FROM {backup}"

    def _schema_exclusion(self, column: str) -> str:
        quoted = ", ".join(f"'{s}'" for s in sorted(self.system_schemas))
        return f"{column} NOT IN ({quoted})"
