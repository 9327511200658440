"""Execution and rollback of approved queries.

Mutating statements are preceded by a full copy of the table they touch
(``<table>_BACKUP_<query id>``); ``rollback`` restores the table from that copy.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any, NamedTuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from sqlgate.adapters.base import TargetDialect
from sqlgate.adapters.dialects import get_dialect
from sqlgate.config import settings
from sqlgate.errors import ConnectivityError, NotRollbackCapableError, RollbackError
from sqlgate.models.query import QueryRecord, QueryStatus
from sqlgate.models.target import Target
from sqlgate.models.user import User
from sqlgate.schemas.query import ExecutionResult, RollbackResult
from sqlgate.services import query_service, target_service
from sqlgate.services.authorization import Action, Authorizer
from sqlgate.services.pool_manager import PoolManager
from sqlgate.services.workflow import claim, release, require_status, transition
from sqlgate.utils.sql import backup_table_name, bind_parameters, extract_target_table

logger = logging.getLogger(__name__)


class Snapshot(NamedTuple):
    source_table: str
    backup_table: str
    created_at: datetime


class Outcome(NamedTuple):
    rows_affected: int | None
    preview: list[dict[str, Any]] | None
    truncated: bool


class ExecutionEngine:
    def __init__(
        self,
        pools: PoolManager,
        authorizer: Authorizer,
        *,
        preview_limit: int | None = None,
        backup_schema: str | None = None,
    ):
        self.pools = pools
        self.authorizer = authorizer
        self.preview_limit = preview_limit if preview_limit is not None else settings.preview_row_limit
        self.backup_schema = backup_schema if backup_schema is not None else settings.backup_schema

    # ── Execute ───────────────────────────────────────────────────

    async def execute(self, db: AsyncSession, query_id: str, caller: User) -> ExecutionResult:
        record = await query_service.require_query(db, query_id)
        await self.authorizer.authorize(caller, Action.EXECUTE, record)
        require_status(record, QueryStatus.APPROVED, action="execute")
        record_id = record.id
        target = await target_service.require_target(db, record.target_id)
        params = bind_parameters(record.statement, json.loads(record.parameters))

        # The loaded record may be stale; the claim re-checks status in the store.
        await claim(db, record_id, QueryStatus.APPROVED, "executed_by", caller.id)
        await db.refresh(record)
        return await self._execute(db, record, target, params, caller)

    async def _snapshot(
        self, conn: AsyncConnection, dialect: TargetDialect, record: QueryRecord
    ) -> Snapshot | None:
        table, ok = extract_target_table(record.statement)
        if not ok:
            logger.warning("Query %s: target table not recognised, executing without backup", record.id)
            return None
        backup = backup_table_name(table, record.id, self.backup_schema)
        async with conn.begin():
            await conn.execute(text(dialect.snapshot_sql(table, backup)))
        logger.info("Query %s: snapshot of %s taken as %s", record.id, table, backup)
        return Snapshot(table, backup, datetime.now())

    async def _run(self, conn: AsyncConnection, statement: str, params: dict[str, Any]) -> Outcome:
        async with conn.begin():
            result = await conn.execute(text(statement), params)
            if not result.returns_rows:
                return Outcome(result.rowcount if result.rowcount >= 0 else None, None, False)

            keys = list(result.keys())
            preview: list[dict[str, Any]] = []
            total = 0
            for row in result:
                total += 1
                if total <= self.preview_limit:
                    preview.append(dict(zip(keys, row)))
        # Round-trip through JSON so stored and returned previews match.
        preview = json.loads(json.dumps(preview, default=str))
        return Outcome(total, preview, total > self.preview_limit)

    async def _execute(
        self, db: AsyncSession, record: QueryRecord, target: Target, params: dict[str, Any], caller: User
    ) -> ExecutionResult:
        dialect = get_dialect(target.dialect)
        snapshot: Snapshot | None = None
        started = time.perf_counter()
        try:
            async with self.pools.acquire(target) as conn:
                if not record.kind.is_read_only:
                    snapshot = await self._snapshot(conn, dialect, record)
                outcome = await self._run(conn, record.statement, params)
        except (SQLAlchemyError, ConnectivityError, OSError) as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            message = str(getattr(exc, "orig", None) or exc)
            await transition(
                db,
                record,
                QueryStatus.APPROVED,
                QueryStatus.FAILED,
                error_message=message,
                elapsed_ms=elapsed_ms,
                executed_at=datetime.now(),
                executed_by=caller.id,
                **self._rollback_fields(snapshot),
            )
            await db.commit()
            await db.refresh(record)
            logger.error("Query %s failed on %s after %.1f ms: %s", record.id, target.id, elapsed_ms, message)
            return ExecutionResult(
                query_id=record.id,
                success=False,
                status=record.status,
                elapsed_ms=elapsed_ms,
                error_message=message,
                backup_table=record.backup_table,
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        await transition(
            db,
            record,
            QueryStatus.APPROVED,
            QueryStatus.EXECUTED,
            rows_affected=outcome.rows_affected,
            elapsed_ms=elapsed_ms,
            preview_rows=json.dumps(outcome.preview) if outcome.preview is not None else None,
            preview_truncated=outcome.truncated,
            error_message=None,
            executed_at=datetime.now(),
            executed_by=caller.id,
            **self._rollback_fields(snapshot),
        )
        await db.commit()
        await db.refresh(record)
        logger.info(
            "Query %s executed on %s: %s rows in %.1f ms", record.id, target.id, outcome.rows_affected, elapsed_ms
        )
        return ExecutionResult(
            query_id=record.id,
            success=True,
            status=record.status,
            rows_affected=outcome.rows_affected,
            elapsed_ms=elapsed_ms,
            preview_rows=outcome.preview,
            preview_truncated=outcome.truncated,
            backup_table=record.backup_table,
        )

    @staticmethod
    def _rollback_fields(snapshot: Snapshot | None) -> dict[str, Any]:
        if snapshot is None:
            return {"can_rollback": False}
        return {
            "can_rollback": True,
            "backup_table": snapshot.backup_table,
            "backup_source_table": snapshot.source_table,
            "backup_created_at": snapshot.created_at,
        }

    # ── Rollback ──────────────────────────────────────────────────

    async def rollback(self, db: AsyncSession, query_id: str, caller: User) -> RollbackResult:
        record = await query_service.require_query(db, query_id)
        await self.authorizer.authorize(caller, Action.ROLLBACK, record)
        require_status(record, QueryStatus.EXECUTED, action="roll back")
        if not record.has_rollback_metadata:
            raise NotRollbackCapableError(f"Query {record.id} has no backup to restore from")
        record_id = record.id
        target = await target_service.require_target(db, record.target_id)

        await claim(db, record_id, QueryStatus.EXECUTED, "rolled_back_by", caller.id)
        await db.refresh(record)
        try:
            return await self._rollback(db, record, target, caller)
        except (RollbackError, ConnectivityError):
            # The restore transaction did not commit, so the table is as executed.
            await release(db, record_id, QueryStatus.EXECUTED, "rolled_back_by", caller.id)
            raise

    async def _restore(
        self, conn: AsyncConnection, dialect: TargetDialect, table: str, backup: str, query_id: str
    ) -> int | None:
        """Replace the contents of ``table`` with ``backup`` in one transaction."""
        trans = await conn.begin()
        try:
            await conn.execute(text(dialect.clear_table_sql(table)))
            restored = await conn.execute(text(dialect.restore_sql(table, backup)))
            await trans.commit()
        except SQLAlchemyError as exc:
            try:
                await trans.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.critical("Compensating rollback of %s failed: %s", table, rollback_exc)
            logger.critical(
                "Restore of %s from %s failed for query %s; table state needs checking: %s",
                table, backup, query_id, exc,
            )
            raise RollbackError(f"Restoring {table} from {backup} failed: {exc}") from exc
        return restored.rowcount if restored.rowcount >= 0 else None

    async def _rollback(self, db: AsyncSession, record: QueryRecord, target: Target, caller: User) -> RollbackResult:
        dialect = get_dialect(target.dialect)
        record_id, table, backup = record.id, record.backup_source_table, record.backup_table

        async with self.pools.acquire(target) as conn:
            rows_restored = await self._restore(conn, dialect, table, backup, record_id)

        await transition(
            db,
            record,
            QueryStatus.EXECUTED,
            QueryStatus.ROLLED_BACK,
            rolled_back_at=datetime.now(),
            rolled_back_by=caller.id,
        )
        await db.commit()
        await db.refresh(record)
        logger.info("Query %s rolled back: %s restored from %s", record_id, table, backup)
        return RollbackResult(
            query_id=record_id,
            status=record.status,
            restored_table=table,
            backup_table=backup,
            rows_restored=rows_restored,
        )
