"""Dry run — estimate what a statement would do without letting it do it.

Each probe runs in its own transaction that is always rolled back, and
anything that cannot be worked out is reported as unknown with a warning
rather than failing the request: a dry run is advisory.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from sqlgate.adapters.base import PlanEstimate, TargetDialect
from sqlgate.adapters.dialects import get_dialect
from sqlgate.models.query import QueryStatus
from sqlgate.models.target import Target
from sqlgate.models.user import User
from sqlgate.schemas.query import DryRunResult
from sqlgate.services import query_service, target_service
from sqlgate.services.pool_manager import PoolManager
from sqlgate.services.workflow import require_status
from sqlgate.utils.sql import (
    bind_parameters,
    build_count_query,
    classify_statement,
    count_values_rows,
    referenced_parameters,
)

logger = logging.getLogger(__name__)

DRY_RUN_STATUSES = (
    QueryStatus.DRAFT,
    QueryStatus.SUBMITTED,
    QueryStatus.TEAM_APPROVED,
    QueryStatus.APPROVED,
)


def _describe(exc: Exception) -> str:
    return str(getattr(exc, "orig", None) or exc).splitlines()[0]


async def _count_affected_rows(
    conn: AsyncConnection, statement: str, params: dict[str, Any], warnings: list[str]
) -> int | None:
    count_sql = build_count_query(statement)
    if count_sql is None:
        rows = count_values_rows(statement)
        if rows is None:
            warnings.append("Could not determine the affected table; affected rows unknown")
        return rows

    wanted = referenced_parameters(count_sql)
    trans = await conn.begin()
    try:
        result = await conn.execute(
            text(count_sql), {k: v for k, v in params.items() if k in wanted}
        )
        return int(result.scalar() or 0)
    except SQLAlchemyError as exc:
        warnings.append(f"Row count estimate failed: {_describe(exc)}")
        return None
    finally:
        await trans.rollback()


async def _explain(
    conn: AsyncConnection,
    dialect: TargetDialect,
    statement: str,
    params: dict[str, Any],
    warnings: list[str],
) -> PlanEstimate:
    plan_id = f"SG{uuid.uuid4().hex[:20].upper()}"
    trans = await conn.begin()
    try:
        return await dialect.explain(conn, statement, params, plan_id)
    except SQLAlchemyError as exc:
        warnings.append(f"Execution plan unavailable: {_describe(exc)}")
        return PlanEstimate()
    finally:
        try:
            await dialect.cleanup_plan(conn, plan_id)
        except SQLAlchemyError as exc:
            # The rollback below discards the plan rows anyway.
            logger.warning("Plan cleanup for %s failed: %s", plan_id, exc)
        await trans.rollback()


async def estimate_plan(
    pools: PoolManager,
    target: Target,
    statement: str,
    parameters: list[dict[str, Any]],
) -> DryRunResult:
    dialect = get_dialect(target.dialect)
    params = bind_parameters(statement, parameters)
    warnings: list[str] = []
    affected: int | None = None

    async with pools.acquire(target) as conn:
        if not classify_statement(statement).is_read_only:
            affected = await _count_affected_rows(conn, statement, params, warnings)
        plan = await _explain(conn, dialect, statement, params, warnings)

    return DryRunResult(
        estimated_rows=affected if affected is not None else plan.estimated_rows,
        estimated_cost=plan.estimated_cost,
        plan_text=plan.plan_text,
        warnings=warnings,
    )


async def dry_run_query(
    db: AsyncSession, pools: PoolManager, query_id: str, caller: User
) -> DryRunResult:
    """Estimate a stored query and keep the result on the record."""
    record = await query_service.require_query(db, query_id)
    require_status(record, *DRY_RUN_STATUSES, action="dry-run")
    target = await target_service.require_target(db, record.target_id)

    result = await estimate_plan(pools, target, record.statement, json.loads(record.parameters))

    record.is_dry_run = True
    record.estimated_rows = result.estimated_rows
    record.estimated_cost = result.estimated_cost
    record.plan_text = result.plan_text
    record.dry_run_warnings = json.dumps(result.warnings)
    await db.commit()
    await db.refresh(record)
    logger.info(
        "Dry run of query %s by %s: rows=%s cost=%s warnings=%d",
        record.id, caller.username, result.estimated_rows, result.estimated_cost, len(result.warnings),
    )
    return result
