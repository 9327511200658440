"""Metadata discovery — what tables and columns a target has.

Listing is a read-side operation, so an unreachable target degrades to the
catalog built by earlier discoveries instead of failing.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.adapters.dialects import get_dialect
from sqlgate.errors import ConnectivityError
from sqlgate.models.catalog import CatalogTable
from sqlgate.models.target import Target
from sqlgate.schemas.catalog import ColumnInfo, DiscoveryResult, TableInfo, TableListing
from sqlgate.services.pool_manager import PoolManager
from sqlgate.utils.sql import BACKUP_MARKER

logger = logging.getLogger(__name__)


def _is_backup(table: TableInfo) -> bool:
    return BACKUP_MARKER in table.table_name.upper()


async def catalog_tables(db: AsyncSession, target_id: str) -> list[TableInfo]:
    result = await db.execute(
        select(CatalogTable)
        .where(CatalogTable.target_id == target_id)
        .order_by(CatalogTable.schema_name, CatalogTable.table_name)
    )
    return [
        TableInfo(
            schema_name=row.schema_name,
            table_name=row.table_name,
            table_type=row.table_type,
            row_count=row.row_count,
            columns=[ColumnInfo(**c) for c in json.loads(row.columns or "[]")],
        )
        for row in result.scalars()
    ]


async def _merge_into_catalog(db: AsyncSession, target_id: str, tables: list[TableInfo]) -> int:
    result = await db.execute(
        select(CatalogTable.schema_name, CatalogTable.table_name).where(CatalogTable.target_id == target_id)
    )
    known = {(schema, name) for schema, name in result}

    added = 0
    for info in tables:
        if (info.schema_name, info.table_name) in known:
            continue
        db.add(
            CatalogTable(
                target_id=target_id,
                schema_name=info.schema_name,
                table_name=info.table_name,
                table_type=info.table_type,
                row_count=info.row_count,
                columns=json.dumps([c.model_dump() for c in info.columns]),
            )
        )
        known.add((info.schema_name, info.table_name))
        added += 1
    await db.commit()
    return added


async def discover_tables(
    db: AsyncSession, pools: PoolManager, target: Target, schema_filter: str | None = None
) -> DiscoveryResult:
    dialect = get_dialect(target.dialect)
    found: list[TableInfo] = []
    skipped: list[str] = []

    try:
        async with pools.acquire(target) as conn:
            listed = [t for t in await dialect.list_tables(conn, schema_filter) if not _is_backup(t)]
            for info in listed:
                try:
                    info.columns = await dialect.list_columns(conn, info.schema_name, info.table_name)
                except SQLAlchemyError as exc:
                    await conn.rollback()
                    qualified = dialect.qualify(info.schema_name, info.table_name)
                    logger.warning("Skipping %s on %s: column fetch failed: %s", qualified, target.id, exc)
                    skipped.append(qualified)
                    continue
                found.append(info)
            await conn.rollback()
    except (ConnectivityError, SQLAlchemyError) as exc:
        logger.warning("Discovery on %s fell back to the catalog: %s", target.id, exc)
        cached = await catalog_tables(db, target.id)
        return DiscoveryResult(
            target_id=target.id,
            source="catalog",
            tables_discovered=len(cached),
            tables_added=0,
            tables=cached,
        )

    added = await _merge_into_catalog(db, target.id, found)
    logger.info(
        "Discovered %d tables on %s (%d new, %d skipped)", len(found), target.id, added, len(skipped)
    )
    return DiscoveryResult(
        target_id=target.id,
        tables_discovered=len(found),
        tables_added=added,
        skipped=skipped,
        tables=found,
    )


async def list_tables(db: AsyncSession, pools: PoolManager, target: Target) -> TableListing:
    dialect = get_dialect(target.dialect)
    try:
        async with pools.acquire(target) as conn:
            tables = await dialect.list_tables(conn)
            await conn.rollback()
    except (ConnectivityError, SQLAlchemyError) as exc:
        logger.warning("Target %s unreachable, serving catalog tables: %s", target.id, exc)
        return TableListing(target_id=target.id, source="catalog", tables=await catalog_tables(db, target.id))
    return TableListing(
        target_id=target.id, source="live", tables=[t for t in tables if not _is_backup(t)]
    )
