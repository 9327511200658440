"""Target registry — the database endpoints statements can run against."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import NotFoundError, ValidationError
from sqlgate.models.credential import Credential
from sqlgate.models.target import Target
from sqlgate.schemas.target import TargetCreate

logger = logging.getLogger(__name__)


async def list_targets(db: AsyncSession, category: str | None = None) -> list[Target]:
    stmt = select(Target).order_by(Target.name)
    if category:
        stmt = stmt.where(Target.category == category)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_target(db: AsyncSession, target_id: str) -> Target | None:
    return await db.get(Target, target_id)


async def require_target(db: AsyncSession, target_id: str) -> Target:
    target = await db.get(Target, target_id)
    if not target:
        raise NotFoundError(f"Target '{target_id}' not found")
    return target


async def register_target(db: AsyncSession, data: TargetCreate) -> Target:
    if await db.get(Target, data.id):
        raise ValidationError(f"Target '{data.id}' already exists")
    if data.pool_min is not None and data.pool_max is not None and data.pool_min > data.pool_max:
        raise ValidationError("pool_min cannot exceed pool_max")
    if data.credential_ref and not await db.get(Credential, data.credential_ref):
        raise ValidationError(f"Credential '{data.credential_ref}' is not registered")

    target = Target(**data.model_dump())
    db.add(target)
    await db.commit()
    await db.refresh(target)
    logger.info("Registered %s target %s (%s)", target.dialect, target.id, target.category)
    return target


async def set_status(db: AsyncSession, target_id: str, status: str) -> Target:
    target = await require_target(db, target_id)
    target.status = status
    await db.commit()
    await db.refresh(target)
    return target


async def record_liveness(db: AsyncSession, target: Target, reachable: bool) -> Target:
    target.is_reachable = reachable
    target.last_checked_at = datetime.now()
    await db.commit()
    await db.refresh(target)
    return target
