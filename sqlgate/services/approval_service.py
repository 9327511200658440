"""Approval service — record team / skip decisions and advance the query."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import InvalidStateError, NotFoundError
from sqlgate.models.approval import Approval, ApprovalStatus, ApproverRole
from sqlgate.models.query import QueryRecord, QueryStatus
from sqlgate.models.user import User
from sqlgate.schemas.approval import ApprovalResolve
from sqlgate.services.authorization import Action, Authorizer
from sqlgate.services.workflow import EXPECTED_STATUS_FOR_ROLE, open_approval, require_status, transition

logger = logging.getLogger(__name__)


async def list_approvals_for_query(db: AsyncSession, query_id: str) -> list[Approval]:
    result = await db.execute(
        select(Approval).where(Approval.query_id == query_id).order_by(Approval.created_at)
    )
    return list(result.scalars().all())


async def list_pending_approvals(
    db: AsyncSession, approver_id: str
) -> list[tuple[Approval, QueryRecord]]:
    result = await db.execute(
        select(Approval, QueryRecord)
        .join(QueryRecord, QueryRecord.id == Approval.query_id)
        .where(Approval.approver_id == approver_id, Approval.status == ApprovalStatus.PENDING)
        .order_by(QueryRecord.submitted_at.desc())
    )
    return [(approval, record) for approval, record in result.all()]


async def get_approval(db: AsyncSession, approval_id: str) -> Approval | None:
    return await db.get(Approval, approval_id)


async def resolve_approval(
    db: AsyncSession,
    approval_id: str,
    data: ApprovalResolve,
    caller: User,
    authorizer: Authorizer,
) -> Approval:
    approval = await db.get(Approval, approval_id)
    if not approval:
        raise NotFoundError(f"Approval '{approval_id}' not found")

    role = ApproverRole(approval.role)
    await authorizer.authorize(
        caller, Action.APPROVE_TEAM if role is ApproverRole.TEAM else Action.APPROVE_SKIP, approval
    )
    record = await db.get(QueryRecord, approval.query_id)
    if not record:
        raise NotFoundError(f"Query '{approval.query_id}' not found")
    expected = EXPECTED_STATUS_FOR_ROLE[role]
    require_status(record, expected, action=f"record a {role} decision on")

    # Decisions are written once; a second decision on the same step loses here.
    approval_key = approval.id
    decided = await db.execute(
        update(Approval)
        .where(Approval.id == approval_key, Approval.status == ApprovalStatus.PENDING)
        .values(
            status=data.decision,
            comment=data.comment,
            resolved_by=caller.id,
            resolved_at=datetime.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if decided.rowcount != 1:
        await db.rollback()
        raise InvalidStateError(f"Approval {approval_key} has already been decided")

    if data.decision == ApprovalStatus.REJECTED:
        await transition(db, record, expected, QueryStatus.REJECTED)
    elif role is ApproverRole.TEAM:
        await transition(db, record, expected, QueryStatus.TEAM_APPROVED)
        open_approval(db, record, ApproverRole.SKIP, record.skip_approver_id)
    else:
        await transition(db, record, expected, QueryStatus.APPROVED)

    await db.commit()
    await db.refresh(approval)
    await db.refresh(record)
    logger.info("Approval %s (%s) %s by %s", approval.id, role, data.decision, caller.id)
    return approval
