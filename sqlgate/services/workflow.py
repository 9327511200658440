"""Query lifecycle state machine.

Every status change goes through ``transition``, a compare-and-swap UPDATE
guarded by the expected current status. Two requests racing on the same
record cannot both win; the loser gets ``InvalidStateError``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import InvalidStateError
from sqlgate.models.approval import Approval, ApprovalStatus, ApproverRole
from sqlgate.models.query import QueryRecord, QueryStatus

logger = logging.getLogger(__name__)

S = QueryStatus
TRANSITIONS: dict[QueryStatus, frozenset[QueryStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.APPROVED}),  # APPROVED only for read-only statements
    S.SUBMITTED: frozenset({S.TEAM_APPROVED, S.REJECTED}),
    S.TEAM_APPROVED: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.EXECUTED, S.FAILED}),
    S.EXECUTED: frozenset({S.ROLLED_BACK}),
}

# The parent status an approval step of each role is decided from.
EXPECTED_STATUS_FOR_ROLE = {
    ApproverRole.TEAM: QueryStatus.SUBMITTED,
    ApproverRole.SKIP: QueryStatus.TEAM_APPROVED,
}


def can_transition(current: str, new: QueryStatus) -> bool:
    return new in TRANSITIONS.get(QueryStatus(current), frozenset())


def require_status(record: QueryRecord, *allowed: QueryStatus, action: str) -> None:
    if record.status not in allowed:
        expected = " or ".join(allowed)
        raise InvalidStateError(
            f"Cannot {action} query {record.id}: status is '{record.status}', expected {expected}"
        )


async def transition(
    db: AsyncSession,
    record: QueryRecord,
    current: QueryStatus,
    new: QueryStatus,
    **values: Any,
) -> None:
    """Move ``record`` from ``current`` to ``new`` unless someone got there first.

    Does not commit; the caller commits together with whatever else belongs to
    the step (e.g. the next approval record).
    """
    if not can_transition(current, new):
        raise InvalidStateError(f"Transition {current} -> {new} is not allowed")

    record_id = record.id
    result = await db.execute(
        update(QueryRecord)
        .where(QueryRecord.id == record_id, QueryRecord.status == current)
        .values(status=new, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError(f"Query {record_id} is no longer '{current}'")
    logger.info("Query %s: %s -> %s", record_id, current, new)


async def claim(db: AsyncSession, record_id: str, current: QueryStatus, holder_field: str, holder: str) -> None:
    """Take ``record_id`` for one execute or rollback and commit the claim.

    ``holder_field`` (``executed_by`` / ``rolled_back_by``) must be empty and the
    status must still be ``current``; otherwise another request owns the record.
    """
    column = getattr(QueryRecord, holder_field)
    result = await db.execute(
        update(QueryRecord)
        .where(QueryRecord.id == record_id, QueryRecord.status == current, column.is_(None))
        .values({holder_field: holder})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError(f"Query {record_id} is already being processed or is no longer '{current}'")
    await db.commit()
    logger.info("Query %s: claimed by %s while '%s'", record_id, holder, current)


async def release(db: AsyncSession, record_id: str, current: QueryStatus, holder_field: str, holder: str) -> None:
    """Drop a claim taken with ``claim`` so the operation can be retried."""
    column = getattr(QueryRecord, holder_field)
    await db.execute(
        update(QueryRecord)
        .where(QueryRecord.id == record_id, QueryRecord.status == current, column == holder)
        .values({holder_field: None})
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Query %s: claim by %s released", record_id, holder)


def open_approval(db: AsyncSession, record: QueryRecord, role: ApproverRole, approver_id: str) -> Approval:
    approval = Approval(
        query_id=record.id,
        role=role,
        approver_id=approver_id,
        status=ApprovalStatus.PENDING,
    )
    db.add(approval)
    logger.info("Query %s: %s approval requested from %s", record.id, role, approver_id)
    return approval
