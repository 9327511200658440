"""Query service — create, edit and submit query records."""

from __future__ import annotations

import json
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import NotFoundError, ValidationError
from sqlgate.models.approval import ApproverRole
from sqlgate.models.query import QueryRecord, QueryStatus, QueryType
from sqlgate.models.target import Target
from sqlgate.models.user import User
from sqlgate.schemas.query import QueryCreate, QueryParameter, QueryUpdate
from sqlgate.services.approver_policy import ApproverPolicy
from sqlgate.services.authorization import Action, Authorizer
from sqlgate.services.workflow import open_approval, require_status, transition
from sqlgate.utils.sql import bind_parameters, classify_statement

logger = logging.getLogger(__name__)


async def list_queries(
    db: AsyncSession, submitted_by: str | None = None, status: str | None = None
) -> list[QueryRecord]:
    stmt = select(QueryRecord).order_by(QueryRecord.created_at.desc())
    if submitted_by:
        stmt = stmt.where(QueryRecord.submitted_by == submitted_by)
    if status:
        stmt = stmt.where(QueryRecord.status == status)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_query(db: AsyncSession, query_id: str) -> QueryRecord | None:
    return await db.get(QueryRecord, query_id)


async def require_query(db: AsyncSession, query_id: str) -> QueryRecord:
    record = await db.get(QueryRecord, query_id)
    if not record:
        raise NotFoundError(f"Query '{query_id}' not found")
    return record


def _checked_statement(statement: str, parameters: list[QueryParameter], declared: str | None) -> QueryType:
    if not statement.strip():
        raise ValidationError("Statement is empty")
    query_type = classify_statement(statement)
    if declared and declared != query_type:
        raise ValidationError(
            f"Statement reads as '{query_type}' but was declared as '{declared}'"
        )
    # Fails early on bad or missing parameter values.
    bind_parameters(statement, [p.model_dump() for p in parameters])
    return query_type


def _dump_parameters(parameters: list[QueryParameter]) -> str:
    return json.dumps([p.model_dump(mode="json") for p in parameters])


async def create_query(db: AsyncSession, data: QueryCreate, submitter: User) -> QueryRecord:
    if not await db.get(Target, data.target_id):
        raise ValidationError(f"Unknown target '{data.target_id}'")
    query_type = _checked_statement(data.statement, data.parameters, data.query_type)

    record = QueryRecord(
        title=data.title,
        description=data.description,
        statement=data.statement,
        query_type=query_type,
        parameters=_dump_parameters(data.parameters),
        target_id=data.target_id,
        status=QueryStatus.DRAFT,
        submitted_by=submitter.id,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info("Query %s drafted by %s (%s on %s)", record.id, submitter.id, query_type, data.target_id)
    return record


async def update_draft(
    db: AsyncSession, query_id: str, data: QueryUpdate, caller: User, authorizer: Authorizer
) -> QueryRecord:
    record = await require_query(db, query_id)
    await authorizer.authorize(caller, Action.SUBMIT, record)
    require_status(record, QueryStatus.DRAFT, action="edit")

    statement = data.statement if data.statement is not None else record.statement
    parameters = (
        data.parameters
        if data.parameters is not None
        else [QueryParameter(**p) for p in json.loads(record.parameters)]
    )
    record.query_type = _checked_statement(statement, parameters, None)
    record.statement = statement
    record.parameters = _dump_parameters(parameters)
    if data.title is not None:
        record.title = data.title
    if data.description is not None:
        record.description = data.description

    await db.commit()
    await db.refresh(record)
    return record


async def submit_query(
    db: AsyncSession,
    query_id: str,
    caller: User,
    authorizer: Authorizer,
    policy: ApproverPolicy,
) -> QueryRecord:
    """Read-only statements are approved on the spot; the rest enter the approval chain."""
    record = await require_query(db, query_id)
    await authorizer.authorize(caller, Action.SUBMIT, record)
    require_status(record, QueryStatus.DRAFT, action="submit")
    now = datetime.now()

    if record.kind.is_read_only:
        await transition(db, record, QueryStatus.DRAFT, QueryStatus.APPROVED, submitted_at=now)
    else:
        submitter = await db.get(User, record.submitted_by)
        assignment = await policy.assign(db, submitter) if submitter else None
        if assignment is None:
            raise ValidationError(f"No approvers can be assigned for query {record.id}")
        await transition(
            db,
            record,
            QueryStatus.DRAFT,
            QueryStatus.SUBMITTED,
            submitted_at=now,
            team_approver_id=assignment.team_approver_id,
            skip_approver_id=assignment.skip_approver_id,
        )
        open_approval(db, record, ApproverRole.TEAM, assignment.team_approver_id)

    await db.commit()
    await db.refresh(record)
    return record
