"""Query record endpoints: authoring, submission, dry run, execution and rollback."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.deps import (
    get_approver_policy,
    get_authorizer,
    get_current_user,
    get_execution_engine,
    get_pool_manager,
)
from sqlgate.models.user import User
from sqlgate.schemas.approval import ApprovalResponse
from sqlgate.schemas.query import (
    DryRunRequest,
    DryRunResult,
    ExecutionResult,
    QueryCreate,
    QueryResponse,
    QueryUpdate,
    RollbackResult,
)
from sqlgate.services import approval_service, dry_run_service, query_service, target_service
from sqlgate.services.approver_policy import ApproverPolicy
from sqlgate.services.authorization import Authorizer
from sqlgate.services.execution_service import ExecutionEngine
from sqlgate.services.pool_manager import PoolManager

router = APIRouter()


@router.get("/", response_model=list[QueryResponse])
async def list_my_queries(
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await query_service.list_queries(db, submitted_by=user.id, status=status)


@router.post("/", response_model=QueryResponse, status_code=201)
async def create_query(
    data: QueryCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await query_service.create_query(db, data, user)


@router.post("/dry-run", response_model=DryRunResult)
async def dry_run_statement(
    body: DryRunRequest,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
    user: User = Depends(get_current_user),
):
    """Estimate a statement that has not been saved as a query yet."""
    target = await target_service.require_target(db, body.target_id)
    return await dry_run_service.estimate_plan(
        pools, target, body.statement, [p.model_dump() for p in body.parameters]
    )


@router.get("/{query_id}", response_model=QueryResponse, dependencies=[Depends(get_current_user)])
async def get_query(query_id: str, db: AsyncSession = Depends(get_db)):
    record = await query_service.get_query(db, query_id)
    if not record:
        raise HTTPException(status_code=404, detail="Query not found")
    return record


@router.patch("/{query_id}", response_model=QueryResponse)
async def update_draft(
    query_id: str,
    data: QueryUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
):
    return await query_service.update_draft(db, query_id, data, user, authorizer)


@router.post("/{query_id}/submit", response_model=QueryResponse)
async def submit_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
    policy: ApproverPolicy = Depends(get_approver_policy),
):
    return await query_service.submit_query(db, query_id, user, authorizer, policy)


@router.post("/{query_id}/dry-run", response_model=DryRunResult)
async def dry_run_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
    user: User = Depends(get_current_user),
):
    return await dry_run_service.dry_run_query(db, pools, query_id, user)


@router.post("/{query_id}/execute", response_model=ExecutionResult)
async def execute_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    engine: ExecutionEngine = Depends(get_execution_engine),
    user: User = Depends(get_current_user),
):
    return await engine.execute(db, query_id, user)


@router.post("/{query_id}/rollback", response_model=RollbackResult)
async def rollback_query(
    query_id: str,
    db: AsyncSession = Depends(get_db),
    engine: ExecutionEngine = Depends(get_execution_engine),
    user: User = Depends(get_current_user),
):
    return await engine.rollback(db, query_id, user)


@router.get(
    "/{query_id}/approvals", response_model=list[ApprovalResponse], dependencies=[Depends(get_current_user)]
)
async def list_query_approvals(query_id: str, db: AsyncSession = Depends(get_db)):
    await query_service.require_query(db, query_id)
    return await approval_service.list_approvals_for_query(db, query_id)
