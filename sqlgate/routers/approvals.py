"""Approval inbox and decision endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.deps import get_authorizer, get_current_user
from sqlgate.models.user import User
from sqlgate.schemas.approval import ApprovalResolve, ApprovalResponse, PendingApproval
from sqlgate.schemas.query import QueryResponse
from sqlgate.services import approval_service
from sqlgate.services.authorization import Authorizer

router = APIRouter()


@router.get("/pending", response_model=list[PendingApproval])
async def list_pending(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    pending = await approval_service.list_pending_approvals(db, user.id)
    return [
        PendingApproval(approval=ApprovalResponse.model_validate(a), query=QueryResponse.model_validate(q))
        for a, q in pending
    ]


@router.post("/{approval_id}/resolve", response_model=ApprovalResponse)
async def resolve_approval(
    approval_id: str,
    body: ApprovalResolve,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    authorizer: Authorizer = Depends(get_authorizer),
):
    return await approval_service.resolve_approval(db, approval_id, body, user, authorizer)
