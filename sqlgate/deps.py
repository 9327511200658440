"""FastAPI dependencies shared by the routers."""

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.models.user import User
from sqlgate.services.approver_policy import ApproverPolicy
from sqlgate.services.authorization import Authorizer
from sqlgate.services.execution_service import ExecutionEngine
from sqlgate.services.pool_manager import PoolManager


async def get_current_user(
    x_user_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the ``X-User-Id`` header set by the upstream identity proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    user = await db.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def get_pool_manager(request: Request) -> PoolManager:
    return request.app.state.pools


def get_authorizer(request: Request) -> Authorizer:
    return request.app.state.authorizer


def get_approver_policy(request: Request) -> ApproverPolicy:
    return request.app.state.approver_policy


def get_execution_engine(request: Request) -> ExecutionEngine:
    return request.app.state.engine
