"""Approval request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from sqlgate.schemas.query import QueryResponse


class ApprovalResolve(BaseModel):
    decision: str = Field(..., pattern=r"^(approved|rejected)$")
    comment: str = ""


class ApprovalResponse(BaseModel):
    id: str
    query_id: str
    role: str
    approver_id: str
    status: str
    comment: str
    resolved_by: str | None
    resolved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PendingApproval(BaseModel):
    approval: ApprovalResponse
    query: QueryResponse
