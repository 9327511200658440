"""Approval ORM model — one decision step in a query's approval chain."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sqlgate.database import Base


class ApproverRole(StrEnum):
    TEAM = "team"
    SKIP = "skip"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    query_id: Mapped[str] = mapped_column(ForeignKey("queries.id"), index=True)
    role: Mapped[str] = mapped_column(String(16))  # team | skip
    approver_id: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(32), default=ApprovalStatus.PENDING)
    comment: Mapped[str] = mapped_column(Text, default="")
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
