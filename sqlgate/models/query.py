"""QueryRecord ORM model — one submitted statement and its lifecycle."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sqlgate.database import Base


class QueryStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    TEAM_APPROVED = "team_approved"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class QueryType(StrEnum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DDL = "ddl"  # anything unrecognised, treated as mutating

    @property
    def is_read_only(self) -> bool:
        return self is QueryType.SELECT


class QueryRecord(Base):
    __tablename__ = "queries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    statement: Mapped[str] = mapped_column(Text)
    query_type: Mapped[str] = mapped_column(String(16))
    parameters: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of {name, type, value}
    target_id: Mapped[str] = mapped_column(ForeignKey("targets.id"))
    status: Mapped[str] = mapped_column(String(32), default=QueryStatus.DRAFT)
    submitted_by: Mapped[str] = mapped_column(ForeignKey("users.id"))
    team_approver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    skip_approver_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Dry run snapshot
    is_dry_run: Mapped[bool] = mapped_column(Boolean, default=False)
    estimated_rows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    plan_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    dry_run_warnings: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of str

    # Execution snapshot
    rows_affected: Mapped[int | None] = mapped_column(Integer, nullable=True)
    elapsed_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    preview_rows: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list of row dicts
    preview_truncated: Mapped[bool] = mapped_column(Boolean, default=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Rollback metadata
    can_rollback: Mapped[bool] = mapped_column(Boolean, default=False)
    backup_table: Mapped[str | None] = mapped_column(String(255), nullable=True)
    backup_source_table: Mapped[str | None] = mapped_column(String(255), nullable=True)
    backup_created_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rolled_back_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rolled_back_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @property
    def kind(self) -> QueryType:
        return QueryType(self.query_type)

    @property
    def has_rollback_metadata(self) -> bool:
        return self.can_rollback and bool(self.backup_table)
