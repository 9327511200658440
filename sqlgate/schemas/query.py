"""Query record request/response schemas."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class QueryParameter(BaseModel):
    name: str = Field(..., pattern=r"^[A-Za-z_]\w*$", max_length=64)
    type: str = Field("string", pattern=r"^(string|text|varchar|integer|int|number|float|decimal|numeric|boolean|bool|date|datetime|timestamp)$")
    value: Any = None


class QueryCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str = ""
    statement: str
    target_id: str
    query_type: str | None = Field(None, pattern=r"^(select|insert|update|delete|ddl)$")
    parameters: list[QueryParameter] = []


class QueryUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    statement: str | None = None
    parameters: list[QueryParameter] | None = None


class QueryResponse(BaseModel):
    id: str
    title: str
    description: str
    statement: str
    query_type: str
    parameters: list[QueryParameter]
    target_id: str
    status: str
    submitted_by: str
    team_approver_id: str | None
    skip_approver_id: str | None
    is_dry_run: bool
    estimated_rows: int | None
    estimated_cost: float | None
    plan_text: str | None
    dry_run_warnings: list[str]
    rows_affected: int | None
    elapsed_ms: float | None
    preview_rows: list[dict[str, Any]] | None
    preview_truncated: bool
    error_message: str | None
    executed_by: str | None
    can_rollback: bool
    backup_table: str | None
    backup_created_at: datetime | None
    rolled_back_by: str | None
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None
    executed_at: datetime | None
    rolled_back_at: datetime | None

    @field_validator("parameters", "dry_run_warnings", "preview_rows", mode="before")
    @classmethod
    def parse_json(cls, v: Any) -> Any:
        if isinstance(v, str):
            return json.loads(v)
        return v

    model_config = {"from_attributes": True}


class DryRunRequest(BaseModel):
    """Ad-hoc estimate for a statement that has not been saved yet."""
    target_id: str
    statement: str
    parameters: list[QueryParameter] = []


class DryRunResult(BaseModel):
    estimated_rows: int | None = None  # None = unknown
    estimated_cost: float | None = None
    plan_text: str = ""
    warnings: list[str] = []


class ExecutionResult(BaseModel):
    query_id: str
    success: bool
    status: str
    rows_affected: int | None = None
    elapsed_ms: float
    preview_rows: list[dict[str, Any]] | None = None
    preview_truncated: bool = False
    error_message: str | None = None
    backup_table: str | None = None


class RollbackResult(BaseModel):
    query_id: str
    status: str
    restored_table: str
    backup_table: str
    rows_restored: int | None = None
