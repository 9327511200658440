"""Target registry request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class TargetCreate(BaseModel):
    id: str = Field(..., pattern=r"^[A-Za-z0-9_\-]+$", max_length=64)
    name: str = Field(..., max_length=128)
    host: str = ""
    port: int | None = Field(None, ge=1, le=65535)
    dialect: str = Field(..., pattern=r"^(oracle|postgresql|mysql|sqlite)$")
    version: str = ""
    database: str = ""
    username: str = ""
    credential_ref: str | None = None
    category: str = Field("test", pattern=r"^(production|test|reporting|audit)$")
    status: str = Field("online", pattern=r"^(online|offline|maintenance)$")
    pool_min: int | None = Field(None, ge=0)
    pool_max: int | None = Field(None, ge=1)
    pool_timeout: float | None = Field(None, gt=0)


class TargetStatusUpdate(BaseModel):
    status: str = Field(..., pattern=r"^(online|offline|maintenance)$")


class TargetResponse(BaseModel):
    id: str
    name: str
    host: str
    port: int | None
    dialect: str
    version: str
    database: str
    username: str
    credential_ref: str | None
    category: str
    status: str
    is_reachable: bool | None
    last_checked_at: datetime | None
    pool_min: int | None
    pool_max: int | None
    pool_timeout: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConnectionTestResult(BaseModel):
    target_id: str
    success: bool
    checked_at: datetime
