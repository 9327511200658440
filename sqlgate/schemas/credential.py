"""Credential request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class CredentialCreate(BaseModel):
    id: str = Field(..., pattern=r"^[A-Z0-9_]+$", max_length=128)
    description: str = ""
    value: str  # plaintext — encrypted before storage


class CredentialRotate(BaseModel):
    value: str


class CredentialResponse(BaseModel):
    id: str
    description: str
    created_at: datetime
    updated_at: datetime
    # value is NEVER returned

    model_config = {"from_attributes": True}
