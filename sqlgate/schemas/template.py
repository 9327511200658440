"""Query template request/response schemas."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class QueryTemplateCreate(BaseModel):
    name: str = Field(..., max_length=128)
    description: str = ""
    sql_template: str  # Jinja2 body
    category: str = Field("custom", max_length=64)
    parameters: list[str] = []  # expected variable names
    is_public: bool = False


class QueryTemplateResponse(BaseModel):
    id: str
    name: str
    description: str
    sql_template: str
    category: str
    parameters: list[str]
    created_by: str
    is_public: bool
    created_at: datetime

    @field_validator("parameters", mode="before")
    @classmethod
    def parse_parameters(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v

    model_config = {"from_attributes": True}


class TemplateRender(BaseModel):
    """Render a template with the provided variables."""
    variables: dict[str, Any]


class TemplateRenderResponse(BaseModel):
    template_id: str
    rendered: str
