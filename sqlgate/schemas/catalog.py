"""Table catalog and metadata-discovery schemas."""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, field_validator


class ColumnInfo(BaseModel):
    name: str
    data_type: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    nullable: bool = True


class TableInfo(BaseModel):
    schema_name: str
    table_name: str
    table_type: str = "TABLE"  # TABLE | VIEW
    row_count: int | None = None
    columns: list[ColumnInfo] = []


class CatalogTableResponse(BaseModel):
    id: int
    target_id: str
    schema_name: str
    table_name: str
    table_type: str
    row_count: int | None
    columns: list[ColumnInfo]
    created_at: datetime

    @field_validator("columns", mode="before")
    @classmethod
    def parse_columns(cls, v: Any) -> list:
        if isinstance(v, str):
            return json.loads(v)
        return v

    model_config = {"from_attributes": True}


class TableListing(BaseModel):
    """Tables for a target; ``source`` says whether they came live or from the catalog."""
    target_id: str
    source: Literal["live", "catalog"]
    tables: list[TableInfo]


class DiscoverRequest(BaseModel):
    schema_filter: str | None = None


class DiscoveryResult(BaseModel):
    target_id: str
    source: Literal["live", "catalog"] = "live"
    tables_discovered: int
    tables_added: int
    skipped: list[str] = []
    tables: list[TableInfo]
