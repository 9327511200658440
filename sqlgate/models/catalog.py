"""CatalogTable ORM model — tables discovered on a target, for authoring help."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from sqlgate.database import Base


class CatalogTable(Base):
    __tablename__ = "catalog_tables"
    __table_args__ = (UniqueConstraint("target_id", "schema_name", "table_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    target_id: Mapped[str] = mapped_column(ForeignKey("targets.id"))
    schema_name: Mapped[str] = mapped_column(String(128), default="")
    table_name: Mapped[str] = mapped_column(String(128))
    table_type: Mapped[str] = mapped_column(String(16), default="TABLE")  # TABLE | VIEW
    row_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    columns: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of column descriptors
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
