"""QueryTemplate ORM model — reusable Jinja2 SQL templates."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sqlgate.database import Base


class QueryTemplate(Base):
    __tablename__ = "query_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[str] = mapped_column(Text, default="")
    sql_template: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(64), default="custom")
    parameters: Mapped[str] = mapped_column(Text, default="[]")  # JSON list of parameter names
    created_by: Mapped[str] = mapped_column(String(64))
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
