"""Target ORM model — a registered database endpoint statements run against."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sqlgate.database import Base


class Target(Base):
    __tablename__ = "targets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    host: Mapped[str] = mapped_column(String(255), default="")
    port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    dialect: Mapped[str] = mapped_column(String(32))  # oracle | postgresql | mysql | sqlite
    version: Mapped[str] = mapped_column(String(32), default="")  # e.g. 19c, 16
    database: Mapped[str] = mapped_column(String(512), default="")  # service / db name / file path
    username: Mapped[str] = mapped_column(String(128), default="")
    credential_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)  # Credential.id
    category: Mapped[str] = mapped_column(String(32), default="test")  # production | test | reporting | audit
    status: Mapped[str] = mapped_column(String(32), default="online")  # online | offline | maintenance
    is_reachable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    pool_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pool_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pool_timeout: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
