"""SQLAlchemy 2.0 async model for execution record persistence."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, String, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pipewatch.constants import DB_SCHEMA


class Base(DeclarativeBase):
    pass


class ExecutionRecord(Base):
    __tablename__ = "executions"
    __table_args__ = {"schema": DB_SCHEMA}

    project_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    execution_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pipeline_name: Mapped[str] = mapped_column(String(256), default="")
    current_stage: Mapped[str | None] = mapped_column(String(128), nullable=True, default=None)
    current_actions: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=None)
    # Backlog entries, each a SequencedEvent.to_dict()
    pending_messages: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    applied_events: Mapped[list] = mapped_column(
        JSONB, default=list, server_default=text("'[]'::jsonb")
    )
    locked: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false")
    )
    thread_handle: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    original_message: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=None)
    topology: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=None)
    commit: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
