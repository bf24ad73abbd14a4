"""
SQLAlchemy ORM models — Cross-database compatible.

Supports: PostgreSQL, MySQL 8+, SQLite.

Tables:
  - message_flows        one flow per (instance, sector)
  - message_flow_steps   ordered step records of a flow
  - chats                conversation rows (read for open-chat counts)
  - process_logs         finished ProcessingLogger records

JSON columns hold step config/connections; on PG the dialect maps JSON
to jsonb, on MySQL it is native JSON, on SQLite it is serialized TEXT.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Text, ForeignKey,
    Index, JSON, UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Message flows
# ──────────────────────────────────────────────────────────────

class MessageFlowRow(Base):
    __tablename__ = "message_flows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance: Mapped[str] = mapped_column(String(128), nullable=False)
    sector_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps: Mapped[list["MessageFlowStepRow"]] = relationship(
        back_populates="flow", lazy="selectin",
        cascade="all, delete-orphan", order_by="MessageFlowStepRow.step_number",
    )

    __table_args__ = (
        UniqueConstraint("instance", "sector_id", name="uq_message_flows_instance_sector"),
    )


class MessageFlowStepRow(Base):
    __tablename__ = "message_flow_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_flow_id: Mapped[int] = mapped_column(
        ForeignKey("message_flows.id", ondelete="CASCADE"), nullable=False,
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    next_step_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    fallback_step_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    config: Mapped[Any] = mapped_column(JSON, nullable=True)
    connections: Mapped[Any] = mapped_column(JSON, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    flow: Mapped["MessageFlowRow"] = relationship(back_populates="steps")

    __table_args__ = (
        UniqueConstraint("message_flow_id", "step_number", name="uq_flow_step_number"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type, "step_number": self.step_number,
            "next_step_id": self.next_step_id,
            "fallback_step_id": self.fallback_step_id,
            "config": self.config or {}, "connections": self.connections or {},
            "enabled": self.enabled, "description": self.description or "",
        }


# ──────────────────────────────────────────────────────────────
#  Chats (read side, for open-chat counting)
# ──────────────────────────────────────────────────────────────

class ChatRow(Base):
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance: Mapped[str] = mapped_column(String(128), nullable=False)
    contact_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sector_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    wallet_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    type: Mapped[str] = mapped_column(String(32), default="RECEPTIVE")
    priority: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_finished: Mapped[bool] = mapped_column(Boolean, default=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_chats_open_by_user", "instance", "user_id", "is_finished"),
    )


# ──────────────────────────────────────────────────────────────
#  Process logs
# ──────────────────────────────────────────────────────────────

class ProcessLogRow(Base):
    __tablename__ = "process_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance: Mapped[str] = mapped_column(String(128), default="")
    process_name: Mapped[str] = mapped_column(String(128), nullable=False)
    process_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    input: Mapped[Any] = mapped_column(JSON, nullable=True)
    output: Mapped[Any] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    log_entries: Mapped[Any] = mapped_column(JSON, default=list)

    __table_args__ = (
        Index("ix_process_logs_process", "process_name", "process_id"),
    )
