"""
SQLAlchemy ORM models — Cross-database compatible.

Supports: PostgreSQL, MySQL 8+, SQLite.

  - JSON type instead of PostgreSQL-specific JSONB; SQLite stores it as TEXT.
  - Surrogate string primary key plus a unique (platform, user_id) index,
    so upserts are keyed the same way on every dialect.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import String, DateTime, Index, JSON
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


# ──────────────────────────────────────────────────────────────
#  Workflow state
# ──────────────────────────────────────────────────────────────

class ChatStateRow(Base):
    __tablename__ = "chat_states"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(128), nullable=False)
    workflow_id: Mapped[str] = mapped_column(String(64), nullable=False)
    current_step: Mapped[str] = mapped_column(String(64), nullable=False)

    data: Mapped[Any] = mapped_column(JSON, default=dict)
    pagination: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_chat_states_platform_user", "platform", "user_id", unique=True),
    )
