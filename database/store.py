"""
SqlStateStore — Portable SQL persistence for workflow state.

Upsert is a select-then-update/insert inside one transaction, keyed by
the unique (platform, user_id) index; no dialect-specific ON CONFLICT.
"""
from __future__ import annotations

import json
import structlog
from typing import Optional

from sqlalchemy import select, delete

from database.models import ChatStateRow
from database.session import get_session
from database.store_base import BaseStateStore
from models.schemas import ChatState, PaginationState

logger = structlog.get_logger()


class SqlStateStore(BaseStateStore):
    """
    Persistent state store backed by any SQLAlchemy-supported database.
    Works with PostgreSQL, MySQL 8+, and SQLite.
    """

    async def save(self, state: ChatState) -> None:
        pagination = state.pagination.model_dump() if state.pagination else None
        data = state.model_dump(mode="json")["data"]
        async with get_session() as db:
            stmt = select(ChatStateRow).where(
                ChatStateRow.platform == state.platform,
                ChatStateRow.user_id == state.user_id,
            )
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = ChatStateRow(platform=state.platform, user_id=state.user_id)
                db.add(row)
            row.chat_id = state.chat_id
            row.workflow_id = state.workflow_id
            row.current_step = state.current_step
            row.data = data
            row.pagination = pagination
            row.updated_at = state.updated_at

    async def load(self, platform: str, user_id: str) -> Optional[ChatState]:
        async with get_session() as db:
            stmt = select(ChatStateRow).where(
                ChatStateRow.platform == platform,
                ChatStateRow.user_id == user_id,
            )
            row = (await db.execute(stmt)).scalar_one_or_none()
            return self._row_to_state(row) if row else None

    async def delete(self, platform: str, user_id: str) -> None:
        async with get_session() as db:
            await db.execute(
                delete(ChatStateRow).where(
                    ChatStateRow.platform == platform,
                    ChatStateRow.user_id == user_id,
                )
            )

    @staticmethod
    def _row_to_state(row: ChatStateRow) -> ChatState:
        data = row.data or {}
        # Some drivers hand JSON columns back as text
        if isinstance(data, str):
            data = json.loads(data)
        pagination = row.pagination
        if isinstance(pagination, str):
            pagination = json.loads(pagination)
        return ChatState(
            platform=row.platform,
            user_id=row.user_id,
            chat_id=row.chat_id,
            workflow_id=row.workflow_id,
            current_step=row.current_step,
            data=data,
            pagination=PaginationState(**pagination) if pagination else None,
            updated_at=row.updated_at,
        )
