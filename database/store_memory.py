"""
InMemoryStateStore — Dict-backed store for development and testing.

Features:
  - Zero dependencies (no database)
  - Same interface as SqlStateStore
  - All data lost on process restart

Best for: local development, unit tests, quick prototyping.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from database.store_base import BaseStateStore
from models.schemas import ChatState

logger = structlog.get_logger()


def _key(platform: str, user_id: str) -> str:
    return f"{platform}:{user_id}"


class InMemoryStateStore(BaseStateStore):
    """
    Keeps states as JSON-ready dicts so callers never share a mutable
    object with the store.
    """

    def __init__(self):
        self._states: dict[str, dict[str, Any]] = {}      # "platform:user_id" → state dict
        logger.info("inmemory_store_initialized")

    async def save(self, state: ChatState) -> None:
        self._states[_key(state.platform, state.user_id)] = state.model_dump(mode="json")

    async def load(self, platform: str, user_id: str) -> Optional[ChatState]:
        data = self._states.get(_key(platform, user_id))
        return ChatState.model_validate(data) if data else None

    async def delete(self, platform: str, user_id: str) -> None:
        self._states.pop(_key(platform, user_id), None)

    async def exists(self, platform: str, user_id: str) -> bool:
        return _key(platform, user_id) in self._states

    def __len__(self) -> int:
        return len(self._states)
