"""
Abstract State Store — Interface for all workflow state backends.

Implementations:
  - SqlStateStore      (PostgreSQL / MySQL / SQLite via SQLAlchemy)
  - InMemoryStateStore (dict-based, single-process, no persistence)
  - FileStateStore     (JSON file on disk, single-process, durable)

One record per (platform, user_id). ``save`` is an upsert; ``load``
returns None when the user has no active workflow.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models.schemas import ChatState


class BaseStateStore(ABC):
    """Interface that all state store backends must implement."""

    @abstractmethod
    async def save(self, state: ChatState) -> None:
        ...

    @abstractmethod
    async def load(self, platform: str, user_id: str) -> Optional[ChatState]:
        ...

    @abstractmethod
    async def delete(self, platform: str, user_id: str) -> None:
        ...

    async def exists(self, platform: str, user_id: str) -> bool:
        return await self.load(platform, user_id) is not None
