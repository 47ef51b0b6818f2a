"""
FileStateStore — JSON file-backed store with persistence across restarts.

Data layout:
  {data_dir}/
    chat_states.json      {"platform:user_id": {...state...}, ...}

Features:
  - Survives process restarts (unlike InMemoryStateStore)
  - No external dependencies (no database server)
  - Atomic writes (temp file + rename) on every mutation
  - Single-process only (no concurrent write safety)

Best for: small deployments, demos, edge devices.
"""
from __future__ import annotations

import json
import os
import structlog
from pathlib import Path
from typing import Optional

from database.store_memory import InMemoryStateStore
from models.schemas import ChatState

logger = structlog.get_logger()

_FILENAME = "chat_states.json"


class FileStateStore(InMemoryStateStore):
    """
    Extends InMemoryStateStore with JSON file persistence.

    On init: loads all states from disk into memory.
    On every write: flushes the whole collection to disk.
    """

    def __init__(self, data_dir: str = "./data"):
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._load_all()
        logger.info("file_store_initialized", data_dir=str(self._data_dir))

    @property
    def path(self) -> Path:
        return self._data_dir / _FILENAME

    def _load_all(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("file_store_load_error", path=str(self.path), error=str(e))
            return
        self._states = data if isinstance(data, dict) else {}
        logger.debug("file_store_loaded", records=len(self._states))

    def _flush(self):
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(self._states, f, ensure_ascii=False, default=str)
        os.replace(tmp, self.path)

    async def save(self, state: ChatState) -> None:
        await super().save(state)
        self._flush()

    async def delete(self, platform: str, user_id: str) -> None:
        await super().delete(platform, user_id)
        self._flush()
