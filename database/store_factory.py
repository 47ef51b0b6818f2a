"""
Pick the state store backend named by ``database.store_backend``.

    memory  dicts in this process; state is lost on restart
    file    one JSON document under ``store_file_dir``
    sql     the ``chat_states`` table behind ``database.url``
            (the caller runs ``init_db`` before the first event)
"""
from __future__ import annotations

import structlog
from typing import Callable, Optional

from config.settings import DatabaseConfig
from database.store import SqlStateStore
from database.store_base import BaseStateStore
from database.store_file import FileStateStore
from database.store_memory import InMemoryStateStore

logger = structlog.get_logger()

_BACKENDS: dict[str, Callable[[DatabaseConfig], BaseStateStore]] = {
    "memory": lambda cfg: InMemoryStateStore(),
    "file": lambda cfg: FileStateStore(data_dir=cfg.store_file_dir),
    "sql": lambda cfg: SqlStateStore(),
}


def create_store(config: Optional[DatabaseConfig] = None) -> BaseStateStore:
    config = config or DatabaseConfig()
    build = _BACKENDS.get(config.store_backend)
    if build is None:
        raise ValueError(
            f"Unknown store_backend '{config.store_backend}' (expected one of {sorted(_BACKENDS)})"
        )
    store = build(config)
    logger.info("state_store_created", backend=config.store_backend, store=type(store).__name__)
    return store
