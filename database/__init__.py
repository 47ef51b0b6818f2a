"""
Database layer — Multi-backend workflow state persistence.

Backends:
  - SQL (PostgreSQL / MySQL / SQLite via SQLAlchemy async)
  - In-memory (dict-based, for development/testing)
  - File (JSON file on disk, for small deployments)

Quick start:
  from config.settings import DatabaseConfig
  from database import create_store
  store = create_store(DatabaseConfig(store_backend="memory"))
  state = await store.load("telegram", "42")
"""
from database.models import Base, ChatStateRow
from database.session import async_url, close_db, get_session, init_db
from database.store_base import BaseStateStore
from database.store import SqlStateStore
from database.store_memory import InMemoryStateStore
from database.store_file import FileStateStore
from database.store_factory import create_store

__all__ = [
    # ORM models
    "Base", "ChatStateRow",
    # Session management
    "async_url", "get_session", "init_db", "close_db",
    # Store interface
    "BaseStateStore",
    # Store backends
    "SqlStateStore", "InMemoryStateStore", "FileStateStore",
    # Factory
    "create_store",
]
