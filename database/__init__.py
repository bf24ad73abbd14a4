"""
Database layer — Multi-backend flow persistence.

Backends:
  - SQL (PostgreSQL / MySQL / SQLite via SQLAlchemy async)
  - In-memory (dict-based, for development/testing)
  - File (JSON files on disk, for small deployments)

Quick start:
  from database import create_store, get_store
  store = create_store({"store_backend": "memory"})
  flow = await store.get_flow_definition("vollo", 3)
"""
from database.models import (
    Base, MessageFlowRow, MessageFlowStepRow, ChatRow, ProcessLogRow,
)
from database.session import (
    get_engine, get_session, init_db, close_db, build_engine, build_session_factory,
)
from database.store_base import BaseFlowStore
from database.store import SqlFlowStore
from database.store_memory import InMemoryFlowStore
from database.store_file import FileFlowStore
from database.store_factory import create_store, create_configured_store, get_store, reset_store

__all__ = [
    # ORM models
    "Base", "MessageFlowRow", "MessageFlowStepRow", "ChatRow", "ProcessLogRow",
    # Session management
    "get_engine", "get_session", "init_db", "close_db",
    "build_engine", "build_session_factory",
    # Store interface
    "BaseFlowStore",
    # Store backends
    "SqlFlowStore", "InMemoryFlowStore", "FileFlowStore",
    # Factory
    "create_store", "create_configured_store", "get_store", "reset_store",
]
