"""
Store Factory — picks the flow store backend named in configuration.

settings.yaml:
    database:
      url: "sqlite:///./routing_flows.db"   # application DB, used by "sql"
      store_backend: memory                 # sql | memory | file
      store_file_dir: ./data                # file backend only

The first store created becomes the process-wide store returned by
get_store(); reset_store() drops it.

    store = create_configured_store()       # from settings.database
    store = create_store({"store_backend": "file", "store_file_dir": "/tmp/flows"})
"""
from __future__ import annotations

import structlog
from typing import Any, Callable, Optional, Union

from config.settings import DatabaseConfig, get_settings
from database.store_base import BaseFlowStore

logger = structlog.get_logger()

_instance: Optional[BaseFlowStore] = None


def _sql_store(options: dict[str, Any]) -> BaseFlowStore:
    from database.store import SqlFlowStore
    url = options.get("url")
    if not url:
        # shares the application engine from database.session
        return SqlFlowStore()
    from database.session import build_engine, build_session_factory
    return SqlFlowStore(build_session_factory(build_engine(url)))


def _file_store(options: dict[str, Any]) -> BaseFlowStore:
    from database.store_file import FileFlowStore
    return FileFlowStore(data_dir=options.get("store_file_dir") or "./data")


def _memory_store(options: dict[str, Any]) -> BaseFlowStore:
    from database.store_memory import InMemoryFlowStore
    return InMemoryFlowStore()


BACKENDS: dict[str, Callable[[dict[str, Any]], BaseFlowStore]] = {
    "sql": _sql_store,
    "file": _file_store,
    "memory": _memory_store,
}


def create_store(config: Union[dict, DatabaseConfig, None] = None) -> BaseFlowStore:
    """
    Create the flow store (once per process) from a config dict or
    DatabaseConfig. Keys: store_backend, store_file_dir, url.
    An unknown backend name raises ValueError.
    """
    global _instance
    if _instance is not None:
        return _instance

    if isinstance(config, DatabaseConfig):
        options = {"store_backend": config.store_backend,
                   "store_file_dir": config.store_file_dir}
    else:
        options = dict(config or {})
    backend = options.get("store_backend") or "memory"

    factory = BACKENDS.get(backend)
    if factory is None:
        raise ValueError(f"Unknown flow store backend '{backend}' (expected one of {sorted(BACKENDS)})")

    _instance = factory(options)
    logger.info("store_created", backend=backend, store=type(_instance).__name__)
    return _instance


def create_configured_store() -> BaseFlowStore:
    """Create the store named by settings.database."""
    return create_store(get_settings().database)


def get_store() -> BaseFlowStore:
    """Return the process-wide store, creating an in-memory one if none exists."""
    return _instance if _instance is not None else create_store()


def reset_store() -> None:
    """Forget the process-wide store (for testing)."""
    global _instance
    _instance = None
