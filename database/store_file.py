"""
FileFlowStore — JSON file-backed flow store with persistence across restarts.

Data layout:
  {data_dir}/
    flows.json          {"instance:sector": flow dict, ...}
    process_logs.json   [process log dict, ...]

Features:
  - Survives process restarts (unlike InMemoryFlowStore)
  - No external dependencies (no database server)
  - Flushes on every mutation, atomic rename
  - Single-process only (no concurrent write safety)

Best for: small deployments, demos, hand-edited flow files.
"""
from __future__ import annotations

import json
import structlog
from pathlib import Path
from typing import Any, Optional

from database.store_memory import InMemoryFlowStore
from models.schemas import FlowDefinition, ProcessLog

logger = structlog.get_logger()

_COLLECTIONS = ["flows", "process_logs"]


class FileFlowStore(InMemoryFlowStore):
    """
    Extends InMemoryFlowStore with JSON file persistence.

    On init: loads all data from JSON files into memory.
    On every write: flushes the changed collection to disk.
    """

    def __init__(self, data_dir: str = "./data"):
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._load_all()
        logger.info("file_flow_store_initialized", data_dir=str(self._data_dir))

    # ── Load / Save ───────────────────────────────────────

    def _file_path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _load_all(self):
        for collection in _COLLECTIONS:
            path = self._file_path(collection)
            if not path.exists():
                continue
            try:
                with open(path, "r") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.warning("file_store_load_error", collection=collection, error=str(e))
                continue
            self._set_collection(collection, data)
            logger.debug("file_store_loaded", collection=collection, records=len(data))

    def _set_collection(self, collection: str, data: Any):
        if collection == "flows":
            self._flows = data if isinstance(data, dict) else {}
            ids = [f.get("id") for f in self._flows.values() if isinstance(f.get("id"), int)]
            self._next_id = max(ids, default=0) + 1
        elif collection == "process_logs":
            self._process_logs = data if isinstance(data, list) else []

    def _get_collection_data(self, collection: str) -> Any:
        mapping = {
            "flows": self._flows,
            "process_logs": self._process_logs,
        }
        return mapping.get(collection, {})

    def _flush_collection(self, collection: str):
        path = self._file_path(collection)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._get_collection_data(collection), f, indent=2, default=str)
        tmp_path.replace(path)

    def flush_all(self):
        for c in _COLLECTIONS:
            self._flush_collection(c)
        logger.info("file_store_flushed_all")

    # ── Write methods trigger persistence ──────────────────

    async def save_flow_definition(self, definition: FlowDefinition) -> FlowDefinition:
        result = await super().save_flow_definition(definition)
        self._flush_collection("flows")
        return result

    async def delete_flow(self, instance: str, sector_id: int) -> bool:
        removed = await super().delete_flow(instance, sector_id)
        if removed:
            self._flush_collection("flows")
        return removed

    async def save_process_log(self, record: ProcessLog) -> None:
        await super().save_process_log(record)
        self._flush_collection("process_logs")
