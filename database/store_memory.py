"""
InMemoryFlowStore — Dict-backed flow store for development and testing.

Features:
  - Zero dependencies (no database)
  - Full interface compatibility with SqlFlowStore
  - All data lost on process restart
"""
from __future__ import annotations

import structlog
from typing import Optional

from database.store_base import BaseFlowStore
from models.schemas import FlowDefinition, ProcessLog

logger = structlog.get_logger()


def _flow_key(instance: str, sector_id: int) -> str:
    return f"{instance}:{sector_id}"


class InMemoryFlowStore(BaseFlowStore):
    """
    Keeps serialized flow definitions keyed by "instance:sector_id".
    Returned definitions are fresh copies; callers cannot mutate the store.
    """

    def __init__(self):
        self._flows: dict[str, dict] = {}        # "instance:sector" → flow dict
        self._process_logs: list[dict] = []
        self._next_id = 1
        logger.info("inmemory_flow_store_initialized")

    async def get_flow_definition(self, instance: str, sector_id: int) -> Optional[FlowDefinition]:
        data = self._flows.get(_flow_key(instance, sector_id))
        return FlowDefinition.model_validate(data) if data else None

    async def save_flow_definition(self, definition: FlowDefinition) -> FlowDefinition:
        key = _flow_key(definition.instance, definition.sector_id)
        existing = self._flows.get(key)
        if definition.id is None:
            flow_id = existing["id"] if existing else self._next_id
            if not existing:
                self._next_id += 1
            definition = definition.model_copy(update={"id": flow_id})
        self._flows[key] = definition.model_dump(mode="json")
        logger.info("flow_saved", flow=key, steps=len(definition.steps))
        return definition

    async def list_flows(self, instance: Optional[str] = None) -> list[FlowDefinition]:
        flows = [FlowDefinition.model_validate(d) for d in self._flows.values()]
        if instance is not None:
            flows = [f for f in flows if f.instance == instance]
        return sorted(flows, key=lambda f: (f.instance, f.sector_id))

    async def delete_flow(self, instance: str, sector_id: int) -> bool:
        removed = self._flows.pop(_flow_key(instance, sector_id), None)
        if removed:
            logger.info("flow_deleted", flow=_flow_key(instance, sector_id))
        return removed is not None

    async def save_process_log(self, record: ProcessLog) -> None:
        self._process_logs.append(record.model_dump(mode="json"))

    @property
    def process_logs(self) -> list[dict]:
        return list(self._process_logs)
