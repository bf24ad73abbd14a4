"""
Abstract Flow Store — Interface for all flow definition backends.

Implementations:
  - SqlFlowStore      (PostgreSQL / MySQL / SQLite via SQLAlchemy)
  - InMemoryFlowStore (dict-based, single-process, no persistence)
  - FileFlowStore     (JSON file on disk, single-process, durable)

The engine only ever calls get_flow_definition(); the write side exists for
seeding scripts and tooling.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models.schemas import FlowDefinition, ProcessLog


class BaseFlowStore(ABC):
    """Interface that all flow store backends must implement."""

    # ── Flows ─────────────────────────────────────────────────

    @abstractmethod
    async def get_flow_definition(self, instance: str, sector_id: int) -> Optional[FlowDefinition]:
        ...

    @abstractmethod
    async def save_flow_definition(self, definition: FlowDefinition) -> FlowDefinition:
        """Create or replace the flow of (instance, sector_id)."""
        ...

    @abstractmethod
    async def list_flows(self, instance: Optional[str] = None) -> list[FlowDefinition]:
        ...

    @abstractmethod
    async def delete_flow(self, instance: str, sector_id: int) -> bool:
        ...

    # ── Process logs ──────────────────────────────────────────

    async def save_process_log(self, record: ProcessLog) -> None:
        """Persist a finished process log. Backends without storage ignore it."""
        return None
