"""
Routing Engine — caller-side entry point for contact distribution.

Keeps one built flow per "instance:sector" so that every inbound message
for a sector goes through the same orchestrator (and therefore the same
per-contact dedup), and wraps each routing call in a ProcessingLogger
named "message-distribution".

    engine = RoutingEngine.from_settings()
    chat = await engine.route("vollo", 3, contact)

Flows are rebuilt after invalidate(); authoring tools call it when a
flow is saved.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Optional

from config.settings import get_settings
from database.store_base import BaseFlowStore
from flows.builder import FlowBuilder
from flows.logger import ProcessingLogger
from flows.orchestrator import FlowOrchestrator
from flows.steps.base import StepServices
from models.schemas import ChatPayload, Contact

logger = structlog.get_logger()

PROCESS_NAME = "message-distribution"


class RoutingEngine:
    """Flow cache plus a single route() call per inbound contact."""

    def __init__(self, builder: FlowBuilder, cache_flows: bool = True,
                 store: Optional[BaseFlowStore] = None):
        self.builder = builder
        self.cache_flows = cache_flows
        self._store = store
        self._flows: dict[str, FlowOrchestrator] = {}
        self._build_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls) -> "RoutingEngine":
        """Wire store, collaborators and builder from settings.yaml."""
        from database.store_factory import create_configured_store

        settings = get_settings()
        store = create_configured_store()
        builder = FlowBuilder(
            store,
            StepServices.from_settings(),
            max_steps=settings.routing.max_steps,
        )
        logger.info("routing_engine_created",
                    store=type(store).__name__,
                    cache_flows=settings.routing.cache_flows,
                    max_steps=settings.routing.max_steps)
        return cls(builder, cache_flows=settings.routing.cache_flows, store=store)

    # ── Flow cache ────────────────────────────────────

    @staticmethod
    def flow_key(instance: str, sector_id: int) -> str:
        return f"{instance}:{sector_id}"

    async def get_flow(self, instance: str, sector_id: int) -> FlowOrchestrator:
        if not self.cache_flows:
            return await self.builder.build(instance, sector_id)

        key = self.flow_key(instance, sector_id)
        flow = self._flows.get(key)
        if flow is not None:
            return flow

        async with self._build_lock:
            # another caller may have built it while we waited
            flow = self._flows.get(key)
            if flow is None:
                flow = await self.builder.build(instance, sector_id)
                self._flows[key] = flow
                logger.debug("flow_cached", flow=key)
        return flow

    def invalidate(self, instance: Optional[str] = None, sector_id: Optional[int] = None) -> int:
        """Drop cached flows matching the filter; no filter drops all. Returns the count."""
        keys = [
            k for k, f in self._flows.items()
            if (instance is None or f.instance == instance)
            and (sector_id is None or f.sector_id == sector_id)
        ]
        for k in keys:
            del self._flows[k]
        if keys:
            logger.info("flows_invalidated", flows=keys)
        return len(keys)

    @property
    def cached_flows(self) -> list[str]:
        return sorted(self._flows)

    # ── Routing ───────────────────────────────────────

    def new_logger(self, instance: str, contact: Contact) -> ProcessingLogger:
        on_finish = self._store.save_process_log if self._store else None
        return ProcessingLogger(
            instance, PROCESS_NAME, process_id=str(contact.id),
            input=contact, on_finish=on_finish,
        )

    async def route(
        self,
        instance: str,
        sector_id: int,
        contact: Contact,
        process_logger: Optional[ProcessingLogger] = None,
    ) -> ChatPayload:
        """Return the routing decision for a contact of (instance, sector)."""
        owns_logger = process_logger is None
        plog = process_logger or self.new_logger(instance, contact)
        plog.log(f"Routing contact {contact.id} in {self.flow_key(instance, sector_id)}")

        try:
            flow = await self.get_flow(instance, sector_id)
            chat = await flow.run(contact, plog)
        except Exception as e:
            if owns_logger:
                await plog.failed(e)
            raise

        if owns_logger:
            await plog.success(chat)
        return chat
