"""
Flow Builder — turns a persisted FlowDefinition into a runnable orchestrator.

    builder = FlowBuilder(store, services)
    flow = await builder.build("vollo", 3)
    chat = await flow.run(contact)

When the store has no flow (or an empty one) for the pair, the default
flow is used:

    1 CHECK_ONLY_ADMIN → 2 CHECK_LOALTY → 3 CHECK_AVAILABLE_USERS → 4 SEND_TO_ADMIN
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from database.store_base import BaseFlowStore
from flows.orchestrator import FlowOrchestrator, FROM_SETTINGS
from flows.registry import StepRegistry, get_step_registry
from flows.steps.base import BaseStep, StepServices
from models.schemas import FlowDefinition, StepConfig

logger = structlog.get_logger()

DEFAULT_FLOW: list[tuple[str, int, Optional[int]]] = [
    ("CHECK_ONLY_ADMIN", 1, 2),
    ("CHECK_LOALTY", 2, 3),
    ("CHECK_AVAILABLE_USERS", 3, 4),
    ("SEND_TO_ADMIN", 4, None),
]


class FlowBuilder:
    """Assembles flows through the step registry."""

    def __init__(
        self,
        store: BaseFlowStore,
        services: Optional[StepServices] = None,
        registry: Optional[StepRegistry] = None,
        max_steps: Optional[int] = FROM_SETTINGS,
    ):
        self.store = store
        self.services = services or StepServices()
        self.registry = registry or get_step_registry()
        self.max_steps = max_steps

    def _create_step(
        self,
        step_type: str,
        instance: str,
        sector_id: int,
        step_id: int,
        next_step_id: Optional[int] = None,
        fallback_step_id: Optional[int] = None,
        config: Optional[dict[str, Any]] = None,
        connections: Optional[dict[str, Any]] = None,
    ) -> BaseStep:
        step_config = StepConfig(
            id=step_id,
            instance=instance,
            sector_id=sector_id,
            config=config or {},
            connections=connections or {},
            next_step_id=next_step_id,
            fallback_step_id=fallback_step_id,
        )
        return self.registry.create(step_type, step_config, self.services)

    def create_default_flow(self, instance: str, sector_id: int) -> FlowOrchestrator:
        flow = FlowOrchestrator(instance, sector_id, max_steps=self.max_steps)
        for step_type, step_id, next_step_id in DEFAULT_FLOW:
            flow.add_step(self._create_step(step_type, instance, sector_id, step_id, next_step_id))
        logger.info("flow_built", flow=flow.key, source="default", steps=len(flow))
        return flow

    def build_from_definition(self, definition: FlowDefinition) -> FlowOrchestrator:
        flow = FlowOrchestrator(definition.instance, definition.sector_id, max_steps=self.max_steps)
        for step in definition.sorted_steps():
            flow.add_step(self._create_step(
                step.type,
                definition.instance,
                definition.sector_id,
                step.step_number,
                next_step_id=step.next_step_id,
                fallback_step_id=step.fallback_step_id,
                config=step.config,
                connections=step.connections,
            ))
        logger.info("flow_built", flow=flow.key, source="store",
                    flow_id=definition.id, steps=len(flow))
        return flow

    async def build(self, instance: str, sector_id: int) -> FlowOrchestrator:
        definition = await self.store.get_flow_definition(instance, sector_id)
        if definition is None or not definition.steps:
            return self.create_default_flow(instance, sector_id)
        return self.build_from_definition(definition)
