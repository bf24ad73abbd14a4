"""
Flow Orchestrator — walks one (instance, sector) flow for a contact.

State per contact:

    idle ──run()──▶ running ──▶ completed   (ChatPayload returned)
                       │
                       └──────▶ failed      (exception propagated)

A run starts at step 1 and follows StepResult pointers until a step
returns a final result. While a contact's run is in flight, further
run() calls for the same contact join it instead of starting another:
every caller awaits the same task and sees the same payload or the same
exception. The in-flight entry is dropped by a done-callback, so a later
call always starts fresh whatever the previous outcome was.

The walk is bounded by max_steps (routing.max_steps in settings); a flow
whose pointers loop without reaching a final step fails with
StepLimitExceededError. max_steps=None walks without a bound.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Optional

from config.settings import get_settings
from flows.context import ExecutionContext
from flows.errors import (
    DuplicateStepError, MissingChatPayloadError, MissingNextStepError,
    StepLimitExceededError, StepNotFoundError,
)
from flows.logger import ProcessingLogger
from flows.steps.base import BaseStep
from models.schemas import ChatPayload, Contact

logger = structlog.get_logger()

ENTRY_STEP = 1
FROM_SETTINGS = object()


class FlowOrchestrator:
    """Holds the step graph of one flow and runs contacts through it."""

    def __init__(self, instance: str, sector_id: int, max_steps: Optional[int] = FROM_SETTINGS):
        self.instance = instance
        self.sector_id = sector_id
        if max_steps is FROM_SETTINGS:
            max_steps = get_settings().routing.max_steps
        self.max_steps: Optional[int] = max_steps
        self._steps: dict[int, BaseStep] = {}
        self._active: dict[int, asyncio.Task] = {}       # contact id → running flow

    def __repr__(self) -> str:
        return f"<FlowOrchestrator {self.key} steps={sorted(self._steps)}>"

    @property
    def key(self) -> str:
        return f"{self.instance}:{self.sector_id}"

    # ── Graph ─────────────────────────────────────────

    def add_step(self, step: BaseStep) -> None:
        if step.id in self._steps:
            raise DuplicateStepError(step.id)
        self._steps[step.id] = step

    def get_step(self, step_id: int) -> Optional[BaseStep]:
        return self._steps.get(step_id)

    @property
    def steps(self) -> list[BaseStep]:
        return [self._steps[k] for k in sorted(self._steps)]

    def __len__(self) -> int:
        return len(self._steps)

    # ── Runs ──────────────────────────────────────────

    def is_running(self, contact_id: int) -> bool:
        return contact_id in self._active

    @property
    def active_contacts(self) -> list[int]:
        return list(self._active)

    async def run(self, contact: Contact, process_logger: Optional[ProcessingLogger] = None) -> ChatPayload:
        """
        Route a contact through the flow and return the routing decision.

        When no logger is given, one is created for the run and finished
        (success/failed) by the orchestrator. A caller-supplied logger
        receives the run's entries but is left for the caller to finish.
        """
        running = self._active.get(contact.id)
        if running is not None:
            if process_logger is not None:
                process_logger.log(f"A flow is already running for contact {contact.id}. Waiting...")
            logger.info("flow_run_joined", flow=self.key, contact_id=contact.id)
            return await asyncio.shield(running)

        owns_logger = process_logger is None
        plog = process_logger or ProcessingLogger(
            self.instance, "message-flow", process_id=str(contact.id), input=contact,
        )

        task = asyncio.ensure_future(self._process(contact, plog, owns_logger))
        self._active[contact.id] = task
        task.add_done_callback(lambda t, cid=contact.id: self._release(cid, t))
        return await asyncio.shield(task)

    def _release(self, contact_id: int, task: asyncio.Task) -> None:
        if self._active.get(contact_id) is task:
            del self._active[contact_id]
        if not task.cancelled():
            # marks the exception retrieved when every caller went away
            task.exception()

    async def _process(
        self, contact: Contact, plog: ProcessingLogger, owns_logger: bool,
    ) -> ChatPayload:
        plog.log("Starting flow processing.")
        context = ExecutionContext(contact, plog, instance=self.instance, sector_id=self.sector_id)

        try:
            chat = await self._walk(context)
        except Exception as e:
            plog.log("Error while processing the flow", e)
            logger.error("flow_run_failed", flow=self.key, contact_id=contact.id,
                         error_type=type(e).__name__, error=str(e))
            if owns_logger:
                await plog.failed(e)
            raise

        plog.log("Flow processing finished successfully.")
        logger.info("flow_run_completed", flow=self.key, contact_id=contact.id,
                    user_id=chat.user_id)
        if owns_logger:
            await plog.success(chat)
        return chat

    async def _walk(self, context: ExecutionContext) -> ChatPayload:
        current = ENTRY_STEP
        executed = 0

        while True:
            if self.max_steps is not None and executed >= self.max_steps:
                raise StepLimitExceededError(self.max_steps, step_id=current)

            step = self._steps.get(current)
            if step is None:
                raise StepNotFoundError(current)

            context.logger.log(f"Executing step {current}.")
            result = await step.run(context)
            executed += 1

            if result.is_final:
                if result.chat is None:
                    raise MissingChatPayloadError(current)
                context.logger.log(f"Step {current} returned a chat.", result.chat)
                return result.chat

            if result.next_step_id is None:
                raise MissingNextStepError(current)
            current = result.next_step_id
