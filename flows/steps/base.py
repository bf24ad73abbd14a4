"""
Base Step — the runtime unit every flow is made of.

A step is built once per flow assembly from a StepConfig and then shared
by every contact walking that flow, so it holds configuration only. All
per-run data lives in the ExecutionContext passed to execute().

Subclasses implement execute(); the orchestrator calls run(), which adds
logging and the fallback rule: any exception raised by execute() reroutes
to fallback_step_id when one is configured and propagates otherwise.
"""
from __future__ import annotations

import abc
import structlog
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional

from backend.connector import ChatCounter, DataSource, SessionDirectory
from flows.context import ExecutionContext
from flows.errors import FlowConfigurationError
from models.schemas import (
    ADMIN_USER_ID, ChatPayload, ChatPriority, ChatType, StepConfig, StepResult,
)
from utils.fields import interpolate_string, resolve_field, resolve_params, resolve_value

logger = structlog.get_logger()


@dataclass(frozen=True)
class StepServices:
    """Collaborators handed to every step the builder creates."""
    data_source: Optional[DataSource] = None
    sessions: Optional[SessionDirectory] = None
    chat_counter: Optional[ChatCounter] = None

    def require(self, name: str) -> Any:
        service = getattr(self, name)
        if service is None:
            raise FlowConfigurationError(f"Step needs a '{name}' collaborator but none was configured")
        return service

    @classmethod
    def from_settings(cls) -> "StepServices":
        from backend.connector import (
            create_chat_counter, create_data_source, create_session_directory,
        )
        return cls(
            data_source=create_data_source(),
            sessions=create_session_directory(),
            chat_counter=create_chat_counter(),
        )


class BaseStep(abc.ABC):
    """Abstract step: immutable configuration plus one execute() operation."""

    def __init__(self, step_config: StepConfig, services: Optional[StepServices] = None):
        self.id = step_config.id
        self.instance = step_config.instance
        self.sector_id = step_config.sector_id
        self.config: Mapping[str, Any] = MappingProxyType(dict(step_config.config))
        self.connections: Mapping[str, Any] = MappingProxyType(dict(step_config.connections))
        self.next_step_id = step_config.next_step_id
        self.fallback_step_id = step_config.fallback_step_id
        self.services = services or StepServices()

    def __repr__(self) -> str:
        return (f"<{type(self).__name__} id={self.id} next={self.next_step_id} "
                f"fallback={self.fallback_step_id}>")

    @abc.abstractmethod
    async def execute(self, context: ExecutionContext) -> StepResult:
        ...

    async def run(self, context: ExecutionContext) -> StepResult:
        plog = context.logger
        name = type(self).__name__
        plog.log(f"[Step {self.id}] Starting {name}")

        try:
            result = await self.execute(context)
        except Exception as e:
            plog.log(f"[Step {self.id}] Error during execution", e)
            if self.fallback_step_id is not None:
                plog.log(f"[Step {self.id}] Using fallback: {self.fallback_step_id}")
                logger.warning("step_fallback", step=self.id, step_type=name,
                               fallback=self.fallback_step_id, error=str(e))
                return StepResult.continue_at(self.fallback_step_id)
            logger.error("step_failed", step=self.id, step_type=name, error=str(e))
            raise

        if result.is_final:
            plog.log(f"[Step {self.id}] Finished with chat", result.chat)
        else:
            plog.log(f"[Step {self.id}] Next step: {result.next_step_id}")
        logger.debug("step_executed", step=self.id, step_type=name,
                     final=result.is_final, next_step=result.next_step_id)
        return result

    # ── Result helpers ────────────────────────────────────────

    def continue_to(self, step_id: Optional[int] = None) -> StepResult:
        """Continue at step_id, or at the static next pointer when omitted."""
        return StepResult.continue_at(step_id if step_id is not None else self.next_step_id)

    def finalize(self, chat: ChatPayload) -> StepResult:
        return StepResult.finish(chat)

    def build_chat(
        self,
        context: ExecutionContext,
        user_id: Optional[int] = ADMIN_USER_ID,
        wallet_id: Optional[int] = None,
        chat_type: str | ChatType = ChatType.RECEPTIVE,
        priority: Optional[str | ChatPriority] = None,
        system_message: Optional[str] = None,
    ) -> ChatPayload:
        return ChatPayload(
            instance=self.instance,
            type=chat_type,
            user_id=user_id,
            wallet_id=wallet_id,
            sector_id=self.sector_id,
            contact_id=context.contact.id,
            priority=priority,
            system_message=system_message,
        )

    # ── Context helpers ───────────────────────────────────────

    @staticmethod
    def resolve_field(context: ExecutionContext, field_path: str) -> Any:
        return resolve_field(context, field_path)

    @staticmethod
    def resolve_value(context: ExecutionContext, value: Any) -> Any:
        return resolve_value(context, value)

    @staticmethod
    def resolve_params(context: ExecutionContext, params: list[Any]) -> list[Any]:
        return resolve_params(context, params)

    @staticmethod
    def interpolate(context: ExecutionContext, template: str) -> str:
        return interpolate_string(context, template)

    def system_message(self, context: ExecutionContext) -> Optional[str]:
        """Interpolated config.systemMessage, or None when not configured."""
        template = self.config.get("systemMessage")
        if not template:
            return None
        message = self.interpolate(context, template)
        context.logger.log(f'System message interpolated: "{template}" -> "{message}"')
        return message

    def target(self, key: str) -> Any:
        """Branch target read from connections first, then config. An empty
        connection value (None or {}) does not shadow the config entry."""
        value = self.connections.get(key)
        if value is not None and value != {}:
            return value
        return self.config.get(key)
