"""
Step Type Registry — maps a persisted step type tag to a step factory.

Every step type carries metadata:
  - A description (shown by flow tooling)
  - Required config keys (checked before construction)
  - Optional config keys (documentation only)

Registration is explicit (see flows/register.py); nothing is discovered
implicitly. Re-registering a tag replaces the previous entry.

A process-wide default registry is available through get_step_registry();
tests build their own StepRegistry or call reset_step_registry().
"""
from __future__ import annotations

import structlog
from typing import Callable, Optional

from pydantic import BaseModel

from flows.errors import MissingStepConfigError, UnregisteredStepTypeError
from flows.steps.base import BaseStep, StepServices
from models.schemas import StepConfig

logger = structlog.get_logger()

StepFactory = Callable[[StepConfig, Optional[StepServices]], BaseStep]


class StepMetadata(BaseModel):
    """Describes one registered step type."""
    type: str
    description: str = ""
    required_config: list[str] = []
    optional_config: list[str] = []


class StepRegistry:
    """Catalog of step types available to flows."""

    def __init__(self):
        self._metadata: dict[str, StepMetadata] = {}
        self._factories: dict[str, StepFactory] = {}     # type → factory

    # ── Registration ──────────────────────────────────

    def register(
        self,
        step_type: str,
        factory: StepFactory,
        *,
        description: str = "",
        required_config: list[str] = None,
        optional_config: list[str] = None,
    ) -> None:
        self._metadata[step_type] = StepMetadata(
            type=step_type,
            description=description,
            required_config=list(required_config or []),
            optional_config=list(optional_config or []),
        )
        self._factories[step_type] = factory
        logger.debug("step_type_registered", step_type=step_type)

    def unregister(self, step_type: str) -> None:
        self._metadata.pop(step_type, None)
        self._factories.pop(step_type, None)

    def clear(self) -> None:
        self._metadata.clear()
        self._factories.clear()

    # ── Construction ──────────────────────────────────

    def create(
        self,
        step_type: str,
        step_config: StepConfig,
        services: Optional[StepServices] = None,
    ) -> BaseStep:
        """Build a step, checking required config keys first."""
        factory = self._factories.get(step_type)
        if factory is None:
            raise UnregisteredStepTypeError(step_type, step_id=step_config.id)

        for key in self._metadata[step_type].required_config:
            if key not in step_config.config:
                raise MissingStepConfigError(step_type, key, step_id=step_config.id)

        return factory(step_config, services)

    # ── Introspection ─────────────────────────────────

    def get_available_types(self) -> list[StepMetadata]:
        return list(self._metadata.values())

    def get_metadata(self, step_type: str) -> Optional[StepMetadata]:
        return self._metadata.get(step_type)

    def has(self, step_type: str) -> bool:
        return step_type in self._factories

    def __contains__(self, step_type: str) -> bool:
        return self.has(step_type)

    def __len__(self) -> int:
        return len(self._factories)


_registry: Optional[StepRegistry] = None


def get_step_registry() -> StepRegistry:
    """Return the process-wide registry with all built-in steps registered."""
    global _registry
    if _registry is None:
        from flows.register import register_all_steps
        _registry = StepRegistry()
        register_all_steps(_registry)
    return _registry


def reset_step_registry() -> None:
    """Drop the process-wide registry (for testing)."""
    global _registry
    _registry = None
