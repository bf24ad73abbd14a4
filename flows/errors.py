"""
Flow errors — structured hierarchy for everything the engine can raise.

    FlowError
    ├── FlowConfigurationError   bad step types, missing config, bad operators
    ├── FlowIntegrityError       malformed graph detected while walking it
    └── FlowDataError            data a step required was not there

Any other exception raised inside a step body (a failed lookup, a timeout)
is a transient step failure: it is rerouted through the step's fallback
when one is configured and propagated unchanged otherwise.
"""
from __future__ import annotations

from typing import Any, Optional


class FlowError(Exception):
    """Base exception for all flow engine errors."""

    def __init__(self, message: str, step_id: Optional[int] = None):
        self.step_id = step_id
        super().__init__(message)


# ── Configuration ─────────────────────────────────────────────

class FlowConfigurationError(FlowError):
    pass


class UnregisteredStepTypeError(FlowConfigurationError):
    def __init__(self, step_type: str, step_id: Optional[int] = None):
        self.step_type = step_type
        super().__init__(f"Step type not registered: {step_type}", step_id)


class MissingStepConfigError(FlowConfigurationError):
    def __init__(self, step_type: str, key: str, step_id: Optional[int] = None):
        self.step_type = step_type
        self.key = key
        super().__init__(f"Step {step_type} requires configuration key: {key}", step_id)


class UnsupportedOperatorError(FlowConfigurationError):
    def __init__(self, operator: str, step_id: Optional[int] = None):
        self.operator = operator
        super().__init__(f"Unsupported operator: {operator}", step_id)


class DuplicateStepError(FlowConfigurationError):
    def __init__(self, step_id: int):
        super().__init__(f"Step {step_id} is already registered in this flow", step_id)


# ── Graph integrity ───────────────────────────────────────────

class FlowIntegrityError(FlowError):
    pass


class StepNotFoundError(FlowIntegrityError):
    def __init__(self, step_id: int):
        super().__init__(f"Step {step_id} not found", step_id)


class MissingNextStepError(FlowIntegrityError):
    def __init__(self, step_id: int):
        super().__init__(
            f"Step {step_id} returned neither a next step nor a final result", step_id,
        )


class MissingChatPayloadError(FlowIntegrityError):
    def __init__(self, step_id: int):
        super().__init__(f"Step {step_id} finished the flow without a chat payload", step_id)


class NoRouteError(FlowIntegrityError):
    def __init__(self, value: Any, step_id: Optional[int] = None):
        self.value = value
        super().__init__(f'No route found for value "{value}" and no default route', step_id)


class StepLimitExceededError(FlowIntegrityError):
    def __init__(self, max_steps: int, step_id: Optional[int] = None):
        self.max_steps = max_steps
        super().__init__(
            f"Flow exceeded {max_steps} executed steps without a final result "
            f"(possible cycle at step {step_id})",
            step_id,
        )


# ── Data ──────────────────────────────────────────────────────

class FlowDataError(FlowError):
    pass


class RequiredQueryEmptyError(FlowDataError):
    def __init__(self, query: str, step_id: Optional[int] = None):
        self.query = query
        super().__init__(f"Query required but returned no results: {query}", step_id)
