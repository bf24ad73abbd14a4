"""
Routing flow engine.

    from flows.builder import FlowBuilder
    from flows.steps import StepServices

    builder = FlowBuilder(store, StepServices.from_settings())
    flow = await builder.build("vollo", 3)
    chat = await flow.run(contact)

Only the leaf modules are re-exported here; steps, registry, builder and
orchestrator are imported from their own modules.
"""
from flows.errors import (
    FlowError, FlowConfigurationError, FlowIntegrityError, FlowDataError,
    UnregisteredStepTypeError, MissingStepConfigError, UnsupportedOperatorError,
    DuplicateStepError, StepNotFoundError, MissingNextStepError,
    MissingChatPayloadError, NoRouteError, StepLimitExceededError,
    RequiredQueryEmptyError,
)
from flows.logger import ProcessingLogger
from flows.context import ExecutionContext

__all__ = [
    "FlowError", "FlowConfigurationError", "FlowIntegrityError", "FlowDataError",
    "UnregisteredStepTypeError", "MissingStepConfigError", "UnsupportedOperatorError",
    "DuplicateStepError", "StepNotFoundError", "MissingNextStepError",
    "MissingChatPayloadError", "NoRouteError", "StepLimitExceededError",
    "RequiredQueryEmptyError",
    "ProcessingLogger", "ExecutionContext",
]
