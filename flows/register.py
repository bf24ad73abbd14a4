"""
Built-in step registration — the explicit startup call list.

Call register_all_steps(registry) once per registry; get_step_registry()
does it for the process-wide default.
"""
from __future__ import annotations

from flows.registry import StepRegistry
from flows.steps import (
    AssignStep, CheckAvailableUsersStep, CheckLoyaltyStep, CheckOnlyAdminStep,
    ConditionStep, QueryStep, RouterStep, SendToAdminStep, SendToSectorUserStep,
)

# Persisted flows spell the loyalty tag without the "y"; both are accepted.
CHECK_LOYALTY_TAGS = ("CHECK_LOALTY", "CHECK_LOYALTY")


def register_all_steps(registry: StepRegistry) -> StepRegistry:
    # ── Generic steps ─────────────────────────────────────────

    registry.register(
        "CONDITION", ConditionStep,
        description="Evaluates a condition and branches on the result",
        required_config=["field", "operator", "value"],
    )
    registry.register(
        "QUERY", QueryStep,
        description="Runs a SQL query and stores the result in the context",
        required_config=["query", "storeAs"],
        optional_config=["params", "single", "required"],
    )
    registry.register(
        "ROUTER", RouterStep,
        description="Routes on the value of a field",
        required_config=["field"],
    )
    registry.register(
        "ASSIGN", AssignStep,
        description="Assigns the chat to a user, wallet or the administrator",
        optional_config=["userId", "walletId", "priority", "systemMessage", "type"],
    )

    # ── Business steps ────────────────────────────────────────

    registry.register(
        "CHECK_ONLY_ADMIN", CheckOnlyAdminStep,
        description="Checks whether the contact is admin-only",
    )
    for tag in CHECK_LOYALTY_TAGS:
        registry.register(
            tag, CheckLoyaltyStep,
            description="Assigns a loyal customer to their operator",
            optional_config=["checkIsOnline", "checkIsActive", "checkIsRepresentative"],
        )
    registry.register(
        "CHECK_AVAILABLE_USERS", CheckAvailableUsersStep,
        description="Assigns to the online user with the fewest open chats",
    )
    registry.register(
        "SEND_TO_ADMIN", SendToAdminStep,
        description="Sends the chat to the administrator (userId = -1)",
        optional_config=["systemMessage"],
    )
    registry.register(
        "SEND_TO_SECTOR_USER", SendToSectorUserStep,
        description="Sends the chat to a sector user, preferring admins",
        optional_config=["preferAdmin", "systemMessage"],
    )
    return registry
