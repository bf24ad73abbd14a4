"""
Step implementations.

Generic steps (QUERY, CONDITION, ROUTER, ASSIGN) are configured entirely
by their persisted config; business steps encode fixed routing rules.
"""
from flows.steps.base import BaseStep, StepServices
from flows.steps.query import QueryStep
from flows.steps.condition import ConditionStep
from flows.steps.router import RouterStep
from flows.steps.assign import AssignStep
from flows.steps.business import (
    CheckOnlyAdminStep, CheckLoyaltyStep, CheckAvailableUsersStep,
    SendToAdminStep, SendToSectorUserStep,
)

__all__ = [
    "BaseStep", "StepServices",
    "QueryStep", "ConditionStep", "RouterStep", "AssignStep",
    "CheckOnlyAdminStep", "CheckLoyaltyStep", "CheckAvailableUsersStep",
    "SendToAdminStep", "SendToSectorUserStep",
]
