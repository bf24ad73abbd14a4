"""
CONDITION step — evaluate one comparison and branch.

Config: field, operator, value. Targets onTrue / onFalse come from the
step's connections, or from config for flows authored before connections
existed. Never terminal.
"""
from __future__ import annotations

from flows.context import ExecutionContext
from flows.steps.base import BaseStep
from models.schemas import StepResult
from utils.conditions import evaluate_operator


class ConditionStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        field = self.config["field"]
        operator = self.config["operator"]
        value = self.config.get("value")

        field_value = self.resolve_field(context, field)
        context.logger.log(f"Checking condition: {field} {operator} {value!r}",
                           {"fieldValue": field_value})

        matched = evaluate_operator(field_value, operator, value)
        next_step = self.target("onTrue" if matched else "onFalse")

        context.logger.log(f"Condition result: {matched} -> Step {next_step}")
        return self.continue_to(next_step)
