"""
ROUTER step — multi-way branch on the stringified value of a field.

    routes        {"sales": 3, "support": 4}
    defaultRoute  step used when no route matches (config may say `default`)

Lookup order: matching route, defaultRoute, the static next pointer.
When none of them yields a step the run fails with NoRouteError.
"""
from __future__ import annotations

from typing import Any

from flows.context import ExecutionContext
from flows.errors import NoRouteError
from flows.steps.base import BaseStep
from models.schemas import StepResult


def route_key(value: Any) -> str:
    """Stringify a resolved value the way persisted route keys are written."""
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class RouterStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        field = self.config["field"]
        value = self.resolve_field(context, field)
        context.logger.log(f"Routing on {field}", {"value": value})

        routes = self.target("routes") or {}
        next_step = routes.get(route_key(value))

        if next_step is None:
            next_step = self.target("defaultRoute")
        if next_step is None:
            next_step = self.config.get("default")
        if next_step is None:
            next_step = self.next_step_id
        if next_step is None:
            raise NoRouteError(value, step_id=self.id)

        context.logger.log(f"Selected route: {next_step}")
        return self.continue_to(next_step)
