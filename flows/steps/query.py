"""
QUERY step — run a parameterized lookup and store the rows in the context.

Config:
    query     SQL text with positional `?` placeholders
    params    list of literals or ${path} tokens (optional)
    storeAs   context variable receiving the result
    single    store only the first row (None when empty)
    required  zero rows → fallback step, or RequiredQueryEmptyError
"""
from __future__ import annotations

from flows.context import ExecutionContext
from flows.errors import RequiredQueryEmptyError
from flows.steps.base import BaseStep
from models.schemas import StepResult


def _summary(query: str, width: int = 60) -> str:
    return query if len(query) <= width else query[:width] + "..."


class QueryStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        query: str = self.config["query"]
        store_as: str = self.config["storeAs"]
        single = bool(self.config.get("single", False))
        required = bool(self.config.get("required", False))
        raw_params = self.config.get("params") or []

        plog = context.logger
        plog.log(f"  Query: {_summary(query)}", {
            "storeAs": store_as, "single": single,
            "required": required, "hasParams": len(raw_params) > 0,
        })

        params = self.resolve_params(context, list(raw_params))
        if params:
            plog.log(f"  Params: {params!r}")

        data_source = self.services.require("data_source")
        rows = await data_source.execute_query(self.instance, query, params)
        plog.log(f"  Results: {len(rows)} row(s)")

        if required and not rows:
            plog.log("  Required query returned no rows")
            if self.fallback_step_id is not None:
                return self.continue_to(self.fallback_step_id)
            raise RequiredQueryEmptyError(query, step_id=self.id)

        context[store_as] = (rows[0] if rows else None) if single else rows
        plog.log(f"  Stored: context.{store_as} "
                 f"{'(single)' if single else f'(list[{len(rows)}])'}")
        return self.continue_to()
