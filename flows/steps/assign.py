"""
ASSIGN step — always terminal; builds the routing decision from config.

    userId         literal or ${path}; missing resolves to -1 (administrator)
    walletId       literal or ${path}
    priority       LOW | NORMAL | HIGH | URGENT
    systemMessage  interpolated template
    type           RECEPTIVE (default) | ACTIVE
"""
from __future__ import annotations

from typing import Any, Optional

from flows.context import ExecutionContext
from flows.steps.base import BaseStep
from models.schemas import ADMIN_USER_ID, ChatType, StepResult


def _as_id(value: Any) -> Optional[int]:
    """Coerce a resolved id (legacy rows often carry numeric strings)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid id value: {value!r}")
    return int(value)


class AssignStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        user_id = _as_id(self.resolve_value(context, self.config.get("userId")))
        wallet_id = _as_id(self.resolve_value(context, self.config.get("walletId")))

        chat = self.build_chat(
            context,
            user_id=ADMIN_USER_ID if user_id is None else user_id,
            wallet_id=wallet_id,
            chat_type=self.config.get("type") or ChatType.RECEPTIVE,
            priority=self.config.get("priority") or None,
            system_message=self.system_message(context),
        )
        context.logger.log("Chat assigned", chat)
        return self.finalize(chat)
