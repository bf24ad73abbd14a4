"""
Fixed business steps — the routing rules of the default flow.

    CHECK_ONLY_ADMIN       admin-only contacts go straight to the administrator
    CHECK_LOALTY           customers with a loyal operator in this sector go to them
    CHECK_AVAILABLE_USERS  least-busy online operator of the sector
    SEND_TO_ADMIN          administrator queue, unconditionally
    SEND_TO_SECTOR_USER    the sector's admin operator, else any operator

The non-terminal ones continue at the static next pointer when their rule
does not apply.
"""
from __future__ import annotations

import structlog
from typing import Optional

from flows.context import ExecutionContext
from flows.steps.base import BaseStep
from models.schemas import ADMIN_USER_ID, CustomerSchedule, SectorUser, StepResult

logger = structlog.get_logger()

CUSTOMER_SCHEDULE_QUERY = (
    "SELECT * FROM campanhas_clientes cc "
    "WHERE cc.CLIENTE = ? "
    "ORDER BY CODIGO DESC LIMIT 1"
)
OPERATOR_BY_ID_QUERY = "SELECT * FROM operadores WHERE CODIGO = ?"
OPERATORS_BY_SECTOR_QUERY = "SELECT * FROM operadores WHERE SETOR = ?"


class CheckOnlyAdminStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        context.logger.log("Checking whether the contact is admin-only...")

        if not context.contact.is_only_admin:
            context.logger.log("Contact is not admin-only.")
            return self.continue_to()

        chat = self.build_chat(context, user_id=ADMIN_USER_ID)
        context.logger.log("Contact is admin-only. Chat created.", chat)
        return self.finalize(chat)


class CheckLoyaltyStep(BaseStep):
    """Keeps a customer with the operator of their latest campaign schedule."""

    async def execute(self, context: ExecutionContext) -> StepResult:
        plog = context.logger
        plog.log("Checking customer loyalty...")

        customer_id = context.contact.customer_id
        if not customer_id:
            return self._skip(context, "Contact has no customer id.")

        schedule = await self._fetch_schedule(context, customer_id)
        if schedule is None:
            return self._skip(context, "Customer schedule not found.")
        if not schedule.OPERADOR:
            return self._skip(context, "Customer schedule has no operator.")

        if not await self._in_sector(schedule.OPERADOR):
            return self._skip(context, "Operator is not in this sector.")

        chat = self.build_chat(context, user_id=schedule.OPERADOR)
        plog.log("Chat created.", chat)
        return self.finalize(chat)

    async def _fetch_schedule(
        self, context: ExecutionContext, customer_id: int,
    ) -> Optional[CustomerSchedule]:
        context.logger.log("Fetching customer schedule...")
        rows = await self.services.require("data_source").execute_query(
            self.instance, CUSTOMER_SCHEDULE_QUERY, [customer_id],
        )
        return CustomerSchedule.model_validate(rows[0]) if rows else None

    async def _in_sector(self, user_id: int) -> bool:
        rows = await self.services.require("data_source").execute_query(
            self.instance, OPERATOR_BY_ID_QUERY, [user_id],
        )
        return bool(rows) and SectorUser.model_validate(rows[0]).SETOR == self.sector_id

    def _skip(self, context: ExecutionContext, reason: str) -> StepResult:
        context.logger.log(reason)
        return self.continue_to()


class CheckAvailableUsersStep(BaseStep):
    """
    Assigns to the online operator of this sector with the fewest open
    chats. Ties go to the lowest user id.
    """

    async def execute(self, context: ExecutionContext) -> StepResult:
        plog = context.logger
        plog.log("Checking available users...")

        sessions = await self.services.require("sessions").get_online_sessions(self.instance)
        candidates = sorted({s.user_id for s in sessions if s.sector_id == self.sector_id})
        plog.log(f"Found {len(candidates)} online user(s) in sector {self.sector_id}")

        if not candidates:
            plog.log("No available user found.")
            return self.continue_to()

        counts = await self.services.require("chat_counter").count_open_chats(
            self.instance, candidates,
        )
        ranked = sorted(candidates, key=lambda uid: (counts.get(uid, 0), uid))
        user_id = ranked[0]

        chat = self.build_chat(context, user_id=user_id)
        plog.log(f"User {user_id} will be assigned to the chat.", chat)
        logger.debug("least_busy_user_selected", instance=self.instance,
                     sector=self.sector_id, user_id=user_id,
                     open_chats=counts.get(user_id, 0))
        return self.finalize(chat)


class SendToAdminStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        context.logger.log("Sending to the administrator...")
        chat = self.build_chat(
            context, user_id=ADMIN_USER_ID, system_message=self.system_message(context),
        )
        context.logger.log("Chat created.", chat)
        return self.finalize(chat)


class SendToSectorUserStep(BaseStep):
    async def execute(self, context: ExecutionContext) -> StepResult:
        context.logger.log("Sending to a sector user...")

        rows = await self.services.require("data_source").execute_query(
            self.instance, OPERATORS_BY_SECTOR_QUERY, [self.sector_id],
        )
        users = [SectorUser.model_validate(r) for r in rows]

        chosen: Optional[SectorUser] = None
        if self.config.get("preferAdmin", True):
            chosen = next((u for u in users if u.NIVEL == "ADMIN"), None)
        if chosen is None and users:
            chosen = users[0]

        chat = self.build_chat(
            context,
            user_id=chosen.CODIGO if chosen else ADMIN_USER_ID,
            system_message=self.system_message(context),
        )
        context.logger.log("Chat created.", chat)
        return self.finalize(chat)
