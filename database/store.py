"""
SqlFlowStore — Portable SQL flow storage for PostgreSQL, MySQL, SQLite.

A flow is one `message_flows` row plus its `message_flow_steps` rows.
Saving a flow replaces its steps wholesale; step numbers are the only
identity the engine cares about.
"""
from __future__ import annotations

import structlog
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import MessageFlowRow, MessageFlowStepRow, ProcessLogRow
from database.session import get_session
from database.store_base import BaseFlowStore
from models.schemas import FlowDefinition, ProcessLog, StepDefinition

logger = structlog.get_logger()


class SqlFlowStore(BaseFlowStore):
    """
    Persistent flow store backed by any SQLAlchemy-supported database.
    Uses the application engine unless a session factory is given.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _session(self):
        return get_session(self._session_factory)

    # ── Flow operations ────────────────────────────────────

    async def get_flow_definition(self, instance: str, sector_id: int) -> Optional[FlowDefinition]:
        async with self._session() as db:
            row = await self._find_flow(db, instance, sector_id)
            return self._row_to_definition(row) if row else None

    async def save_flow_definition(self, definition: FlowDefinition) -> FlowDefinition:
        async with self._session() as db:
            row = await self._find_flow(db, definition.instance, definition.sector_id)
            if row is None:
                row = MessageFlowRow(instance=definition.instance, sector_id=definition.sector_id)
                db.add(row)
            else:
                # old step rows must be gone before (flow, step_number) is reused
                row.steps.clear()
                await db.flush()
            row.description = definition.description
            row.steps = [self._step_to_row(s) for s in definition.sorted_steps()]
            await db.flush()
            logger.info("flow_saved", flow=definition.key, flow_id=row.id,
                        steps=len(definition.steps))
            return definition.model_copy(update={"id": row.id})

    async def list_flows(self, instance: Optional[str] = None) -> list[FlowDefinition]:
        async with self._session() as db:
            stmt = select(MessageFlowRow).order_by(MessageFlowRow.instance, MessageFlowRow.sector_id)
            if instance is not None:
                stmt = stmt.where(MessageFlowRow.instance == instance)
            result = await db.execute(stmt)
            return [self._row_to_definition(r) for r in result.scalars()]

    async def delete_flow(self, instance: str, sector_id: int) -> bool:
        async with self._session() as db:
            row = await self._find_flow(db, instance, sector_id)
            if row is None:
                return False
            await db.delete(row)
            logger.info("flow_deleted", flow=f"{instance}:{sector_id}")
            return True

    # ── Process logs ───────────────────────────────────────

    async def save_process_log(self, record: ProcessLog) -> None:
        async with self._session() as db:
            data = record.model_dump(mode="json")
            db.add(ProcessLogRow(
                instance=record.instance,
                process_name=record.process_name,
                process_id=record.process_id,
                status=record.status.value,
                start_time=record.start_time,
                end_time=record.end_time,
                duration_ms=record.duration_ms,
                input=data["input"],
                output=data["output"],
                error=record.error,
                log_entries=record.log_entries,
            ))

    # ── Helpers ────────────────────────────────────────────

    @staticmethod
    async def _find_flow(db: AsyncSession, instance: str, sector_id: int) -> Optional[MessageFlowRow]:
        stmt = select(MessageFlowRow).where(
            MessageFlowRow.instance == instance,
            MessageFlowRow.sector_id == sector_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _step_to_row(step: StepDefinition) -> MessageFlowStepRow:
        return MessageFlowStepRow(
            type=step.type,
            step_number=step.step_number,
            next_step_id=step.next_step_id,
            fallback_step_id=step.fallback_step_id,
            config=step.config,
            connections=step.connections,
            enabled=step.enabled,
            description=step.description,
        )

    @staticmethod
    def _row_to_definition(row: MessageFlowRow) -> FlowDefinition:
        return FlowDefinition(
            id=row.id,
            instance=row.instance,
            sector_id=row.sector_id,
            description=row.description or "",
            steps=[StepDefinition.model_validate(s.to_dict()) for s in row.steps],
        )
