"""
Processing Logger — per-run log sink injected into every execution context.

Collects human-readable, timestamped entries for one process (one flow
run, one inbound message) and mirrors each entry to structlog. When the
process finishes, a ProcessLog record is built and handed to the optional
on_finish hook (the SQL store persists it in `process_logs`).

Usage:
    plog = ProcessingLogger("vollo", "message-distribution", "msg-981", payload)
    plog.log("Contact found", contact)
    ...
    await plog.success(chat)      # or: await plog.failed(err)
"""
from __future__ import annotations

import traceback
import uuid
import structlog
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from models.schemas import ProcessLog, ProcessStatus

logger = structlog.get_logger()

FinishHook = Callable[[ProcessLog], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _safe(value: Any) -> Any:
    """Make a value JSON friendly for the output list."""
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, BaseException):
        return {"name": type(value).__name__, "message": str(value)}
    return value


class ProcessingLogger:
    """Accumulates the log of one process and reports it when finished."""

    def __init__(
        self,
        instance: str,
        process_name: str,
        process_id: str = "",
        input: Any = None,
        on_finish: Optional[FinishHook] = None,
    ):
        self.instance = instance
        self.process_name = process_name
        self.process_id = process_id or uuid.uuid4().hex[:16]
        self.input = input
        self._on_finish = on_finish

        self.entries: list[str] = []
        self.output: list[Any] = []
        self.error: Optional[BaseException] = None
        self.start_time = _utcnow()
        self.end_time: Optional[datetime] = None
        self._log = logger.bind(
            instance=instance, process=process_name, process_id=self.process_id,
        )

    @property
    def finished(self) -> bool:
        return self.end_time is not None

    def log(self, entry: str, output: Any = None) -> None:
        self.entries.append(f"{_utcnow().isoformat()}: {entry}")
        if output is not None:
            self.output.append(_safe(output))
        self._log.debug("process_log", entry=entry)

    def debug(self, entry: str, data: Any = None) -> None:
        suffix = f" {data!r}" if data is not None else ""
        self.entries.append(f"{_utcnow().isoformat()}: [DEBUG] {entry}{suffix}")
        self._log.debug("process_debug", entry=entry, data=data)

    async def success(self, result: Any = None) -> ProcessLog:
        if result is not None:
            self.output.append(_safe(result))
        return await self._finish(ProcessStatus.SUCCESS)

    async def failed(self, err: BaseException) -> ProcessLog:
        self.error = err
        self.log(
            "Process finished with error",
            {"name": type(err).__name__, "message": str(err),
             "stack": "".join(traceback.format_exception(type(err), err, err.__traceback__))},
        )
        return await self._finish(ProcessStatus.FAILED)

    def record(self, status: ProcessStatus) -> ProcessLog:
        end = self.end_time or _utcnow()
        return ProcessLog(
            instance=self.instance,
            process_name=self.process_name,
            process_id=self.process_id,
            status=status,
            start_time=self.start_time,
            end_time=end,
            duration_ms=int((end - self.start_time).total_seconds() * 1000),
            input=_safe(self.input),
            output=list(self.output),
            error=str(self.error) if self.error is not None else None,
            log_entries=list(self.entries),
        )

    async def _finish(self, status: ProcessStatus) -> ProcessLog:
        self.end_time = _utcnow()
        record = self.record(status)
        self._log.info("process_finished",
                       status=status.value,
                       duration_ms=record.duration_ms,
                       entries=len(self.entries),
                       error=record.error)
        if self._on_finish:
            try:
                await self._on_finish(record)
            except Exception as e:
                # sink failures never reach the process outcome
                self._log.error("process_log_save_failed", error=str(e))
        return record
