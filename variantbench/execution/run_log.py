"""Ordered execution log for a single run."""

from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from variantbench.audit.store import ExecutionLogger
from variantbench.execution.models import ExecutionLog, LogCategory, LogLevel
from variantbench.execution.persistence import SinkWriter
from variantbench.observability.logging import get_logger

logger = get_logger(__name__)

_LEVEL_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.SUCCESS: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
}


class RunLog:
    """Collects ExecutionLog entries for one run and persists them.

    Entries are kept in memory in the order they were recorded so the
    ExecutionResult can carry them even when the sink is unavailable.
    """

    def __init__(self, execution_run_id: UUID, writer: SinkWriter) -> None:
        self._run_id = execution_run_id
        self._writer = writer
        self._entries: list[ExecutionLog] = []

    @property
    def execution_run_id(self) -> UUID:
        return self._run_id

    @property
    def sink(self) -> ExecutionLogger:
        return self._writer.sink

    @property
    def entries(self) -> list[ExecutionLog]:
        return list(self._entries)

    async def record(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        *,
        configuration_id: UUID | None = None,
        request_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> ExecutionLog:
        """Append an entry and write it to the sink."""
        entry = self._append(
            level,
            category,
            message,
            configuration_id=configuration_id,
            request_id=request_id,
            details=details,
        )
        await self._writer.write(
            "log_event",
            lambda: self._writer.sink.log_event(entry),
            execution_run_id=str(self._run_id),
        )
        return entry

    async def persist(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        *,
        configuration_id: UUID | None = None,
        request_id: UUID | None = None,
    ) -> bool:
        """Write a record to the sink, noting abandoned writes in the log."""
        ok = await self._writer.write(
            operation,
            call,
            execution_run_id=str(self._run_id),
        )
        if not ok:
            # Kept in memory only; the sink just failed
            self._append(
                LogLevel.WARN,
                LogCategory.ERROR,
                f"Failed to persist {operation}; history may be incomplete",
                configuration_id=configuration_id,
                request_id=request_id,
                details={"operation": operation},
            )
        return ok

    def _append(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        *,
        configuration_id: UUID | None,
        request_id: UUID | None,
        details: dict[str, Any] | None,
    ) -> ExecutionLog:
        entry = ExecutionLog(
            execution_run_id=self._run_id,
            configuration_id=configuration_id,
            request_id=request_id,
            log_level=level,
            log_category=category,
            message=message,
            details=details,
        )
        self._entries.append(entry)
        getattr(logger, _LEVEL_METHODS[level])(
            "execution_log_recorded",
            execution_run_id=str(self._run_id),
            configuration_id=str(configuration_id) if configuration_id else None,
            category=category.value,
            level=level.value,
            message=message,
        )
        return entry
