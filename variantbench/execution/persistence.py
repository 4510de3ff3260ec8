"""Bounded-retry writes to the execution logger."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from variantbench.audit.store import ExecutionLogger
from variantbench.exceptions import ExecutionLoggerError
from variantbench.observability.logging import get_logger
from variantbench.observability.metrics import LOGGER_WRITE_FAILURES

logger = get_logger(__name__)


class SinkWriter:
    """Wraps an ExecutionLogger with a bounded number of write attempts.

    Records carry their own ids, so a retried write is idempotent on the
    sink side. After the last attempt the write is abandoned; the run goes
    on with possibly incomplete persisted history.
    """

    def __init__(
        self,
        sink: ExecutionLogger,
        *,
        attempts: int = 3,
        backoff_ms: int = 50,
    ) -> None:
        self._sink = sink
        self._attempts = max(1, attempts)
        self._backoff_ms = backoff_ms

    @property
    def sink(self) -> ExecutionLogger:
        return self._sink

    async def write(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        **context: Any,
    ) -> bool:
        """Attempt a write; return False once every attempt has failed."""
        try:
            await self.write_strict(operation, call, **context)
        except Exception:  # noqa: BLE001
            return False
        return True

    async def write_strict(
        self,
        operation: str,
        call: Callable[[], Awaitable[Any]],
        **context: Any,
    ) -> None:
        """Attempt a write; raise ExecutionLoggerError once every attempt failed."""
        last_error: Exception | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                await call()
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    "execution_logger_write_failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self._attempts,
                    error=str(e),
                    **context,
                )
                if attempt < self._attempts and self._backoff_ms:
                    await asyncio.sleep(self._backoff_ms / 1000)

        LOGGER_WRITE_FAILURES.labels(operation=operation).inc()
        raise ExecutionLoggerError(
            f"{operation} failed after {self._attempts} attempt(s): {last_error}"
        ) from last_error
