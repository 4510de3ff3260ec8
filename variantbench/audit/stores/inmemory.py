"""In-memory implementation of ExecutionLogger."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from variantbench.audit.store import ExecutionLogger
from variantbench.exceptions import ExecutionLoggerError

if TYPE_CHECKING:
    from uuid import UUID

    from variantbench.execution.models import (
        APIConfiguration,
        APIRequest,
        APIResponse,
        ComparisonResult,
        ExecutionLog,
        ExecutionRun,
        FunctionCall,
    )


class InMemoryExecutionLogger(ExecutionLogger):
    """In-memory implementation of ExecutionLogger for testing and development.

    Uses insertion-ordered dicts keyed by record id, so rewriting a record
    replaces it in place. Writes are serialized with an asyncio.Lock.
    Not suitable for production use.
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._lock = asyncio.Lock()
        self._runs: dict[UUID, ExecutionRun] = {}
        self._configurations: dict[UUID, APIConfiguration] = {}
        self._requests: dict[UUID, APIRequest] = {}
        self._responses: dict[UUID, APIResponse] = {}
        self._function_calls: dict[UUID, FunctionCall] = {}
        self._events: dict[UUID, ExecutionLog] = {}
        self._comparisons: dict[UUID, ComparisonResult] = {}

    # Run operations
    async def create_run(self, run: ExecutionRun) -> UUID:
        """Persist a new execution run."""
        async with self._lock:
            self._runs[run.id] = run
        return run.id

    async def update_run(self, run: ExecutionRun) -> None:
        """Persist a status change of an existing run."""
        async with self._lock:
            current = self._runs.get(run.id)
            if current is None:
                raise ExecutionLoggerError(f"Execution run not found: {run.id}")
            # Re-writing the same terminal record is a retried write
            if current.status.is_terminal and run != current:
                raise ExecutionLoggerError(
                    f"Execution run {run.id} is {current.status.value} and can no longer change"
                )
            self._runs[run.id] = run

    async def get_run(self, run_id: UUID) -> ExecutionRun | None:
        """Get an execution run by ID."""
        return self._runs.get(run_id)

    async def list_runs(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionRun]:
        """List execution runs, most recent first."""
        results = list(self._runs.values())
        results.sort(key=lambda x: x.created_at, reverse=True)
        return results[offset:offset + limit]

    # Variation records
    async def log_configuration(self, configuration: APIConfiguration) -> UUID:
        """Persist a configuration used by a run."""
        async with self._lock:
            self._configurations[configuration.id] = configuration
        return configuration.id

    async def log_request(self, request: APIRequest) -> UUID:
        """Persist an outbound generation request."""
        async with self._lock:
            self._requests[request.id] = request
        return request.id

    async def log_response(self, response: APIResponse) -> UUID:
        """Persist the response to a request."""
        async with self._lock:
            self._responses[response.request_id] = response
        return response.id

    async def log_function_call(self, function_call: FunctionCall) -> UUID:
        """Persist a resolved function call."""
        async with self._lock:
            self._function_calls[function_call.id] = function_call
        return function_call.id

    async def log_event(self, entry: ExecutionLog) -> UUID:
        """Persist an execution log entry."""
        async with self._lock:
            self._events[entry.id] = entry
        return entry.id

    async def store_comparison(self, comparison: ComparisonResult) -> UUID:
        """Persist a comparison result."""
        async with self._lock:
            self._comparisons[comparison.execution_run_id] = comparison
        return comparison.id

    # Read operations
    async def list_configurations(self, run_id: UUID) -> list[APIConfiguration]:
        """List configurations of a run in the order they were logged."""
        return [
            c for c in self._configurations.values()
            if c.execution_run_id == run_id
        ]

    async def list_requests(self, run_id: UUID) -> list[APIRequest]:
        """List requests of a run in the order they were logged."""
        return [r for r in self._requests.values() if r.execution_run_id == run_id]

    async def get_response(self, request_id: UUID) -> APIResponse | None:
        """Get the response recorded for a request."""
        return self._responses.get(request_id)

    async def list_function_calls(self, request_id: UUID) -> list[FunctionCall]:
        """List function calls triggered by a request."""
        return [
            fc for fc in self._function_calls.values()
            if fc.request_id == request_id
        ]

    async def list_events(self, run_id: UUID) -> list[ExecutionLog]:
        """List log entries of a run in chronological order."""
        results = [e for e in self._events.values() if e.execution_run_id == run_id]
        results.sort(key=lambda x: x.timestamp)
        return results

    async def get_comparison(self, run_id: UUID) -> ComparisonResult | None:
        """Get the comparison result stored for a run."""
        return self._comparisons.get(run_id)
