"""ExecutionLogger abstract interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

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


class ExecutionLogger(ABC):
    """Abstract interface for the execution history sink.

    Records are append-only from the engine's perspective. Every write is
    keyed by the record's own id, so retrying a failed write with the same
    record never creates a duplicate. Implementations must tolerate
    concurrent writes from variations of the same run.
    """

    # Run operations
    @abstractmethod
    async def create_run(self, run: ExecutionRun) -> UUID:
        """Persist a new execution run."""
        pass

    @abstractmethod
    async def update_run(self, run: ExecutionRun) -> None:
        """Persist a status change of an existing run.

        Raises:
            ExecutionLoggerError: If the run was never created or is already
                completed or failed
        """
        pass

    @abstractmethod
    async def get_run(self, run_id: UUID) -> ExecutionRun | None:
        """Get an execution run by ID."""
        pass

    @abstractmethod
    async def list_runs(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionRun]:
        """List execution runs, most recent first."""
        pass

    # Variation records
    @abstractmethod
    async def log_configuration(self, configuration: APIConfiguration) -> UUID:
        """Persist a configuration used by a run."""
        pass

    @abstractmethod
    async def log_request(self, request: APIRequest) -> UUID:
        """Persist an outbound generation request."""
        pass

    @abstractmethod
    async def log_response(self, response: APIResponse) -> UUID:
        """Persist the response to a request."""
        pass

    @abstractmethod
    async def log_function_call(self, function_call: FunctionCall) -> UUID:
        """Persist a resolved function call."""
        pass

    @abstractmethod
    async def log_event(self, entry: ExecutionLog) -> UUID:
        """Persist an execution log entry."""
        pass

    @abstractmethod
    async def store_comparison(self, comparison: ComparisonResult) -> UUID:
        """Persist a comparison result."""
        pass

    # Read operations
    @abstractmethod
    async def list_configurations(self, run_id: UUID) -> list[APIConfiguration]:
        """List configurations of a run in the order they were logged."""
        pass

    @abstractmethod
    async def list_requests(self, run_id: UUID) -> list[APIRequest]:
        """List requests of a run in the order they were logged."""
        pass

    @abstractmethod
    async def get_response(self, request_id: UUID) -> APIResponse | None:
        """Get the response recorded for a request."""
        pass

    @abstractmethod
    async def list_function_calls(self, request_id: UUID) -> list[FunctionCall]:
        """List function calls triggered by a request."""
        pass

    @abstractmethod
    async def list_events(self, run_id: UUID) -> list[ExecutionLog]:
        """List log entries of a run in chronological order."""
        pass

    @abstractmethod
    async def get_comparison(self, run_id: UUID) -> ComparisonResult | None:
        """Get the comparison result stored for a run."""
        pass
