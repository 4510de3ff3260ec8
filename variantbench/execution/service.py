"""Caller-facing execution operations.

ExecutionService is what transport layers talk to:
- execute(): validate, create the run, start it in the background, return its id
- get_execution_status(): status, error and (once terminal) the result
- list_execution_runs(): newest first
- cancel() / wait(): control of in-flight runs

Each run gets its own provider and resolver bound to the run's credentials,
so concurrent runs with different keys never share secrets.
"""

import asyncio
from collections.abc import Callable
from typing import Any
from uuid import UUID

import httpx
from pydantic import BaseModel, Field

from variantbench.audit.store import ExecutionLogger
from variantbench.config import get_settings
from variantbench.config.settings import Settings
from variantbench.exceptions import ExecutionNotFoundError
from variantbench.execution.comparator import ResultComparator
from variantbench.execution.executor import MultiVariationExecutor
from variantbench.execution.models import (
    ExecutionResult,
    ExecutionRun,
    MultiExecutionRequest,
    RunCredentials,
    RunStatus,
)
from variantbench.functions.registry import FunctionRegistry
from variantbench.functions.resolver import FunctionResolver
from variantbench.observability.logging import get_logger, log_context
from variantbench.providers.llm.base import GenerationProvider
from variantbench.providers.llm.gemini import GeminiProvider
from variantbench.providers.llm.mock import MockGenerationProvider

logger = get_logger(__name__)

ProviderFactory = Callable[[str | None], GenerationProvider]


class ExecutionHandle(BaseModel):
    """Returned by execute(): the id to poll and the pending run."""

    execution_id: UUID
    execution_run: ExecutionRun


class ExecutionStatus(BaseModel):
    """Status of an execution.

    result is set once the run is terminal, for as long as the service still
    retains it (see ExecutionConfig.retained_results); the persisted run
    record stays available after eviction.
    """

    execution_id: UUID
    status: RunStatus
    error: str | None = None
    result: ExecutionResult | None = None
    execution_run: ExecutionRun | None = Field(
        default=None, description="Latest persisted run record"
    )


class ExecutionService:
    """Runs execution requests in the background and reports on them.

    Finished tasks are dropped as soon as they complete. Results and errors of
    finished runs are kept in memory up to ``retained_results``, oldest first
    out.
    """

    def __init__(
        self,
        execution_logger: ExecutionLogger,
        function_registry: FunctionRegistry,
        *,
        settings: Settings | None = None,
        provider_factory: ProviderFactory | None = None,
        comparator: ResultComparator | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            execution_logger: Sink shared by every run
            function_registry: Function definitions available to runs
            settings: Configuration; defaults to get_settings()
            provider_factory: Builds a provider from a run's generation key
                (None when the run has no key)
            comparator: Comparator shared by every run
            http_client: Client shared by providers and resolvers
        """
        self._sink = execution_logger
        self._registry = function_registry
        self._settings = settings or get_settings()
        self._provider_factory = provider_factory or self._default_provider
        self._comparator = comparator or ResultComparator()
        self._client = http_client
        self._owns_client = http_client is None

        self._tasks: dict[UUID, asyncio.Task[None]] = {}
        self._cancel_events: dict[UUID, asyncio.Event] = {}
        self._results: dict[UUID, ExecutionResult] = {}
        self._errors: dict[UUID, str] = {}

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def _default_provider(self, api_key: str | None) -> GenerationProvider:
        if not api_key:
            return MockGenerationProvider()
        return GeminiProvider(
            api_key=api_key,
            config=self._settings.providers.gemini,
            timeout_seconds=self._settings.execution.generation_timeout_seconds,
            http_client=self._ensure_client(),
        )

    def _generation_key(self, credentials: RunCredentials) -> str | None:
        if credentials.generation_api_key is not None:
            key = credentials.generation_api_key.get_secret_value()
            if key:
                return key
        configured = self._settings.providers.gemini.api_key
        if configured is not None and configured.get_secret_value():
            return configured.get_secret_value()
        return None

    def _build_executor(
        self, credentials: RunCredentials
    ) -> tuple[MultiVariationExecutor, GenerationProvider, FunctionResolver]:
        api_key = self._generation_key(credentials)
        provider = self._provider_factory(api_key)
        resolver = FunctionResolver(
            self._registry,
            credentials=credentials.available_keys(),
            timeout_ms=self._settings.execution.function_timeout_ms,
            http_client=self._ensure_client(),
            user_agent=self._settings.providers.gemini.user_agent,
        )
        executor = MultiVariationExecutor(
            self._sink,
            provider,
            resolver,
            comparator=self._comparator,
            config=self._settings.execution,
        )
        logger.debug(
            "executor_built",
            provider=provider.provider_name,
            function_keys=sorted(credentials.available_keys()),
        )
        return executor, provider, resolver

    async def execute(
        self,
        request: MultiExecutionRequest,
        credentials: RunCredentials | None = None,
    ) -> ExecutionHandle:
        """Create the run and start executing it in the background.

        Raises:
            ExecutionConfigurationError: If the request is invalid
            ExecutionSetupError: If the run record cannot be persisted
        """
        credentials = credentials or RunCredentials()
        executor, provider, resolver = self._build_executor(credentials)
        try:
            run = await executor.create_run(request)
        except Exception:
            await provider.aclose()
            await resolver.aclose()
            raise

        cancel_event = asyncio.Event()
        self._cancel_events[run.id] = cancel_event
        self._tasks[run.id] = asyncio.create_task(
            self._run(run, request, executor, provider, resolver, cancel_event),
            name=f"execution-{run.id}",
        )
        logger.info(
            "execution_started",
            execution_id=str(run.id),
            configurations=len(request.configurations),
            use_mock=request.use_mock,
        )
        return ExecutionHandle(execution_id=run.id, execution_run=run)

    async def _run(
        self,
        run: ExecutionRun,
        request: MultiExecutionRequest,
        executor: MultiVariationExecutor,
        provider: GenerationProvider,
        resolver: FunctionResolver,
        cancel_event: asyncio.Event,
    ) -> None:
        try:
            with log_context(execution_run_id=run.id):
                result = await executor.execute(request, run=run, cancel_event=cancel_event)
            self._retain(self._results, run.id, result)
        except Exception as e:
            # The executor has already marked the run failed
            logger.exception("execution_task_failed", execution_id=str(run.id))
            self._retain(self._errors, run.id, str(e))
        finally:
            self._cancel_events.pop(run.id, None)
            self._tasks.pop(run.id, None)
            await provider.aclose()
            await resolver.aclose()

    def _retain(self, store: dict[UUID, Any], execution_id: UUID, value: Any) -> None:
        """Keep a finished outcome, evicting the oldest beyond the retention limit."""
        store[execution_id] = value
        limit = self._settings.execution.retained_results
        while len(store) > limit:
            evicted = next(iter(store))
            del store[evicted]
            logger.debug("execution_result_evicted", execution_id=str(evicted))

    async def get_execution_status(self, execution_id: UUID) -> ExecutionStatus:
        """Return the status of an execution.

        Raises:
            ExecutionNotFoundError: If the id is unknown
        """
        run = await self._sink.get_run(execution_id)
        result = self._results.get(execution_id)
        if run is None and result is not None:
            run = result.execution_run
        if run is None:
            raise ExecutionNotFoundError(f"Execution not found: {execution_id}")

        error = run.error_message or self._errors.get(execution_id)
        return ExecutionStatus(
            execution_id=execution_id,
            status=run.status,
            error=error,
            result=result if run.status.is_terminal else None,
            execution_run=run,
        )

    async def list_execution_runs(
        self, limit: int = 50, offset: int = 0
    ) -> list[ExecutionRun]:
        """List execution runs, newest first."""
        return await self._sink.list_runs(limit=max(limit, 0), offset=max(offset, 0))

    def cancel(self, execution_id: UUID) -> bool:
        """Signal cancellation to an in-flight execution.

        Variations still generating are marked as errors and no further
        function calls are issued. Returns False if the run is not in flight.
        """
        event = self._cancel_events.get(execution_id)
        if event is None:
            return False
        event.set()
        logger.info("execution_cancel_requested", execution_id=str(execution_id))
        return True

    async def wait(self, execution_id: UUID) -> ExecutionStatus:
        """Wait for a background execution to finish and return its status.

        Raises:
            ExecutionNotFoundError: If the id is unknown
        """
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.get_execution_status(execution_id)

    async def aclose(self) -> None:
        """Cancel in-flight runs and release the shared HTTP client."""
        for event in self._cancel_events.values():
            event.set()
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
