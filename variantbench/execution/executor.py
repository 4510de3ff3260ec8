"""Multi-variation executor.

Fans one base prompt out over every configuration of a run, waits for all
variations at a single join point, aggregates counts and timing, and
optionally compares the results.
"""

import asyncio
import time
from typing import Any
from uuid import uuid4

from variantbench.audit.store import ExecutionLogger
from variantbench.config.models.execution import ExecutionConfig
from variantbench.exceptions import (
    ComparisonError,
    ExecutionConfigurationError,
    ExecutionSetupError,
)
from variantbench.execution.comparator import ResultComparator
from variantbench.execution.models import (
    APIConfiguration,
    ComparisonResult,
    ExecutionResult,
    ExecutionRun,
    LogCategory,
    LogLevel,
    MultiExecutionRequest,
    RunStatus,
    VariationResult,
    count_outcomes,
)
from variantbench.execution.persistence import SinkWriter
from variantbench.execution.run_log import RunLog
from variantbench.execution.runner import VariationRunner
from variantbench.functions.models import FunctionExecutionMode
from variantbench.functions.resolver import FunctionResolver
from variantbench.observability.logging import get_logger, log_context
from variantbench.observability.metrics import EXECUTION_LATENCY, EXECUTIONS
from variantbench.providers.llm.base import GenerationProvider

logger = get_logger(__name__)


class MultiVariationExecutor:
    """Orchestrates the variations of an execution run.

    The executor holds no state across runs. Provider and resolver are
    expected to carry the credentials of the run being executed.

    Example:
        executor = MultiVariationExecutor(sink, provider, resolver)
        result = await executor.execute(request)
    """

    def __init__(
        self,
        execution_logger: ExecutionLogger,
        provider: GenerationProvider,
        resolver: FunctionResolver,
        *,
        comparator: ResultComparator | None = None,
        config: ExecutionConfig | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            execution_logger: Sink for run, request, response and function call records
            provider: Generation capability shared by every variation
            resolver: Function resolver bound to the run's credentials
            comparator: Comparator used when comparison is enabled
            config: Timeouts, fan-out and retry settings
        """
        self._sink = execution_logger
        self._provider = provider
        self._resolver = resolver
        self._comparator = comparator or ResultComparator()
        self._config = config or ExecutionConfig()
        self._writer = SinkWriter(
            execution_logger,
            attempts=self._config.log_write_attempts,
            backoff_ms=self._config.log_retry_backoff_ms,
        )

    def validate(self, request: MultiExecutionRequest) -> None:
        """Reject requests that must never start.

        Raises:
            ExecutionConfigurationError: No configurations, duplicate
                variation names, or unknown comparison metrics
        """
        if not request.configurations:
            raise ExecutionConfigurationError("at least one configuration required")

        seen: set[str] = set()
        duplicates: list[str] = []
        for configuration in request.configurations:
            if configuration.variation_name in seen:
                duplicates.append(configuration.variation_name)
            seen.add(configuration.variation_name)
        if duplicates:
            raise ExecutionConfigurationError(
                f"variation names must be unique within a run: {', '.join(duplicates)}"
            )

        comparison = request.comparison_config
        if comparison is not None and comparison.enabled:
            unknown = self._comparator.unknown_metrics(comparison.metrics)
            if unknown:
                raise ExecutionConfigurationError(
                    f"unknown comparison metric(s): {', '.join(unknown)}"
                )

    async def create_run(self, request: MultiExecutionRequest) -> ExecutionRun:
        """Validate the request and persist a pending run record.

        Raises:
            ExecutionConfigurationError: If the request is invalid
            ExecutionSetupError: If the run record cannot be persisted
        """
        self.validate(request)
        run = ExecutionRun(
            name=request.execution_run_name,
            description=request.description,
            enable_function_calling=request.enable_function_calling,
        )
        try:
            await self._writer.write_strict(
                "create_run",
                lambda: self._sink.create_run(run),
                execution_run_id=str(run.id),
            )
        except Exception as e:
            EXECUTIONS.labels(status=RunStatus.FAILED.value).inc()
            logger.error(
                "execution_setup_failed",
                execution_run_id=str(run.id),
                error=str(e),
            )
            raise ExecutionSetupError(f"Failed to create execution run: {e}") from e

        logger.info(
            "execution_run_created",
            execution_run_id=str(run.id),
            name=run.name,
            configurations=len(request.configurations),
        )
        return run

    async def execute(
        self,
        request: MultiExecutionRequest,
        *,
        run: ExecutionRun | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ExecutionResult:
        """Run every configuration of the request and aggregate the results.

        Args:
            request: Base prompt, context, configurations and comparison settings
            run: Pending run already created with create_run()
            cancel_event: Set by the caller to cancel in-flight variations

        Returns:
            ExecutionResult with results in configuration input order

        Raises:
            ExecutionConfigurationError: If the request is invalid
            ExecutionSetupError: If the run record cannot be persisted
        """
        start_time = time.perf_counter()
        if run is None:
            run = await self.create_run(request)

        run_log = RunLog(run.id, self._writer)
        await run_log.record(
            LogLevel.INFO,
            LogCategory.SETUP,
            f"Execution run {run.name} created with "
            f"{len(request.configurations)} configuration(s)",
            details={"enable_function_calling": request.enable_function_calling},
        )

        run = run.transition_to(RunStatus.RUNNING)
        await run_log.persist("update_run", lambda: self._sink.update_run(run))

        try:
            configurations = await self._prepare_configurations(request, run, run_log)
        except Exception as e:
            logger.exception("execution_failed", execution_run_id=str(run.id))
            failed = run.transition_to(RunStatus.FAILED, error_message=str(e))
            await run_log.record(
                LogLevel.ERROR,
                LogCategory.ERROR,
                f"Execution run failed: {e}",
            )
            await run_log.persist("update_run", lambda: self._sink.update_run(failed))
            EXECUTIONS.labels(status=RunStatus.FAILED.value).inc()
            raise

        # Runners encode every failure in their result
        with log_context(execution_run_id=run.id):
            results = await self._run_variations(
                request, configurations, run_log, cancel_event
            )
        total_time_ms = int((time.perf_counter() - start_time) * 1000)
        success_count, error_count = count_outcomes(results)

        comparison = await self._compare(request, results, run, run_log)

        run = run.transition_to(RunStatus.COMPLETED)
        await run_log.persist("update_run", lambda: self._sink.update_run(run))
        await run_log.record(
            LogLevel.SUCCESS,
            LogCategory.COMPLETION,
            f"Execution run completed: {success_count} succeeded, {error_count} failed",
            details={
                "total_time_ms": total_time_ms,
                "success_count": success_count,
                "error_count": error_count,
            },
        )

        EXECUTIONS.labels(status=RunStatus.COMPLETED.value).inc()
        EXECUTION_LATENCY.observe(total_time_ms / 1000)
        logger.info(
            "execution_completed",
            execution_run_id=str(run.id),
            success_count=success_count,
            error_count=error_count,
            total_time_ms=total_time_ms,
            compared=comparison is not None,
        )

        return ExecutionResult(
            execution_run=run,
            results=results,
            comparison=comparison,
            total_time_ms=total_time_ms,
            success_count=success_count,
            error_count=error_count,
            logs=run_log.entries,
        )

    async def _prepare_configurations(
        self,
        request: MultiExecutionRequest,
        run: ExecutionRun,
        run_log: RunLog,
    ) -> list[APIConfiguration]:
        """Bind configurations to the run and persist them in input order."""
        prepared: list[APIConfiguration] = []
        for configuration in request.configurations:
            update: dict[str, Any] = {"id": uuid4(), "execution_run_id": run.id}
            if (
                request.enable_function_calling
                and request.function_tools
                and not configuration.tools
            ):
                update["tools"] = list(request.function_tools)
            bound = configuration.model_copy(update=update)
            await run_log.persist(
                "log_configuration",
                lambda bound=bound: self._sink.log_configuration(bound),
                configuration_id=bound.id,
            )
            prepared.append(bound)
        return prepared

    async def _run_variations(
        self,
        request: MultiExecutionRequest,
        configurations: list[APIConfiguration],
        run_log: RunLog,
        cancel_event: asyncio.Event | None,
    ) -> list[VariationResult]:
        runner = VariationRunner(
            self._provider,
            self._resolver,
            run_log,
            timeout_seconds=self._config.generation_timeout_seconds,
            follow_up=self._config.follow_up_after_function_calls,
            function_mode=FunctionExecutionMode.MOCK if request.use_mock else None,
            cancel_event=cancel_event,
        )
        semaphore = asyncio.Semaphore(self._config.max_parallel_variations)

        async def run_one(configuration: APIConfiguration) -> VariationResult:
            with log_context(
                configuration_id=configuration.id,
                variation_name=configuration.variation_name,
            ):
                async with semaphore:
                    await run_log.record(
                        LogLevel.INFO,
                        LogCategory.EXECUTION,
                        f"Starting variation {configuration.variation_name}",
                        configuration_id=configuration.id,
                        details={"model": configuration.model_name},
                    )
                    return await runner.run(
                        configuration,
                        request.base_prompt,
                        request.context,
                        request.enable_function_calling,
                    )

        # gather preserves input order regardless of completion order
        return list(await asyncio.gather(*(run_one(c) for c in configurations)))

    async def _compare(
        self,
        request: MultiExecutionRequest,
        results: list[VariationResult],
        run: ExecutionRun,
        run_log: RunLog,
    ) -> ComparisonResult | None:
        comparison_config = request.comparison_config
        if (
            comparison_config is None
            or not comparison_config.enabled
            or not comparison_config.metrics
        ):
            return None

        try:
            comparison = self._comparator.compare(
                results,
                comparison_config.metrics,
                execution_run_id=run.id,
            )
        except Exception as e:
            message = e.message if isinstance(e, ComparisonError) else str(e)
            logger.warning(
                "comparison_failed",
                execution_run_id=str(run.id),
                error=message,
                error_type=type(e).__name__,
            )
            await run_log.record(
                LogLevel.WARN,
                LogCategory.COMPLETION,
                f"Comparison skipped: {message}",
                details={"metrics": comparison_config.metrics},
            )
            return None

        await run_log.persist(
            "store_comparison",
            lambda: self._sink.store_comparison(comparison),
        )
        await run_log.record(
            LogLevel.INFO,
            LogCategory.COMPLETION,
            comparison.analysis_notes,
            configuration_id=comparison.best_configuration_id,
            details={"metrics": comparison.metrics},
        )
        return comparison
