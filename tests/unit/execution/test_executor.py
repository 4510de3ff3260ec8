"""Tests for MultiVariationExecutor."""

import asyncio

import pytest

from variantbench.config.models.execution import ExecutionConfig
from variantbench.exceptions import ExecutionConfigurationError, ExecutionSetupError
from variantbench.execution.executor import MultiVariationExecutor
from variantbench.execution.models import (
    APIConfiguration,
    ComparisonConfig,
    LogCategory,
    LogLevel,
    MultiExecutionRequest,
    ResponseStatus,
    RunStatus,
)
from variantbench.functions import (
    FunctionCallStatus,
    FunctionResolver,
    FunctionTool,
    InMemoryFunctionRegistry,
)
from variantbench.providers.llm import (
    FunctionCallRequest,
    MockGenerationProvider,
    MockScript,
    ProviderError,
)

FAST_CONFIG = ExecutionConfig(
    generation_timeout_seconds=0.2,
    log_write_attempts=2,
    log_retry_backoff_ms=0,
)


def make_executor(execution_logger, registry, provider, **kwargs) -> MultiVariationExecutor:
    return MultiVariationExecutor(
        execution_logger,
        provider,
        FunctionResolver(registry),
        config=kwargs.pop("config", FAST_CONFIG),
        **kwargs,
    )


def make_request(configurations, **kwargs) -> MultiExecutionRequest:
    return MultiExecutionRequest(
        execution_run_name="temperature sweep",
        base_prompt="Say hello",
        configurations=configurations,
        **kwargs,
    )


class TestValidation:
    """Tests for configuration errors raised before the run starts."""

    @pytest.mark.asyncio
    async def test_zero_configurations_rejected(self, execution_logger, function_registry) -> None:
        executor = make_executor(execution_logger, function_registry, MockGenerationProvider())

        with pytest.raises(ExecutionConfigurationError, match="at least one configuration required"):
            await executor.execute(make_request([]))

        assert await execution_logger.list_runs() == []

    @pytest.mark.asyncio
    async def test_duplicate_variation_names_rejected(
        self, execution_logger, function_registry
    ) -> None:
        executor = make_executor(execution_logger, function_registry, MockGenerationProvider())
        configurations = [
            APIConfiguration(variation_name="same", model_name="m"),
            APIConfiguration(variation_name="same", model_name="m"),
        ]

        with pytest.raises(ExecutionConfigurationError, match="unique"):
            await executor.execute(make_request(configurations))

    @pytest.mark.asyncio
    async def test_unknown_metric_rejected(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        executor = make_executor(execution_logger, function_registry, MockGenerationProvider())
        request = make_request(
            fast_and_creative,
            comparison_config=ComparisonConfig(enabled=True, metrics=["vibes"]),
        )

        with pytest.raises(ExecutionConfigurationError, match="vibes"):
            await executor.execute(request)


class TestExecution:
    """Tests for fan-out and aggregation."""

    @pytest.mark.asyncio
    async def test_fast_succeeds_creative_times_out(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        """One success and one timeout still complete the run."""
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(text="hi", latency_ms=10),
                "creative": MockScript(text="too slow", delay_seconds=2),
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)

        result = await executor.execute(make_request(fast_and_creative))

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.results[0].response.response_status == ResponseStatus.SUCCESS
        assert result.results[0].response.response_text == "hi"
        assert result.results[1].response.response_status == ResponseStatus.TIMEOUT
        assert result.execution_run.status == RunStatus.COMPLETED

        stored = await execution_logger.get_run(result.execution_run.id)
        assert stored.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, execution_logger, function_registry) -> None:
        """Completion order does not change result order."""
        delays = [0.08, 0.0, 0.04, 0.02]
        configurations = [
            APIConfiguration(variation_name=f"v{i}", model_name="m") for i in range(len(delays))
        ]
        provider = MockGenerationProvider(
            scripts={
                f"v{i}": MockScript(text=f"text {i}", delay_seconds=d)
                for i, d in enumerate(delays)
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)

        result = await executor.execute(make_request(configurations))

        assert len(result.results) == len(configurations)
        assert [r.configuration.variation_name for r in result.results] == [
            "v0",
            "v1",
            "v2",
            "v3",
        ]
        assert [r.response.response_text for r in result.results] == [
            "text 0",
            "text 1",
            "text 2",
            "text 3",
        ]

    @pytest.mark.asyncio
    async def test_variations_run_concurrently(self, execution_logger, function_registry) -> None:
        """Total time is wall-clock, not the sum of variation times."""
        configurations = [
            APIConfiguration(variation_name=f"v{i}", model_name="m") for i in range(4)
        ]
        provider = MockGenerationProvider(
            scripts={f"v{i}": MockScript(text="ok", delay_seconds=0.1) for i in range(4)}
        )
        executor = make_executor(execution_logger, function_registry, provider)

        result = await executor.execute(make_request(configurations))

        assert result.total_time_ms < sum(r.execution_time_ms for r in result.results)

    @pytest.mark.asyncio
    async def test_all_errors_still_completed(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(error=ProviderError("boom")),
                "creative": MockScript(error=ProviderError("boom")),
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)

        result = await executor.execute(make_request(fast_and_creative))

        assert result.success_count == 0
        assert result.error_count == 2
        assert all(r.response.response_status == ResponseStatus.ERROR for r in result.results)
        assert result.execution_run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_configurations_bound_to_run(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        executor = make_executor(execution_logger, function_registry, MockGenerationProvider())

        result = await executor.execute(make_request(fast_and_creative))

        run_id = result.execution_run.id
        stored = await execution_logger.list_configurations(run_id)
        assert [c.variation_name for c in stored] == ["fast", "creative"]
        for variation, original in zip(result.results, fast_and_creative, strict=True):
            assert variation.configuration.execution_run_id == run_id
            assert variation.configuration.id != original.id
            assert variation.request.execution_run_id == run_id
            assert variation.configuration.temperature == original.temperature

    @pytest.mark.asyncio
    async def test_function_tools_attached_when_enabled(
        self, execution_logger, function_registry
    ) -> None:
        tool = FunctionTool(name="get_current_weather", description="weather")
        provider = MockGenerationProvider(
            scripts={
                "tools": MockScript(
                    function_calls=[FunctionCallRequest(name="get_current_weather")],
                    follow_up_text="Sunny",
                )
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)
        request = make_request(
            [APIConfiguration(variation_name="tools", model_name="m")],
            enable_function_calling=True,
            function_tools=[tool],
        )

        result = await executor.execute(request)

        assert result.results[0].configuration.tools == [tool]
        assert result.results[0].request.request_body["tools"] == ["get_current_weather"]
        assert result.results[0].response.response_text == "Sunny"
        assert result.results[0].function_calls[0].used_mock_data is True

    @pytest.mark.asyncio
    async def test_logs_attached_in_order(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        executor = make_executor(execution_logger, function_registry, MockGenerationProvider())

        result = await executor.execute(make_request(fast_and_creative))

        assert result.logs[0].log_category == LogCategory.SETUP
        assert result.logs[-1].log_category == LogCategory.COMPLETION
        assert result.logs[-1].log_level == LogLevel.SUCCESS
        timestamps = [entry.timestamp for entry in result.logs]
        assert timestamps == sorted(timestamps)
        persisted = await execution_logger.list_events(result.execution_run.id)
        assert len(persisted) == len(result.logs)

    @pytest.mark.asyncio
    async def test_max_parallel_variations_bounds_fan_out(
        self, execution_logger, function_registry
    ) -> None:
        in_flight = 0
        peak = 0

        class CountingProvider(MockGenerationProvider):
            async def generate(self, configuration, prompt, *, include_tools=True):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.02)
                in_flight -= 1
                return await super().generate(configuration, prompt, include_tools=include_tools)

        configurations = [
            APIConfiguration(variation_name=f"v{i}", model_name="m") for i in range(6)
        ]
        executor = make_executor(
            execution_logger,
            function_registry,
            CountingProvider(),
            config=ExecutionConfig(max_parallel_variations=2, log_retry_backoff_ms=0),
        )

        await executor.execute(make_request(configurations))

        assert peak == 2


class TestComparison:
    """Tests for comparator integration."""

    @pytest.mark.asyncio
    async def test_comparison_attached_and_persisted(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(text="hi", latency_ms=10),
                "creative": MockScript(text="hello there", latency_ms=400),
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)
        request = make_request(
            fast_and_creative,
            comparison_config=ComparisonConfig(enabled=True, metrics=["response_time"]),
        )

        result = await executor.execute(request)

        assert result.comparison is not None
        assert result.comparison.best_configuration_id == result.results[0].configuration.id
        assert result.comparison.best_configuration_id in {
            r.configuration.id for r in result.results
        }
        assert await execution_logger.get_comparison(result.execution_run.id) == result.comparison

    @pytest.mark.asyncio
    async def test_disabled_comparison_not_invoked(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        class ExplodingComparator:
            def unknown_metrics(self, metrics):
                return []

            def compare(self, *args, **kwargs):
                raise AssertionError("comparator must not be called")

        executor = make_executor(
            execution_logger,
            function_registry,
            MockGenerationProvider(),
            comparator=ExplodingComparator(),
        )
        request = make_request(
            fast_and_creative,
            comparison_config=ComparisonConfig(enabled=False, metrics=["response_time"]),
        )

        result = await executor.execute(request)

        assert result.comparison is None

    @pytest.mark.asyncio
    async def test_comparison_without_successes_is_logged_not_fatal(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(error=ProviderError("down")),
                "creative": MockScript(error=ProviderError("down")),
            }
        )
        executor = make_executor(execution_logger, function_registry, provider)
        request = make_request(
            fast_and_creative,
            comparison_config=ComparisonConfig(enabled=True, metrics=["response_time"]),
        )

        result = await executor.execute(request)

        assert result.comparison is None
        assert result.execution_run.status == RunStatus.COMPLETED
        assert any(
            "no successful variations to compare" in entry.message for entry in result.logs
        )


class TestSinkFailures:
    """Tests for execution logger failures."""

    @pytest.mark.asyncio
    async def test_run_creation_failure_is_setup_error(
        self, flaky_execution_logger, function_registry, fast_and_creative
    ) -> None:
        flaky_execution_logger.fail("create_run")
        provider = MockGenerationProvider()
        executor = make_executor(flaky_execution_logger, function_registry, provider)

        with pytest.raises(ExecutionSetupError):
            await executor.execute(make_request(fast_and_creative))

        assert flaky_execution_logger.attempts["create_run"] == 2
        assert provider.call_history == []

    @pytest.mark.asyncio
    async def test_later_write_failures_do_not_fail_run(
        self, flaky_execution_logger, function_registry, fast_and_creative
    ) -> None:
        flaky_execution_logger.fail("log_response")
        executor = make_executor(flaky_execution_logger, function_registry, MockGenerationProvider())

        result = await executor.execute(make_request(fast_and_creative))

        assert result.success_count == 2
        assert result.execution_run.status == RunStatus.COMPLETED
        assert sum(1 for e in result.logs if e.log_level == LogLevel.WARN) == 2


class TestCollaboratorFailures:
    """Tests for collaborators raising while variations run."""

    @pytest.mark.asyncio
    async def test_registry_failure_does_not_fail_run(self, execution_logger) -> None:
        """One variation's function lookup failing leaves the siblings intact."""

        class UnavailableRegistry(InMemoryFunctionRegistry):
            async def get_function_definition(self, name):
                raise ConnectionError("registry down")

        provider = MockGenerationProvider(
            scripts={
                "a": MockScript(
                    function_calls=[FunctionCallRequest(name="get_current_weather")],
                    follow_up_text="No weather today",
                ),
                "b": MockScript(text="fine"),
            }
        )
        executor = make_executor(execution_logger, UnavailableRegistry(), provider)
        request = make_request(
            [
                APIConfiguration(variation_name="a", model_name="m"),
                APIConfiguration(variation_name="b", model_name="m"),
            ],
            enable_function_calling=True,
        )

        result = await executor.execute(request)

        a, b = result.results
        assert a.function_calls[0].execution_status == FunctionCallStatus.ERROR
        assert "registry down" in a.function_calls[0].error_details
        assert b.response.response_status == ResponseStatus.SUCCESS
        assert b.response.response_text == "fine"
        assert result.execution_run.status == RunStatus.COMPLETED
        stored = await execution_logger.get_run(result.execution_run.id)
        assert stored.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unexpected_variation_failure_is_error_result(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        class PickyProvider(MockGenerationProvider):
            def describe_request(self, configuration, prompt, *, include_tools=True):
                if configuration.variation_name == "creative":
                    raise RuntimeError("cannot describe")
                return super().describe_request(
                    configuration, prompt, include_tools=include_tools
                )

        executor = make_executor(execution_logger, function_registry, PickyProvider())

        result = await executor.execute(make_request(fast_and_creative))

        assert result.success_count == 1
        assert result.error_count == 1
        assert result.results[1].response.error_message == "RuntimeError: cannot describe"
        assert result.execution_run.status == RunStatus.COMPLETED


class TestCancellation:
    """Tests for caller cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_marks_in_flight_variations(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(text="hi"),
                "creative": MockScript(text="slow", delay_seconds=5),
            }
        )
        config = ExecutionConfig(generation_timeout_seconds=10, log_retry_backoff_ms=0)
        executor = make_executor(execution_logger, function_registry, provider, config=config)
        event = asyncio.Event()

        task = asyncio.create_task(
            executor.execute(make_request(fast_and_creative), cancel_event=event)
        )
        await asyncio.sleep(0.1)
        event.set()
        result = await asyncio.wait_for(task, timeout=2)

        assert result.results[0].response.response_status == ResponseStatus.SUCCESS
        assert result.results[1].response.error_message == "execution cancelled"
        assert result.execution_run.status == RunStatus.COMPLETED
