"""Tests for ExecutionService."""

import asyncio
from uuid import uuid4

import httpx
import pytest

from variantbench.config.models.execution import ExecutionConfig
from variantbench.config.settings import Settings
from variantbench.exceptions import (
    ExecutionConfigurationError,
    ExecutionNotFoundError,
    ExecutionSetupError,
)
from variantbench.execution.models import (
    APIConfiguration,
    MultiExecutionRequest,
    ResponseStatus,
    RunCredentials,
    RunStatus,
)
from variantbench.execution.service import ExecutionService
from variantbench.functions import FunctionTool
from variantbench.providers.llm import (
    FunctionCallRequest,
    MockGenerationProvider,
    MockScript,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        execution=ExecutionConfig(
            generation_timeout_seconds=5,
            function_timeout_ms=1000,
            log_write_attempts=1,
            log_retry_backoff_ms=0,
        )
    )


def make_request(configurations, **kwargs) -> MultiExecutionRequest:
    return MultiExecutionRequest(
        execution_run_name=kwargs.pop("name", "greeting"),
        base_prompt="Say hello",
        configurations=configurations,
        **kwargs,
    )


class TestExecute:
    """Tests for starting executions."""

    @pytest.mark.asyncio
    async def test_returns_pending_run_then_completes(
        self, execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        provider = MockGenerationProvider(default_response="hi")
        service = ExecutionService(
            execution_logger,
            function_registry,
            settings=settings,
            provider_factory=lambda api_key: provider,
        )

        handle = await service.execute(make_request(fast_and_creative))

        assert handle.execution_run.status == RunStatus.PENDING
        assert handle.execution_id == handle.execution_run.id
        initial = await service.get_execution_status(handle.execution_id)
        assert initial.result is None

        status = await service.wait(handle.execution_id)

        assert status.status == RunStatus.COMPLETED
        assert status.error is None
        assert status.result is not None
        assert status.result.success_count == 2
        assert [r.response.response_text for r in status.result.results] == ["hi", "hi"]
        await service.aclose()

    @pytest.mark.asyncio
    async def test_invalid_request_raised_synchronously(
        self, execution_logger, function_registry, settings
    ) -> None:
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        with pytest.raises(ExecutionConfigurationError):
            await service.execute(make_request([]))

        assert await service.list_execution_runs() == []

    @pytest.mark.asyncio
    async def test_setup_failure_raised_synchronously(
        self, flaky_execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        flaky_execution_logger.fail("create_run")
        service = ExecutionService(flaky_execution_logger, function_registry, settings=settings)

        with pytest.raises(ExecutionSetupError):
            await service.execute(make_request(fast_and_creative))

    @pytest.mark.asyncio
    async def test_provider_factory_receives_run_key(
        self, execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        seen: list[str | None] = []

        def factory(api_key: str | None) -> MockGenerationProvider:
            seen.append(api_key)
            return MockGenerationProvider()

        service = ExecutionService(
            execution_logger,
            function_registry,
            settings=settings,
            provider_factory=factory,
        )

        first = await service.execute(
            make_request(fast_and_creative),
            RunCredentials(generation_api_key="run-key"),
        )
        second = await service.execute(make_request(fast_and_creative))
        await service.wait(first.execution_id)
        await service.wait(second.execution_id)

        assert seen == ["run-key", None]

    @pytest.mark.asyncio
    async def test_default_provider_is_mock_without_key(
        self, execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        handle = await service.execute(make_request(fast_and_creative))
        status = await service.wait(handle.execution_id)

        assert status.result.success_count == 2
        assert status.result.results[0].response.response_text.startswith("Mock response")


class TestFunctionCredentials:
    """Tests for run-scoped function credentials."""

    @staticmethod
    def weather_request(**kwargs) -> MultiExecutionRequest:
        return make_request(
            [APIConfiguration(variation_name="tools", model_name="m")],
            enable_function_calling=True,
            function_tools=[FunctionTool(name="get_current_weather", description="weather")],
            **kwargs,
        )

    @staticmethod
    def weather_provider() -> MockGenerationProvider:
        return MockGenerationProvider(
            scripts={
                "tools": MockScript(
                    function_calls=[
                        FunctionCallRequest(
                            name="get_current_weather", arguments={"location": "Paris"}
                        )
                    ],
                    follow_up_text="Mild in Paris",
                )
            }
        )

    @pytest.mark.asyncio
    async def test_run_keys_reach_the_endpoint(
        self, execution_logger, function_registry, settings
    ) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"name": "Paris", "main": {"temp": 18}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = self.weather_provider()
        service = ExecutionService(
            execution_logger,
            function_registry,
            settings=settings,
            provider_factory=lambda api_key: provider,
            http_client=client,
        )

        handle = await service.execute(
            self.weather_request(),
            RunCredentials(function_api_keys={"openWeatherApiKey": "secret-weather"}),
        )
        status = await service.wait(handle.execution_id)

        assert len(captured) == 1
        assert captured[0].url.params["appid"] == "secret-weather"
        assert captured[0].url.params["location"] == "Paris"
        call = status.result.results[0].function_calls[0]
        assert call.used_mock_data is False
        assert call.function_response == {"name": "Paris", "main": {"temp": 18}}
        assert status.result.results[0].response.response_text == "Mild in Paris"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_use_mock_never_calls_endpoint(
        self, execution_logger, function_registry, settings
    ) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = self.weather_provider()
        service = ExecutionService(
            execution_logger,
            function_registry,
            settings=settings,
            provider_factory=lambda api_key: provider,
            http_client=client,
        )

        handle = await service.execute(
            self.weather_request(use_mock=True),
            RunCredentials(function_api_keys={"openWeatherApiKey": "secret-weather"}),
        )
        status = await service.wait(handle.execution_id)

        assert captured == []
        assert status.result.results[0].function_calls[0].used_mock_data is True
        await client.aclose()


class TestStatusAndListing:
    """Tests for status queries and run listing."""

    @pytest.mark.asyncio
    async def test_unknown_execution_raises(
        self, execution_logger, function_registry, settings
    ) -> None:
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        with pytest.raises(ExecutionNotFoundError):
            await service.get_execution_status(uuid4())

    @pytest.mark.asyncio
    async def test_list_runs_newest_first(
        self, execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        first = await service.execute(make_request(fast_and_creative, name="first"))
        await service.wait(first.execution_id)
        await asyncio.sleep(0.01)
        second = await service.execute(make_request(fast_and_creative, name="second"))
        await service.wait(second.execution_id)

        runs = await service.list_execution_runs()
        assert [r.name for r in runs] == ["second", "first"]
        assert all(r.status == RunStatus.COMPLETED for r in runs)

        paged = await service.list_execution_runs(limit=1, offset=1)
        assert [r.name for r in paged] == ["first"]

    @pytest.mark.asyncio
    async def test_oldest_results_evicted_beyond_retention(
        self, execution_logger, function_registry, fast_and_creative
    ) -> None:
        """Finished tasks are dropped and only the newest results are kept."""
        settings = Settings(
            execution=ExecutionConfig(
                log_write_attempts=1,
                log_retry_backoff_ms=0,
                retained_results=1,
            )
        )
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        first = await service.execute(make_request(fast_and_creative, name="first"))
        await service.wait(first.execution_id)
        second = await service.execute(make_request(fast_and_creative, name="second"))
        latest = await service.wait(second.execution_id)

        assert service._tasks == {}
        assert latest.result is not None
        evicted = await service.get_execution_status(first.execution_id)
        assert evicted.status == RunStatus.COMPLETED
        assert evicted.result is None


class TestCancel:
    """Tests for cancelling in-flight executions."""

    @pytest.mark.asyncio
    async def test_cancel_in_flight_execution(
        self, execution_logger, function_registry, fast_and_creative, settings
    ) -> None:
        provider = MockGenerationProvider(
            scripts={
                "fast": MockScript(text="hi"),
                "creative": MockScript(text="slow", delay_seconds=3),
            }
        )
        service = ExecutionService(
            execution_logger,
            function_registry,
            settings=settings,
            provider_factory=lambda api_key: provider,
        )

        handle = await service.execute(make_request(fast_and_creative))
        await asyncio.sleep(0.05)

        assert service.cancel(handle.execution_id) is True
        status = await asyncio.wait_for(service.wait(handle.execution_id), timeout=2)

        assert status.status == RunStatus.COMPLETED
        creative = status.result.results[1].response
        assert creative.response_status == ResponseStatus.ERROR
        assert creative.error_message == "execution cancelled"
        assert service.cancel(handle.execution_id) is False

    @pytest.mark.asyncio
    async def test_cancel_unknown_execution(
        self, execution_logger, function_registry, settings
    ) -> None:
        service = ExecutionService(execution_logger, function_registry, settings=settings)

        assert service.cancel(uuid4()) is False
