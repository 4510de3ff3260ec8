"""Shared test fixtures for the VariantBench test suite."""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from variantbench.audit.stores.inmemory import InMemoryExecutionLogger
from variantbench.execution.models import APIConfiguration
from variantbench.functions.defaults import default_function_definitions
from variantbench.functions.registry import InMemoryFunctionRegistry


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def mock_toml_files(test_config_dir: Path) -> Callable[[dict[str, str]], None]:
    """Factory fixture to create TOML files in the test config directory.

    Usage:
        def test_something(mock_toml_files):
            mock_toml_files({
                "default.toml": "app_name = 'test'",
                "development.toml": "debug = true",
            })
    """

    def _create_toml_files(files: dict[str, str]) -> None:
        for filename, content in files.items():
            toml_file = test_config_dir / filename
            toml_file.write_text(content)

    return _create_toml_files


class EnvOverrideContext:
    """Context manager for temporarily setting environment variables."""

    def __init__(self, overrides: dict[str, str]) -> None:
        self.overrides = overrides
        self.original_env: dict[str, str | None] = {}

    def __enter__(self) -> None:
        for key, value in self.overrides.items():
            self.original_env[key] = os.environ.get(key)
            os.environ[key] = value

    def __exit__(self, *args: Any) -> None:
        for key in self.overrides:
            if self.original_env[key] is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = self.original_env[key]


@pytest.fixture
def env_override() -> Generator[Callable[[dict[str, str]], EnvOverrideContext], None, None]:
    """Context manager for temporarily setting environment variables.

    Usage:
        def test_something(env_override):
            with env_override({"VARIANTBENCH_DEBUG": "true"}):
                # test code here
    """

    def _env_override(overrides: dict[str, str]) -> EnvOverrideContext:
        return EnvOverrideContext(overrides)

    yield _env_override


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    from variantbench.config import get_settings
    from variantbench.config.settings import set_toml_config

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    set_toml_config({})


@pytest.fixture
def execution_logger() -> InMemoryExecutionLogger:
    """Fresh in-memory execution logger."""
    return InMemoryExecutionLogger()


@pytest.fixture
def function_registry() -> InMemoryFunctionRegistry:
    """Registry seeded with the default functions."""
    return InMemoryFunctionRegistry(default_function_definitions())


@pytest.fixture
def fast_and_creative() -> list[APIConfiguration]:
    """Two variations differing only in temperature."""
    return [
        APIConfiguration(variation_name="fast", model_name="gemini-1.5-flash", temperature=0.2),
        APIConfiguration(variation_name="creative", model_name="gemini-1.5-flash", temperature=0.9),
    ]


class FlakyExecutionLogger(InMemoryExecutionLogger):
    """In-memory logger whose writes can be made to fail on demand."""

    def __init__(self) -> None:
        super().__init__()
        self._failures: dict[str, int] = {}
        self.attempts: dict[str, int] = {}

    def fail(self, operation: str, times: int = -1) -> None:
        """Fail the next ``times`` calls of ``operation`` (-1 means always)."""
        self._failures[operation] = times

    def _maybe_fail(self, operation: str) -> None:
        self.attempts[operation] = self.attempts.get(operation, 0) + 1
        remaining = self._failures.get(operation, 0)
        if remaining == 0:
            return
        if remaining > 0:
            self._failures[operation] = remaining - 1
        raise ConnectionError(f"{operation} unavailable")

    async def create_run(self, run):
        self._maybe_fail("create_run")
        return await super().create_run(run)

    async def update_run(self, run):
        self._maybe_fail("update_run")
        return await super().update_run(run)

    async def log_configuration(self, configuration):
        self._maybe_fail("log_configuration")
        return await super().log_configuration(configuration)

    async def log_request(self, request):
        self._maybe_fail("log_request")
        return await super().log_request(request)

    async def log_response(self, response):
        self._maybe_fail("log_response")
        return await super().log_response(response)

    async def log_function_call(self, function_call):
        self._maybe_fail("log_function_call")
        return await super().log_function_call(function_call)

    async def log_event(self, entry):
        self._maybe_fail("log_event")
        return await super().log_event(entry)

    async def store_comparison(self, comparison):
        self._maybe_fail("store_comparison")
        return await super().store_comparison(comparison)


@pytest.fixture
def flaky_execution_logger() -> FlakyExecutionLogger:
    """In-memory logger with injectable write failures."""
    return FlakyExecutionLogger()
