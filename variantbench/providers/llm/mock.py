"""Mock generation provider for testing and key-less runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from variantbench.providers.llm.base import (
    FunctionCallRequest,
    GenerationProvider,
    GenerationResult,
    ProviderError,
)

if TYPE_CHECKING:
    from variantbench.execution.models import APIConfiguration


@dataclass
class MockScript:
    """Scripted behaviour for one variation (or model)."""

    text: str | None = None
    delay_seconds: float = 0.0
    latency_ms: int | None = None
    error: Exception | None = None
    function_calls: list[FunctionCallRequest] = field(default_factory=list)
    follow_up_text: str | None = None
    usage: dict[str, int] | None = None
    finish_reason: str = "STOP"


class MockGenerationProvider(GenerationProvider):
    """Mock generation provider.

    Returns configurable responses without making network calls. Scripts
    are looked up by variation name first, then by model name.
    """

    def __init__(
        self,
        default_response: str | None = None,
        default_latency_ms: int = 500,
        scripts: dict[str, MockScript] | None = None,
    ):
        """Initialize mock provider.

        Args:
            default_response: Text returned when no script matches; defaults
                to a sentence naming the prompt and model
            default_latency_ms: Latency reported for unscripted calls
            scripts: Map of variation or model name -> script
        """
        self._default_response = default_response
        self._default_latency_ms = default_latency_ms
        self._scripts = dict(scripts or {})
        self._call_history: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Return history of calls for testing assertions."""
        return self._call_history

    def clear_history(self) -> None:
        self._call_history.clear()

    def set_script(self, name: str, script: MockScript) -> None:
        """Script the behaviour for a variation or model name."""
        self._scripts[name] = script

    async def generate(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool = True,
    ) -> GenerationResult:
        """Generate mock response."""
        self._call_history.append({
            "variation_name": configuration.variation_name,
            "model": configuration.model_name,
            "prompt": prompt,
            "include_tools": include_tools,
            "temperature": configuration.temperature,
        })

        script = self._scripts.get(configuration.variation_name) or self._scripts.get(
            configuration.model_name
        )
        if script is None:
            text = self._default_response or (
                f"Mock response for prompt: {prompt} with model: {configuration.model_name}"
            )
            return self._result(configuration, prompt, text, self._default_latency_ms)

        if script.delay_seconds:
            await asyncio.sleep(script.delay_seconds)
        if script.error is not None:
            raise script.error
        if script.text is None and not script.function_calls:
            raise ProviderError("Mock script has neither text nor function calls")

        # Follow-up requests are issued without tools
        if not include_tools:
            text = script.follow_up_text or script.text or ""
            calls: list[FunctionCallRequest] = []
        else:
            text = script.text or ""
            calls = list(script.function_calls)

        latency = script.latency_ms
        if latency is None:
            latency = int(script.delay_seconds * 1000)
        return self._result(
            configuration,
            prompt,
            text,
            latency,
            function_calls=calls,
            usage=script.usage,
            finish_reason=script.finish_reason,
        )

    def _result(
        self,
        configuration: APIConfiguration,
        prompt: str,
        text: str,
        latency_ms: int,
        *,
        function_calls: list[FunctionCallRequest] | None = None,
        usage: dict[str, int] | None = None,
        finish_reason: str = "STOP",
    ) -> GenerationResult:
        # ~4 chars per token
        prompt_tokens = len(prompt) // 4
        completion_tokens = len(text) // 4
        return GenerationResult(
            text=text,
            model=configuration.model_name,
            finish_reason=finish_reason,
            usage=usage
            or {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            function_calls=function_calls or [],
            latency_ms=latency_ms,
        )
