"""Generation data models, provider interface and error types.

This module provides the core types used by the variation runner:
- GenerationResult: Output of one generation call
- FunctionCallRequest: A tool call emitted by the model
- GenerationProvider: Interface every generation backend implements
- Error types for different failure modes
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from variantbench.execution.models import APIConfiguration


class FunctionCallRequest(BaseModel):
    """A request from the model to execute a named function."""

    name: str = Field(..., description="Function name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Call arguments")


class GenerationResult(BaseModel):
    """Result of a successful generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(..., description="Model used")
    finish_reason: str | None = Field(
        default=None, description="Why generation stopped"
    )
    usage: dict[str, int] = Field(
        default_factory=dict,
        description="prompt_tokens, completion_tokens, total_tokens",
    )
    function_calls: list[FunctionCallRequest] = Field(
        default_factory=list, description="Tool calls in emission order"
    )
    latency_ms: int = Field(default=0, ge=0, description="Provider round-trip time")
    raw_request: dict[str, Any] | None = Field(
        default=None, description="Outbound provider payload"
    )
    raw_response: dict[str, Any] | None = Field(
        default=None, description="Raw provider response"
    )


class GenerationProvider(ABC):
    """Interface for generation backends.

    Implementations return a GenerationResult or raise a ProviderError
    subclass. Timeouts enforced by the caller surface as TimeoutError.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def generate(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool = True,
    ) -> GenerationResult:
        """Generate text for a fully built prompt under one configuration.

        Args:
            configuration: Variation to generate with
            prompt: Full prompt (system preamble, user prompt, context)
            include_tools: Offer the configuration's tools to the model
        """
        pass

    def describe_request(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool = True,
    ) -> dict[str, Any]:
        """Return the outbound payload recorded on the APIRequest row."""
        body: dict[str, Any] = {"model": configuration.model_name, "prompt": prompt}
        if include_tools and configuration.tools:
            body["tools"] = [tool.name for tool in configuration.tools]
        return body

    async def aclose(self) -> None:
        """Release any held resources."""
        return None


# ============================================================================
# Error Types
# ============================================================================


class ProviderError(Exception):
    """Base exception for generation provider errors."""

    pass


class AuthenticationError(ProviderError):
    """Invalid or missing API key."""

    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""

    pass


class ModelError(ProviderError):
    """Model not found or unavailable."""

    pass


class ContentFilterError(ProviderError):
    """Content blocked by safety filter."""

    pass


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""

    pass
