"""Generation providers.

The engine depends only on GenerationProvider:
- GeminiProvider calls the Gemini generateContent REST endpoint
- MockGenerationProvider returns scripted responses for tests and key-less runs
"""

from variantbench.providers.llm.base import (
    AuthenticationError,
    ContentFilterError,
    FunctionCallRequest,
    GenerationProvider,
    GenerationResult,
    ModelError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from variantbench.providers.llm.gemini import GeminiProvider, build_request_body
from variantbench.providers.llm.mock import MockGenerationProvider, MockScript

__all__ = [
    # Data models
    "FunctionCallRequest",
    "GenerationResult",
    # Interface
    "GenerationProvider",
    # Errors
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "ModelError",
    "ContentFilterError",
    "ProviderTimeoutError",
    # Implementations
    "GeminiProvider",
    "MockGenerationProvider",
    "MockScript",
    "build_request_body",
]
