"""Gemini generateContent provider over REST.

Builds the request body from an APIConfiguration (sampling parameters are
only sent when the configuration sets them), posts it with httpx and maps
the response (text parts, function calls, finish reason, usage metadata)
onto a GenerationResult. HTTP failures are mapped onto ProviderError
subclasses.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx

from variantbench.config.models.providers import GeminiProviderConfig
from variantbench.observability.logging import get_logger
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

if TYPE_CHECKING:
    from variantbench.execution.models import APIConfiguration
    from variantbench.functions.models import FunctionTool

logger = get_logger(__name__)

# Schema keywords the function declaration API accepts
_TOP_LEVEL_SCHEMA_FIELDS = frozenset({"type", "properties", "required", "description"})
_PROPERTY_SCHEMA_FIELDS = frozenset({
    "type",
    "description",
    "enum",
    "items",
    "properties",
    "required",
    "minimum",
    "maximum",
    "minLength",
    "maxLength",
    "pattern",
    "format",
})


def sanitize_parameters(params: dict[str, Any]) -> dict[str, Any]:
    """Drop JSON-schema keywords the function declaration API rejects."""
    sanitized: dict[str, Any] = {}
    for key, value in params.items():
        if key not in _TOP_LEVEL_SCHEMA_FIELDS:
            continue
        if key == "properties" and isinstance(value, dict):
            sanitized[key] = {
                name: (
                    {k: v for k, v in prop.items() if k in _PROPERTY_SCHEMA_FIELDS}
                    if isinstance(prop, dict)
                    else prop
                )
                for name, prop in value.items()
            }
        else:
            sanitized[key] = value
    return sanitized


def _tool_declarations(tools: list[FunctionTool]) -> list[dict[str, Any]]:
    return [
        {
            "functionDeclarations": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": sanitize_parameters(tool.parameters),
                }
            ]
        }
        for tool in tools
    ]


def build_request_body(
    configuration: APIConfiguration,
    prompt: str,
    *,
    include_tools: bool = True,
    force_function_calls: bool = True,
) -> dict[str, Any]:
    """Build the generateContent payload for one configuration.

    Only sampling parameters set on the configuration are sent; the
    provider's own defaults apply to the rest.
    """
    body: dict[str, Any] = {
        "contents": [{"parts": [{"text": prompt}]}],
    }

    generation_config: dict[str, Any] = dict(configuration.generation_config or {})
    if configuration.temperature is not None:
        generation_config["temperature"] = configuration.temperature
    if configuration.max_tokens is not None:
        generation_config["maxOutputTokens"] = configuration.max_tokens
    if configuration.top_p is not None:
        generation_config["topP"] = configuration.top_p
    if configuration.top_k is not None:
        generation_config["topK"] = configuration.top_k
    if generation_config:
        body["generationConfig"] = generation_config

    if configuration.safety_settings:
        body["safetySettings"] = [
            {"category": category, "threshold": threshold}
            for category, threshold in configuration.safety_settings.items()
        ]

    if include_tools and configuration.tools:
        body["tools"] = _tool_declarations(configuration.tools)
        if configuration.tool_config:
            body["toolConfig"] = configuration.tool_config
        elif force_function_calls:
            body["toolConfig"] = {"functionCallingConfig": {"mode": "ANY"}}

    return body


def parse_response(model: str, data: dict[str, Any]) -> GenerationResult:
    """Map a generateContent response onto a GenerationResult.

    Raises:
        ContentFilterError: If the prompt was blocked
        ProviderError: If the response has no candidates
    """
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise ContentFilterError(f"Prompt blocked: {feedback['blockReason']}")

    candidates = data.get("candidates") or []
    if not candidates:
        raise ProviderError("Response contained no candidates")

    candidate = candidates[0]
    texts: list[str] = []
    function_calls: list[FunctionCallRequest] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if part.get("text"):
            texts.append(part["text"])
        call = part.get("functionCall")
        if call and call.get("name"):
            function_calls.append(
                FunctionCallRequest(name=call["name"], arguments=call.get("args") or {})
            )

    usage_data = data.get("usageMetadata") or {}
    usage = {
        "prompt_tokens": int(usage_data.get("promptTokenCount", 0)),
        "completion_tokens": int(usage_data.get("candidatesTokenCount", 0)),
        "total_tokens": int(usage_data.get("totalTokenCount", 0)),
    }

    return GenerationResult(
        text="".join(texts),
        model=model,
        finish_reason=candidate.get("finishReason"),
        usage=usage,
        function_calls=function_calls,
        raw_response=data,
    )


class GeminiProvider(GenerationProvider):
    """Generation provider for the Gemini REST API.

    One instance is bound to one API key, so runs with different
    credentials use different providers.

    Example:
        provider = GeminiProvider(api_key="...", timeout_seconds=30)
        result = await provider.generate(configuration, "Say hello")
    """

    def __init__(
        self,
        api_key: str,
        config: GeminiProviderConfig | None = None,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            api_key: Gemini API key used for every call
            config: Provider settings (base URL, user agent)
            timeout_seconds: HTTP timeout per request
            http_client: Optional pre-built client (for testing)
        """
        self._api_key = api_key
        self._config = config or GeminiProviderConfig()
        self._timeout = timeout_seconds
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def describe_request(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool = True,
    ) -> dict[str, Any]:
        return build_request_body(
            configuration,
            prompt,
            include_tools=include_tools,
            force_function_calls=self._config.force_function_calls,
        )

    async def generate(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool = True,
    ) -> GenerationResult:
        """Call generateContent for one configuration."""
        model = configuration.model_name
        if not model:
            raise ModelError("Model name is empty")

        body = build_request_body(
            configuration,
            prompt,
            include_tools=include_tools,
            force_function_calls=self._config.force_function_calls,
        )
        url = f"{self._config.base_url.rstrip('/')}/models/{model}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self._api_key,
            "User-Agent": self._config.user_agent,
        }

        client = await self._ensure_client()
        start_time = time.perf_counter()
        try:
            response = await client.post(url, json=body, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Request to {model} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Request to {model} failed: {e}") from e
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if response.status_code != 200:
            preview = response.text[:500]
            logger.warning(
                "gemini_http_error",
                model=model,
                status_code=response.status_code,
                response_preview=preview[:200],
            )
            if response.status_code in (401, 403):
                raise AuthenticationError(f"HTTP error {response.status_code}: {preview}")
            if response.status_code == 429:
                raise RateLimitError(f"HTTP error 429: {preview}")
            if response.status_code == 404:
                raise ModelError(f"Model {model} not found: {preview}")
            raise ProviderError(f"HTTP error {response.status_code}: {preview}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Failed to parse response: {e}") from e

        result = parse_response(model, data)
        result = result.model_copy(update={"latency_ms": latency_ms, "raw_request": body})

        logger.debug(
            "gemini_generate_complete",
            model=model,
            latency_ms=latency_ms,
            content_length=len(result.text),
            function_calls=len(result.function_calls),
            finish_reason=result.finish_reason,
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
