"""Function call resolution with mock, real and auto modes."""

import asyncio
import copy
import time
from collections.abc import Mapping
from typing import Any

import httpx

from variantbench.functions.models import (
    FunctionCallResult,
    FunctionCallStatus,
    FunctionDefinition,
    FunctionExecutionMode,
)
from variantbench.functions.registry import FunctionRegistry
from variantbench.observability.logging import get_logger
from variantbench.observability.metrics import FUNCTION_CALL_LATENCY, FUNCTION_CALLS

logger = get_logger(__name__)


class _Placeholders(dict[str, str]):
    """format_map mapping that leaves unknown placeholders untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{name}`` placeholders with credential values."""
    try:
        return template.format_map(_Placeholders(values))
    except (ValueError, IndexError):
        # Literal braces that are not placeholders
        return template


class FunctionResolver:
    """Resolve model-requested function calls.

    Modes:
    - mock: return the definition's recorded mock payload verbatim
    - real: call the definition's endpoint (GET sends arguments as query
      parameters, other methods as a JSON body)
    - auto: real when every required credential is available, mock otherwise

    A resolver is bound to one run's credentials. resolve() never raises;
    failures come back as FunctionCallResult with execution_status=error.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        *,
        credentials: Mapping[str, str] | None = None,
        timeout_ms: int = 10000,
        http_client: httpx.AsyncClient | None = None,
        user_agent: str = "VariantBench/0.1",
    ) -> None:
        """Initialize the resolver.

        Args:
            registry: Source of function definitions
            credentials: Run-scoped credential values by name
            timeout_ms: Maximum time per function call
            http_client: Optional pre-built client (for testing)
            user_agent: User-Agent header for real calls
        """
        self._registry = registry
        self._credentials = dict(credentials or {})
        self._timeout_ms = timeout_ms
        self._client = http_client
        self._owns_client = http_client is None
        self._user_agent = user_agent

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def missing_api_keys(self, definition: FunctionDefinition) -> list[str]:
        """Return required credential names not available to this run."""
        return [
            key for key in definition.required_api_keys
            if not self._credentials.get(key)
        ]

    async def resolve(
        self,
        function_name: str,
        arguments: dict[str, Any] | None = None,
        mode: FunctionExecutionMode | None = None,
    ) -> FunctionCallResult:
        """Resolve one function call.

        Args:
            function_name: Name the model asked for
            arguments: Arguments the model supplied
            mode: Resolution mode; None uses the function's declared mode

        Returns:
            FunctionCallResult describing the outcome
        """
        arguments = arguments or {}
        start_time = time.perf_counter()
        try:
            return await self._resolve(function_name, arguments, mode, start_time)
        except Exception as e:
            logger.exception("function_resolution_failed", function_name=function_name)
            return self._error(
                function_name,
                arguments,
                f"Failed to resolve {function_name}: {type(e).__name__}: {e}",
                start_time,
            )

    async def _resolve(
        self,
        function_name: str,
        arguments: dict[str, Any],
        mode: FunctionExecutionMode | None,
        start_time: float,
    ) -> FunctionCallResult:
        definition = await self._registry.get_function_definition(function_name)
        if definition is None:
            return self._error(
                function_name,
                arguments,
                f"Function not registered: {function_name}",
                start_time,
            )

        effective = mode or definition.execution_mode
        missing = self.missing_api_keys(definition)
        if effective == FunctionExecutionMode.AUTO:
            if not missing and definition.endpoint_url:
                effective = FunctionExecutionMode.REAL
            else:
                effective = FunctionExecutionMode.MOCK

        if effective == FunctionExecutionMode.MOCK:
            return self._mock(definition, arguments, start_time)

        if missing:
            return self._error(
                function_name,
                arguments,
                f"Missing required API key(s) for {function_name}: {', '.join(missing)}",
                start_time,
            )
        if not definition.endpoint_url:
            return self._error(
                function_name,
                arguments,
                f"No endpoint registered for {function_name}",
                start_time,
            )

        return await self._call_endpoint(definition, arguments, start_time)

    def _mock(
        self,
        definition: FunctionDefinition,
        arguments: dict[str, Any],
        start_time: float,
    ) -> FunctionCallResult:
        if definition.mock_response is None:
            return self._error(
                definition.name,
                arguments,
                f"No mock response registered for {definition.name}",
                start_time,
            )

        elapsed_ms = self._elapsed_ms(start_time)
        FUNCTION_CALLS.labels(
            function_name=definition.name, status="success", source="mock"
        ).inc()
        logger.debug("function_resolved_mock", function_name=definition.name)
        return FunctionCallResult(
            function_name=definition.name,
            arguments=arguments,
            response=copy.deepcopy(definition.mock_response),
            execution_status=FunctionCallStatus.SUCCESS,
            execution_time_ms=elapsed_ms,
            used_mock_data=True,
        )

    async def _call_endpoint(
        self,
        definition: FunctionDefinition,
        arguments: dict[str, Any],
        start_time: float,
    ) -> FunctionCallResult:
        method = definition.http_method.upper()
        url = render_template(definition.endpoint_url or "", self._credentials)
        headers = {
            name: render_template(value, self._credentials)
            for name, value in definition.headers.items()
        }
        headers.setdefault("User-Agent", self._user_agent)

        request_kwargs: dict[str, Any] = {"headers": headers}
        if method == "GET":
            request_kwargs["params"] = {k: _query_value(v) for k, v in arguments.items()}
        else:
            request_kwargs["json"] = arguments

        logger.info(
            "function_call_attempt",
            function_name=definition.name,
            method=method,
            timeout_ms=self._timeout_ms,
        )

        client = await self._ensure_client()
        timeout_s = self._timeout_ms / 1000
        try:
            response = await asyncio.wait_for(
                client.request(method, url, timeout=timeout_s, **request_kwargs),
                timeout=timeout_s,
            )
        except (TimeoutError, httpx.TimeoutException):
            logger.warning(
                "function_call_timeout",
                function_name=definition.name,
                timeout_ms=self._timeout_ms,
            )
            return self._error(
                definition.name,
                arguments,
                f"Timeout after {self._timeout_ms}ms calling {definition.name}",
                start_time,
                timed_out=True,
            )
        except httpx.HTTPError as e:
            logger.warning(
                "function_call_http_error",
                function_name=definition.name,
                error=str(e),
            )
            return self._error(
                definition.name,
                arguments,
                f"HTTP error calling {definition.name}: {e}",
                start_time,
            )

        elapsed_ms = self._elapsed_ms(start_time)
        payload = _response_payload(response)

        if not 200 <= response.status_code < 300:
            logger.warning(
                "function_call_bad_status",
                function_name=definition.name,
                status_code=response.status_code,
            )
            return self._error(
                definition.name,
                arguments,
                f"Endpoint returned status {response.status_code}",
                start_time,
                response=payload,
            )

        FUNCTION_CALLS.labels(
            function_name=definition.name, status="success", source="live"
        ).inc()
        FUNCTION_CALL_LATENCY.labels(
            function_name=definition.name, source="live"
        ).observe(elapsed_ms / 1000)
        logger.info(
            "function_call_succeeded",
            function_name=definition.name,
            status_code=response.status_code,
            execution_time_ms=elapsed_ms,
        )
        return FunctionCallResult(
            function_name=definition.name,
            arguments=arguments,
            response=payload,
            execution_status=FunctionCallStatus.SUCCESS,
            execution_time_ms=elapsed_ms,
            used_mock_data=False,
        )

    def _error(
        self,
        function_name: str,
        arguments: dict[str, Any],
        message: str,
        start_time: float,
        *,
        timed_out: bool = False,
        response: dict[str, Any] | None = None,
    ) -> FunctionCallResult:
        FUNCTION_CALLS.labels(
            function_name=function_name, status="error", source="none"
        ).inc()
        return FunctionCallResult(
            function_name=function_name,
            arguments=arguments,
            response=response,
            execution_status=FunctionCallStatus.ERROR,
            execution_time_ms=self._elapsed_ms(start_time),
            error_details=message,
            used_mock_data=False,
            timed_out=timed_out,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (dict, list)):
        return str(value)
    return value


def _response_payload(response: httpx.Response) -> dict[str, Any]:
    """Decode a function endpoint response into a JSON object."""
    try:
        data = response.json()
    except ValueError:
        return {"text": response.text[:2000]}
    if isinstance(data, dict):
        return data
    return {"result": data}
