"""Variation runner: one configuration's request, function calls and response.

The runner never raises. Provider, function and collaborator failures are
encoded in the VariationResult's response status so sibling variations are
unaffected.
"""

import asyncio
import contextlib
import time
from typing import Any
from uuid import UUID

from variantbench.execution.models import (
    APIConfiguration,
    APIRequest,
    APIResponse,
    FunctionCall,
    LogCategory,
    LogLevel,
    RequestType,
    ResponseStatus,
    VariationResult,
)
from variantbench.execution.prompts import (
    build_follow_up_prompt,
    build_prompt,
    fallback_function_text,
)
from variantbench.execution.run_log import RunLog
from variantbench.functions.models import FunctionCallResult, FunctionExecutionMode
from variantbench.functions.resolver import FunctionResolver
from variantbench.observability.logging import get_logger
from variantbench.observability.metrics import (
    VARIATION_LATENCY,
    VARIATIONS,
    record_tokens,
)
from variantbench.providers.llm.base import (
    FunctionCallRequest,
    GenerationProvider,
    GenerationResult,
    ProviderError,
    ProviderTimeoutError,
)

logger = get_logger(__name__)

CANCELLED_MESSAGE = "execution cancelled"


class _Cancelled(Exception):
    """The caller cancelled the run while this variation was in flight."""


class _Outcome:
    """Status, message and timing of one generation attempt."""

    def __init__(
        self,
        result: GenerationResult | None,
        status: ResponseStatus,
        error_message: str | None,
        elapsed_ms: int,
    ) -> None:
        self.result = result
        self.status = status
        self.error_message = error_message
        self.elapsed_ms = elapsed_ms

    @property
    def response_time_ms(self) -> int:
        if self.result is not None and self.result.latency_ms:
            return self.result.latency_ms
        return self.elapsed_ms


class VariationRunner:
    """Runs one configuration's request -> function resolution -> response cycle.

    A runner is bound to one execution run: its resolver carries the run's
    credentials, its RunLog the run's log entries, and the optional cancel
    event the caller's cancellation signal.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        resolver: FunctionResolver,
        run_log: RunLog,
        *,
        timeout_seconds: float = 30.0,
        follow_up: bool = True,
        function_mode: FunctionExecutionMode | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            provider: Generation capability
            resolver: Function resolver bound to the run's credentials
            run_log: Log for the owning run
            timeout_seconds: Generation timeout, the same for every variation
            follow_up: Re-issue a generation with resolved function results
            function_mode: Override every function's declared mode
            cancel_event: Set by the caller to cancel in-flight work
        """
        self._provider = provider
        self._resolver = resolver
        self._log = run_log
        self._timeout = timeout_seconds
        self._follow_up = follow_up
        self._function_mode = function_mode
        self._cancel_event = cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def run(
        self,
        configuration: APIConfiguration,
        base_prompt: str,
        context: str | None = None,
        function_calling_enabled: bool = False,
    ) -> VariationResult:
        """Execute one variation.

        Args:
            configuration: Persisted configuration of this variation
            base_prompt: User prompt shared by every variation of the run
            context: Optional context appended to the prompt
            function_calling_enabled: Resolve tool calls the model emits

        Returns:
            VariationResult; never raises for provider, function or sink failures
        """
        start_time = time.perf_counter()
        request = APIRequest(
            execution_run_id=self._log.execution_run_id,
            configuration_id=configuration.id,
            request_type=RequestType.GENERATE,
            prompt=build_prompt(
                base_prompt,
                system_prompt=configuration.system_prompt,
                context=context,
            ),
            context=context,
        )
        try:
            return await self._run(
                configuration, request, function_calling_enabled, start_time
            )
        except Exception as e:
            logger.exception(
                "variation_unexpected_error",
                variation_name=configuration.variation_name,
                model=configuration.model_name,
            )
            return await self._failed(configuration, request, e, start_time)

    async def _run(
        self,
        configuration: APIConfiguration,
        request: APIRequest,
        function_calling_enabled: bool,
        start_time: float,
    ) -> VariationResult:
        prompt = request.prompt
        context = request.context
        request = request.model_copy(
            update={
                "request_body": self._provider.describe_request(
                    configuration, prompt, include_tools=function_calling_enabled
                )
            }
        )
        await self._log.persist(
            "log_request",
            lambda: self._log.sink.log_request(request),
            configuration_id=configuration.id,
            request_id=request.id,
        )
        await self._log.record(
            LogLevel.INFO,
            LogCategory.API_CALL,
            f"Sending request for variation {configuration.variation_name} "
            f"to {configuration.model_name}",
            configuration_id=configuration.id,
            request_id=request.id,
            details={"temperature": configuration.temperature},
        )

        outcome = await self._generate(
            configuration, prompt, include_tools=function_calling_enabled
        )

        function_calls: list[FunctionCall] = []
        response_text: str | None = None
        function_call_response: dict[str, Any] | None = None
        status = outcome.status
        error_message = outcome.error_message

        if outcome.result is not None:
            result = outcome.result
            record_tokens(configuration.model_name, result.usage)
            response_text = result.text
            if result.function_calls:
                function_call_response = {
                    "function_calls": [
                        {"name": c.name, "arguments": c.arguments}
                        for c in result.function_calls
                    ],
                }
                if function_calling_enabled:
                    resolved, cancelled = await self._resolve_calls(
                        configuration, request.id, result.function_calls
                    )
                    function_calls = [record for record, _ in resolved]
                    function_call_response["function_results"] = [
                        {
                            "name": fc.function_name,
                            "status": fc.execution_status.value,
                            "response": fc.response,
                            "used_mock_data": fc.used_mock_data,
                            "error": fc.error_details,
                        }
                        for _, fc in resolved
                    ]
                    if not cancelled:
                        response_text, cancelled = await self._final_text(
                            configuration,
                            prompt,
                            context,
                            [fc for _, fc in resolved],
                            result.text,
                        )
                    if cancelled:
                        status = ResponseStatus.ERROR
                        error_message = CANCELLED_MESSAGE
                        response_text = None
                else:
                    await self._log.record(
                        LogLevel.INFO,
                        LogCategory.FUNCTION_CALL,
                        "Model requested function calls but function calling is disabled",
                        configuration_id=configuration.id,
                        request_id=request.id,
                        details={"functions": [c.name for c in result.function_calls]},
                    )

        response = APIResponse(
            request_id=request.id,
            response_status=status,
            response_text=response_text if status == ResponseStatus.SUCCESS else None,
            function_call_response=function_call_response,
            usage_metadata=outcome.result.usage if outcome.result else {},
            finish_reason=outcome.result.finish_reason if outcome.result else None,
            error_message=error_message,
            response_time_ms=outcome.response_time_ms,
        )
        await self._log.persist(
            "log_response",
            lambda: self._log.sink.log_response(response),
            configuration_id=configuration.id,
            request_id=request.id,
        )

        execution_time_ms = int((time.perf_counter() - start_time) * 1000)
        VARIATIONS.labels(model=configuration.model_name, status=status.value).inc()
        VARIATION_LATENCY.labels(model=configuration.model_name).observe(
            execution_time_ms / 1000
        )

        if status == ResponseStatus.SUCCESS:
            await self._log.record(
                LogLevel.SUCCESS,
                LogCategory.API_CALL,
                f"Variation {configuration.variation_name} completed",
                configuration_id=configuration.id,
                request_id=request.id,
                details={
                    "response_time_ms": response.response_time_ms,
                    "execution_time_ms": execution_time_ms,
                    "function_calls": len(function_calls),
                },
            )
        else:
            await self._log.record(
                LogLevel.ERROR,
                LogCategory.ERROR,
                f"Variation {configuration.variation_name} failed: {error_message}",
                configuration_id=configuration.id,
                request_id=request.id,
                details={"status": status.value},
            )

        return VariationResult(
            configuration=configuration,
            request=request,
            response=response,
            function_calls=function_calls,
            execution_time_ms=execution_time_ms,
        )

    async def _failed(
        self,
        configuration: APIConfiguration,
        request: APIRequest,
        error: Exception,
        start_time: float,
    ) -> VariationResult:
        """Encode an unexpected failure as an ERROR variation result."""
        execution_time_ms = int((time.perf_counter() - start_time) * 1000)
        message = f"{type(error).__name__}: {error}"
        response = APIResponse(
            request_id=request.id,
            response_status=ResponseStatus.ERROR,
            error_message=message,
            response_time_ms=execution_time_ms,
        )
        await self._log.persist(
            "log_response",
            lambda: self._log.sink.log_response(response),
            configuration_id=configuration.id,
            request_id=request.id,
        )
        await self._log.record(
            LogLevel.ERROR,
            LogCategory.ERROR,
            f"Variation {configuration.variation_name} failed: {message}",
            configuration_id=configuration.id,
            request_id=request.id,
            details={"status": ResponseStatus.ERROR.value},
        )
        VARIATIONS.labels(
            model=configuration.model_name, status=ResponseStatus.ERROR.value
        ).inc()
        return VariationResult(
            configuration=configuration,
            request=request,
            response=response,
            execution_time_ms=execution_time_ms,
        )

    async def _generate(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool,
    ) -> _Outcome:
        """Run one bounded generation call and classify its outcome."""
        start_time = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - start_time) * 1000)

        try:
            result = await self._call_provider(
                configuration, prompt, include_tools=include_tools
            )
        except (TimeoutError, ProviderTimeoutError):
            logger.warning(
                "generation_timeout",
                variation_name=configuration.variation_name,
                model=configuration.model_name,
                timeout_seconds=self._timeout,
            )
            return _Outcome(
                None,
                ResponseStatus.TIMEOUT,
                f"Generation timed out after {self._timeout:g}s",
                elapsed(),
            )
        except _Cancelled:
            return _Outcome(None, ResponseStatus.ERROR, CANCELLED_MESSAGE, elapsed())
        except ProviderError as e:
            logger.warning(
                "generation_failed",
                variation_name=configuration.variation_name,
                model=configuration.model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return _Outcome(None, ResponseStatus.ERROR, str(e), elapsed())
        except Exception as e:
            logger.exception(
                "generation_unexpected_error",
                variation_name=configuration.variation_name,
                model=configuration.model_name,
            )
            return _Outcome(
                None, ResponseStatus.ERROR, f"{type(e).__name__}: {e}", elapsed()
            )

        return _Outcome(result, ResponseStatus.SUCCESS, None, elapsed())

    async def _call_provider(
        self,
        configuration: APIConfiguration,
        prompt: str,
        *,
        include_tools: bool,
    ) -> GenerationResult:
        """Call the provider under the timeout, racing the cancel signal."""
        if self.cancelled:
            raise _Cancelled()

        call = asyncio.ensure_future(
            asyncio.wait_for(
                self._provider.generate(
                    configuration, prompt, include_tools=include_tools
                ),
                timeout=self._timeout,
            )
        )
        if self._cancel_event is None:
            return await call

        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {call, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_wait.cancel()
            if not call.done():
                call.cancel()

        if call in done:
            return call.result()

        with contextlib.suppress(asyncio.CancelledError):
            await call
        raise _Cancelled()

    async def _resolve_calls(
        self,
        configuration: APIConfiguration,
        request_id: UUID,
        calls: list[FunctionCallRequest],
    ) -> tuple[list[tuple[FunctionCall, FunctionCallResult]], bool]:
        """Resolve tool calls in emission order.

        Returns the resolved calls and whether cancellation stopped the loop.
        """
        resolved: list[tuple[FunctionCall, FunctionCallResult]] = []
        for call in calls:
            if self.cancelled:
                await self._log.record(
                    LogLevel.WARN,
                    LogCategory.FUNCTION_CALL,
                    f"Skipping function {call.name}: execution cancelled",
                    configuration_id=configuration.id,
                    request_id=request_id,
                )
                return resolved, True

            await self._log.record(
                LogLevel.INFO,
                LogCategory.FUNCTION_CALL,
                f"Resolving function {call.name}",
                configuration_id=configuration.id,
                request_id=request_id,
                details={"arguments": call.arguments},
            )
            outcome = await self._resolver.resolve(
                call.name, call.arguments, self._function_mode
            )
            record = FunctionCall(
                request_id=request_id,
                function_name=outcome.function_name,
                function_arguments=outcome.arguments,
                function_response=outcome.response,
                execution_status=outcome.execution_status,
                execution_time_ms=outcome.execution_time_ms,
                error_details=outcome.error_details,
                used_mock_data=outcome.used_mock_data,
            )
            await self._log.persist(
                "log_function_call",
                lambda record=record: self._log.sink.log_function_call(record),
                configuration_id=configuration.id,
                request_id=request_id,
            )
            if outcome.succeeded:
                await self._log.record(
                    LogLevel.SUCCESS,
                    LogCategory.FUNCTION_CALL,
                    f"Function {call.name} returned "
                    f"{'mock' if outcome.used_mock_data else 'live'} data",
                    configuration_id=configuration.id,
                    request_id=request_id,
                    details={"execution_time_ms": outcome.execution_time_ms},
                )
            else:
                await self._log.record(
                    LogLevel.ERROR,
                    LogCategory.FUNCTION_CALL,
                    f"Function {call.name} failed: {outcome.error_details}",
                    configuration_id=configuration.id,
                    request_id=request_id,
                    details={"timed_out": outcome.timed_out},
                )
            resolved.append((record, outcome))

        return resolved, False

    async def _final_text(
        self,
        configuration: APIConfiguration,
        prompt: str,
        context: str | None,
        outcomes: list[FunctionCallResult],
        original_text: str,
    ) -> tuple[str | None, bool]:
        """Produce the response text after function resolution.

        Returns the text and whether cancellation interrupted the follow-up.
        """
        names = [o.function_name for o in outcomes]
        fallback = original_text or fallback_function_text(names)
        if not self._follow_up or not outcomes:
            return fallback, False

        follow_up_prompt = build_follow_up_prompt(
            prompt,
            [
                (
                    o.function_name,
                    o.response if o.succeeded else {"error": o.error_details},
                )
                for o in outcomes
            ],
        )
        request = APIRequest(
            execution_run_id=self._log.execution_run_id,
            configuration_id=configuration.id,
            request_type=RequestType.FUNCTION_CALL,
            prompt=follow_up_prompt,
            context=context,
            function_name=", ".join(names),
            function_parameters={
                "calls": [
                    {"name": o.function_name, "arguments": o.arguments}
                    for o in outcomes
                ]
            },
            request_body=self._provider.describe_request(
                configuration, follow_up_prompt, include_tools=False
            ),
        )
        await self._log.persist(
            "log_request",
            lambda: self._log.sink.log_request(request),
            configuration_id=configuration.id,
            request_id=request.id,
        )

        outcome = await self._generate(configuration, follow_up_prompt, include_tools=False)
        response = APIResponse(
            request_id=request.id,
            response_status=outcome.status,
            response_text=outcome.result.text if outcome.result else None,
            usage_metadata=outcome.result.usage if outcome.result else {},
            finish_reason=outcome.result.finish_reason if outcome.result else None,
            error_message=outcome.error_message,
            response_time_ms=outcome.response_time_ms,
        )
        await self._log.persist(
            "log_response",
            lambda: self._log.sink.log_response(response),
            configuration_id=configuration.id,
            request_id=request.id,
        )

        if outcome.result is not None and outcome.result.text:
            record_tokens(configuration.model_name, outcome.result.usage)
            return outcome.result.text, False
        if outcome.result is None and self.cancelled:
            return None, True

        await self._log.record(
            LogLevel.WARN,
            LogCategory.API_CALL,
            f"Follow-up generation failed, using fallback text: {outcome.error_message}",
            configuration_id=configuration.id,
            request_id=request.id,
        )
        return fallback, False
