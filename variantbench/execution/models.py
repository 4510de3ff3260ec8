"""Execution domain models.

Contains the records persisted for every execution run (runs, configurations,
requests, responses, function calls, log entries) and the in-memory results
assembled from them (VariationResult, ExecutionResult, ComparisonResult).
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from variantbench.exceptions import InvalidRunTransitionError
from variantbench.functions.models import FunctionCallStatus, FunctionTool


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


# ============================================================================
# Enums
# ============================================================================


class RunStatus(str, Enum):
    """Lifecycle status of an execution run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.FAILED}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


class RequestType(str, Enum):
    """Kind of outbound generation request."""

    GENERATE = "generate"
    CHAT = "chat"
    FUNCTION_CALL = "function_call"


class ResponseStatus(str, Enum):
    """Outcome of a generation request."""

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class LogLevel(str, Enum):
    """Severity of an execution log entry."""

    INFO = "INFO"
    DEBUG = "DEBUG"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


class LogCategory(str, Enum):
    """Phase of the execution an entry belongs to."""

    SETUP = "SETUP"
    EXECUTION = "EXECUTION"
    FUNCTION_CALL = "FUNCTION_CALL"
    API_CALL = "API_CALL"
    COMPLETION = "COMPLETION"
    ERROR = "ERROR"


# ============================================================================
# Persisted records
# ============================================================================


class ExecutionRun(BaseModel):
    """One logical batch of variations sharing a base prompt and context."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., description="Run name")
    description: str | None = None
    enable_function_calling: bool = False
    status: RunStatus = RunStatus.PENDING
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def transition_to(
        self, status: RunStatus, error_message: str | None = None
    ) -> "ExecutionRun":
        """Return a copy of the run moved to ``status``.

        Raises:
            InvalidRunTransitionError: If the edge is not part of
                pending -> running -> {completed, failed}
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidRunTransitionError(
                f"Execution run {self.id} cannot move from "
                f"{self.status.value} to {status.value}"
            )
        return self.model_copy(
            update={
                "status": status,
                "error_message": error_message,
                "updated_at": utc_now(),
            }
        )


class APIConfiguration(BaseModel):
    """A named variation: model, sampling parameters and prompt wrapper.

    Sampling parameters are left unset unless the caller provides them;
    the engine never fills in defaults.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    execution_run_id: UUID | None = None
    variation_name: str = Field(..., min_length=1)
    model_name: str = Field(..., description="Model identifier")
    system_prompt: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    top_k: int | None = Field(default=None, gt=0)
    safety_settings: dict[str, Any] | None = None
    generation_config: dict[str, Any] | None = None
    tools: list[FunctionTool] = Field(default_factory=list)
    tool_config: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class APIRequest(BaseModel):
    """An outbound generation request issued for one variation."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    execution_run_id: UUID
    configuration_id: UUID
    request_type: RequestType = RequestType.GENERATE
    prompt: str
    context: str | None = None
    function_name: str | None = None
    function_parameters: dict[str, Any] | None = None
    request_body: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class APIResponse(BaseModel):
    """The outcome of one APIRequest."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    request_id: UUID
    response_status: ResponseStatus
    response_text: str | None = None
    function_call_response: dict[str, Any] | None = None
    usage_metadata: dict[str, int] = Field(default_factory=dict)
    finish_reason: str | None = None
    error_message: str | None = None
    response_time_ms: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.response_status == ResponseStatus.SUCCESS


class FunctionCall(BaseModel):
    """A function call requested by the model and resolved by the engine."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    request_id: UUID
    function_name: str
    function_arguments: dict[str, Any] = Field(default_factory=dict)
    function_response: dict[str, Any] | None = None
    execution_status: FunctionCallStatus = FunctionCallStatus.PENDING
    execution_time_ms: int = Field(default=0, ge=0)
    error_details: str | None = None
    used_mock_data: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class ExecutionLog(BaseModel):
    """An ordered log entry recorded while a run executes."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    execution_run_id: UUID
    configuration_id: UUID | None = None
    request_id: UUID | None = None
    log_level: LogLevel
    log_category: LogCategory
    message: str
    details: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================================
# Comparison
# ============================================================================


class ComparisonConfig(BaseModel):
    """Whether and how to compare the variations of a run."""

    enabled: bool = False
    metrics: list[str] = Field(default_factory=list)
    custom_rules: list[str] = Field(default_factory=list)


class ComparisonResult(BaseModel):
    """Scores per configuration and the best configuration of a run."""

    id: UUID = Field(default_factory=uuid4)
    execution_run_id: UUID
    comparison_type: str
    metric_name: str = Field(..., description="Primary metric deciding the best pick")
    metrics: list[str] = Field(default_factory=list)
    configuration_scores: dict[UUID, dict[str, float]] = Field(default_factory=dict)
    best_configuration_id: UUID
    best_configuration: APIConfiguration
    analysis_notes: str = ""
    created_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Results
# ============================================================================


class VariationResult(BaseModel):
    """Everything one variation produced. Assembled in memory, not persisted."""

    configuration: APIConfiguration
    request: APIRequest
    response: APIResponse
    function_calls: list[FunctionCall] = Field(default_factory=list)
    execution_time_ms: int = Field(default=0, ge=0)


class ExecutionResult(BaseModel):
    """Aggregated outcome of an execution run."""

    execution_run: ExecutionRun
    results: list[VariationResult] = Field(default_factory=list)
    comparison: ComparisonResult | None = None
    total_time_ms: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    logs: list[ExecutionLog] = Field(default_factory=list)


def count_outcomes(results: list[VariationResult]) -> tuple[int, int]:
    """Return (success_count, error_count); timeouts count as errors."""
    success = sum(1 for r in results if r.response.succeeded)
    return success, len(results) - success


# ============================================================================
# Requests
# ============================================================================


class RunCredentials(BaseModel):
    """Credentials scoped to a single execution run."""

    generation_api_key: SecretStr | None = None
    function_api_keys: dict[str, SecretStr] = Field(default_factory=dict)

    def available_keys(self) -> dict[str, str]:
        """Return non-empty function credentials as plain strings."""
        return {
            name: secret.get_secret_value()
            for name, secret in self.function_api_keys.items()
            if secret.get_secret_value()
        }


class MultiExecutionRequest(BaseModel):
    """A request to run one base prompt across several configurations."""

    execution_run_name: str = Field(..., min_length=1)
    description: str | None = None
    base_prompt: str
    context: str | None = None
    enable_function_calling: bool = False
    configurations: list[APIConfiguration] = Field(default_factory=list)
    function_tools: list[FunctionTool] = Field(default_factory=list)
    comparison_config: ComparisonConfig | None = None
    use_mock: bool = Field(
        default=False,
        description="Force every function resolution into mock mode",
    )

    @field_validator("context")
    @classmethod
    def _blank_context_is_absent(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value
