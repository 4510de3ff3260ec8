"""Function calling models.

Contains the tool declarations sent to providers, the registry's function
definitions and the outcome of resolving a single function call.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


class FunctionExecutionMode(str, Enum):
    """How a function call is resolved."""

    MOCK = "mock"  # Return the registered mock payload
    REAL = "real"  # Call the registered endpoint
    AUTO = "auto"  # Real when credentials are available, mock otherwise


class FunctionCallStatus(str, Enum):
    """Execution status of a function call."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class FunctionTool(BaseModel):
    """A function declaration offered to the model."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Function name used by the model")
    description: str = Field(default="", description="What the function does")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="JSON schema of the arguments"
    )


class FunctionDefinition(BaseModel):
    """A registered function that can resolve tool calls."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique function name")
    display_name: str | None = Field(default=None, description="Human-readable name")
    description: str = Field(default="", description="Function description")
    parameters_schema: dict[str, Any] = Field(
        default_factory=dict, description="JSON schema for parameters"
    )
    endpoint_url: str | None = Field(default=None, description="Real API endpoint")
    http_method: str = Field(default="POST", description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="HTTP headers")
    required_api_keys: list[str] = Field(
        default_factory=list, description="Credential names needed for a real call"
    )
    mock_response: dict[str, Any] | None = Field(
        default=None, description="Recorded response returned in mock mode"
    )
    execution_mode: FunctionExecutionMode = Field(
        default=FunctionExecutionMode.AUTO, description="Declared resolution mode"
    )
    is_active: bool = Field(default=True)

    def to_tool(self) -> FunctionTool:
        """Return the declaration sent to the model for this function."""
        return FunctionTool(
            name=self.name,
            description=self.description,
            parameters=self.parameters_schema,
        )


class FunctionCallResult(BaseModel):
    """Outcome of resolving one function call. Failures are encoded, never raised."""

    model_config = ConfigDict(frozen=True)

    function_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    response: dict[str, Any] | None = None
    execution_status: FunctionCallStatus
    execution_time_ms: int = Field(default=0, ge=0)
    error_details: str | None = None
    used_mock_data: bool = False
    timed_out: bool = False
    resolved_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.execution_status == FunctionCallStatus.SUCCESS
