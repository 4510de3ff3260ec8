"""Multi-variation execution configuration."""

from pydantic import BaseModel, Field


class ExecutionConfig(BaseModel):
    """Timeouts, fan-out and persistence retry settings for execution runs."""

    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every generation call, identical across variations",
    )
    function_timeout_ms: int = Field(
        default=10000,
        gt=0,
        description="Timeout for a single function resolution",
    )
    max_parallel_variations: int = Field(
        default=8,
        gt=0,
        description="Maximum number of variations generating concurrently",
    )
    log_write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per execution logger write before giving up",
    )
    log_retry_backoff_ms: int = Field(
        default=50,
        ge=0,
        description="Delay between execution logger write attempts",
    )
    follow_up_after_function_calls: bool = Field(
        default=True,
        description="Re-issue a generation request carrying resolved function results",
    )
    retained_results: int = Field(
        default=100,
        ge=1,
        description="Finished results kept in memory for status queries; oldest evicted first",
    )
