"""Prometheus metrics for VariantBench.

Provides standard metrics for execution runs, variation outcomes,
function resolution and token usage.
"""

from prometheus_client import Counter, Histogram

# Execution metrics
EXECUTIONS = Counter(
    "variantbench_executions_total",
    "Total number of execution runs by terminal status",
    labelnames=["status"],
)

EXECUTION_LATENCY = Histogram(
    "variantbench_execution_latency_seconds",
    "Wall-clock duration of an execution run",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# Variation metrics
VARIATIONS = Counter(
    "variantbench_variations_total",
    "Total number of variations by response status",
    labelnames=["model", "status"],
)

VARIATION_LATENCY = Histogram(
    "variantbench_variation_latency_seconds",
    "Elapsed time of a single variation including function resolution",
    labelnames=["model"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# LLM metrics
LLM_TOKENS = Counter(
    "variantbench_llm_tokens_total",
    "Total LLM tokens used",
    labelnames=["model", "direction"],
)

# Function calling metrics
FUNCTION_CALLS = Counter(
    "variantbench_function_calls_total",
    "Total number of resolved function calls",
    labelnames=["function_name", "status", "source"],
)

FUNCTION_CALL_LATENCY = Histogram(
    "variantbench_function_call_latency_seconds",
    "Function resolution latency in seconds",
    labelnames=["function_name", "source"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Persistence metrics
LOGGER_WRITE_FAILURES = Counter(
    "variantbench_logger_write_failures_total",
    "Execution logger writes that failed after all retry attempts",
    labelnames=["operation"],
)


def record_tokens(model: str, usage: dict[str, int] | None) -> None:
    """Record prompt and completion token counts for a model."""
    if not usage:
        return
    prompt_tokens = usage.get("prompt_tokens", 0)
    completion_tokens = usage.get("completion_tokens", 0)
    if prompt_tokens:
        LLM_TOKENS.labels(model=model, direction="input").inc(prompt_tokens)
    if completion_tokens:
        LLM_TOKENS.labels(model=model, direction="output").inc(completion_tokens)
