"""Multi-variation execution engine.

Runs one base prompt across several named configurations ("variations"),
resolves the function calls the model asks for, records every request,
response and function call through the execution logger, and optionally
ranks the variations.
"""

from variantbench.execution.comparator import ResultComparator
from variantbench.execution.executor import MultiVariationExecutor
from variantbench.execution.models import (
    APIConfiguration,
    APIRequest,
    APIResponse,
    ComparisonConfig,
    ComparisonResult,
    ExecutionLog,
    ExecutionResult,
    ExecutionRun,
    FunctionCall,
    LogCategory,
    LogLevel,
    MultiExecutionRequest,
    RequestType,
    ResponseStatus,
    RunCredentials,
    RunStatus,
    VariationResult,
)
from variantbench.execution.runner import VariationRunner
from variantbench.execution.service import (
    ExecutionHandle,
    ExecutionService,
    ExecutionStatus,
)

__all__ = [
    # Records
    "ExecutionRun",
    "APIConfiguration",
    "APIRequest",
    "APIResponse",
    "FunctionCall",
    "ExecutionLog",
    # Enums
    "RunStatus",
    "RequestType",
    "ResponseStatus",
    "LogLevel",
    "LogCategory",
    # Results
    "VariationResult",
    "ExecutionResult",
    "ComparisonConfig",
    "ComparisonResult",
    # Requests
    "MultiExecutionRequest",
    "RunCredentials",
    # Engine
    "VariationRunner",
    "MultiVariationExecutor",
    "ResultComparator",
    # Service
    "ExecutionService",
    "ExecutionHandle",
    "ExecutionStatus",
]
