"""Function calling: definitions, registry and resolution.

The FunctionResolver turns a tool call emitted by the model into a
FunctionCallResult, either from a recorded mock payload or by calling
the function's registered HTTP endpoint.
"""

from variantbench.functions.defaults import default_function_definitions
from variantbench.functions.models import (
    FunctionCallResult,
    FunctionCallStatus,
    FunctionDefinition,
    FunctionExecutionMode,
    FunctionTool,
)
from variantbench.functions.registry import FunctionRegistry, InMemoryFunctionRegistry
from variantbench.functions.resolver import FunctionResolver

__all__ = [
    # Models
    "FunctionCallResult",
    "FunctionCallStatus",
    "FunctionDefinition",
    "FunctionExecutionMode",
    "FunctionTool",
    # Registry
    "FunctionRegistry",
    "InMemoryFunctionRegistry",
    "default_function_definitions",
    # Resolution
    "FunctionResolver",
]
