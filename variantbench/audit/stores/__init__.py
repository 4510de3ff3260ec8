"""Execution logger stores."""

from variantbench.audit.store import ExecutionLogger
from variantbench.audit.stores.inmemory import InMemoryExecutionLogger

__all__ = [
    "ExecutionLogger",
    "InMemoryExecutionLogger",
]
