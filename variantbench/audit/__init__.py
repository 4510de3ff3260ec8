"""Execution history: runs, requests, responses and function calls.

The audit layer is the durable sink the executor writes to while a run is
in flight, so a crash mid-run still leaves inspectable partial history.
"""

from variantbench.audit.store import ExecutionLogger
from variantbench.audit.stores.inmemory import InMemoryExecutionLogger

__all__ = [
    "ExecutionLogger",
    "InMemoryExecutionLogger",
]
