"""relayq execution adapters."""
from relayq.execution.executor import ExecutionResult, Executor
from relayq.execution.http_executor import HttpExecutor

__all__ = [
    "ExecutionResult",
    "Executor",
    "HttpExecutor",
]
