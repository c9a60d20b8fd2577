"""
Execution Layer

Bounded retry and chunked bounded-concurrency primitives used by the
pipeline coordinator.
"""
from .cancellation import CancellationToken
from .retry import RetryExecutor, RetryPolicy, classify_error
from .batch import BatchRunner, BatchResult, ItemResult

__all__ = [
    "CancellationToken",
    "RetryExecutor",
    "RetryPolicy",
    "classify_error",
    "BatchRunner",
    "BatchResult",
    "ItemResult",
]
