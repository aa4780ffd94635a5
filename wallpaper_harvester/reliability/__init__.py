"""
Reliability Module — Retry with backoff and run cancellation.
"""

from .retry import (
    OperationCancelled,
    RetryContext,
    RetryPolicy,
    raise_if_cancelled,
)

__all__ = [
    "RetryPolicy",
    "RetryContext",
    "OperationCancelled",
    "raise_if_cancelled",
]
