"""Helpers shared with the external generation services."""

from .retry import RetryPolicy, call_with_retry, is_rate_limit_error

__all__ = [
    "RetryPolicy",
    "call_with_retry",
    "is_rate_limit_error",
]
