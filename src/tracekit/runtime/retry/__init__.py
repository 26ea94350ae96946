"""Retry policies with pluggable backoff strategies.

Example:
    >>> from tracekit.runtime.retry import RetryPolicy, ExponentialBackoff, execute_with_retry_sync
    >>> policy = RetryPolicy(max_retries=3, backoff=ExponentialBackoff(base=0.5))
    >>> trace = execute_with_retry_sync(lambda: fetch_trace(trace_id), policy, "get_trace")
"""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff
from .policy import NO_RETRY, RetryPolicy, execute_with_retry_sync

__all__ = [
    "Backoff",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NO_RETRY",
    "RetryPolicy",
    "execute_with_retry_sync",
]
