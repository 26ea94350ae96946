"""When to retry a failed tracking-server request, and the loop that does it.

Only `TracingException`s whose code is in the policy's retryable set are
retried; anything else propagates from the first attempt.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Annotated, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracekit.foundation.errors import RETRYABLE_CODES, ErrorCode, TracingException

from .backoff import Backoff, ExponentialBackoff

if TYPE_CHECKING:
    from tracekit.foundation.config import RetrySettings

logger = logging.getLogger("tracekit.retry")

T = TypeVar("T")

RetryCallback = Callable[[int, ErrorCode, float], None]


class RetryPolicy(BaseModel):
    """How many times to retry, how long to wait, and on which error codes.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        backoff: Delay schedule
        retryable_codes: Codes worth another attempt; strings are accepted
        on_retry: Called with (attempt, code, delay) before each wait
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=10)] = 3
    backoff: Backoff = Field(default_factory=ExponentialBackoff, repr=False)
    retryable_codes: frozenset[ErrorCode] = RETRYABLE_CODES
    on_retry: RetryCallback | None = Field(default=None, exclude=True, repr=False)

    @field_validator("retryable_codes", mode="before")
    @classmethod
    def _as_codes(cls, v: object) -> frozenset[ErrorCode]:
        return frozenset(ErrorCode(c) for c in v)  # type: ignore[attr-defined]

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(max_retries=settings.max_retries, backoff=ExponentialBackoff.from_settings(settings))

    def should_retry(self, code: ErrorCode, attempt: int) -> bool:
        return attempt < self.max_retries and code in self.retryable_codes

    def get_delay(self, attempt: int) -> float:
        return self.backoff.delay(attempt)


NO_RETRY = RetryPolicy(max_retries=0, retryable_codes=frozenset())


def execute_with_retry_sync(operation: Callable[[], T], policy: RetryPolicy, name: str) -> T:
    """Call `operation` until it succeeds or `policy` gives up, re-raising the last failure.

    Example:
        >>> execute_with_retry_sync(lambda: client.get_trace(tid), RetryPolicy(max_retries=2), "get_trace")
    """
    attempt = 0
    while True:
        try:
            return operation()
        except TracingException as e:
            if not policy.should_retry(e.code, attempt):
                raise
            wait = policy.get_delay(attempt)
            logger.info("%s failed with %s, retry %d/%d in %.2fs", name, e.code, attempt + 1, policy.max_retries, wait)
            if policy.on_retry is not None:
                policy.on_retry(attempt, e.code, wait)
            time.sleep(wait)
            attempt += 1
