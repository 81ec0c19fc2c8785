"""
Bounded retry with exponential backoff.

Classification is a pure function of error metadata (our own error type,
an HTTP-like status code, or the exception name/message), never of how
many attempts have been made.  Only retryable errors are retried; a fatal
error surfaces on the first attempt.
"""

from __future__ import annotations

import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal, TypeVar

from loguru import logger

from aipipe.core.exceptions import (
    FatalBackendError,
    GenerationCancelled,
    RetryableBackendError,
    RetryExhaustedError,
)

T = TypeVar("T")

Classification = Literal["retryable", "fatal"]

DEFAULT_MAX_RETRIES = 3
INITIAL_DELAY = 1.0  # seconds
MAX_DELAY = 30.0  # seconds
BACKOFF_MULTIPLIER = 2.0
JITTER = 0.25

_RETRYABLE_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504, 529})
_FATAL_STATUS = frozenset({400, 401, 402, 403, 404, 422})

_RETRYABLE_NAMES = frozenset(
    {
        "RateLimitError",
        "APIConnectionError",
        "ServiceUnavailableError",
        "InternalServerError",
        "Timeout",
        "APITimeoutError",
    }
)
_FATAL_NAMES = frozenset(
    {
        "AuthenticationError",
        "PermissionDeniedError",
        "BadRequestError",
        "NotFoundError",
        "ContextWindowExceededError",
        "ContentPolicyViolationError",
        "UnsupportedParamsError",
    }
)

_RETRYABLE_PATTERN = re.compile(
    r"rate.?limit|too many requests|overloaded|temporarily unavailable|"
    r"ECONNRESET|ETIMEDOUT|ECONNREFUSED|ENOTFOUND|EAI_AGAIN|timed? ?out|connection (reset|refused|error)",
    re.IGNORECASE,
)


def classify_error(error: BaseException) -> Classification:
    """Classify *error* as ``"retryable"`` or ``"fatal"``.

    Checked in order: our own backend error types, a ``status_code`` /
    ``status`` attribute, the exception class name, the message text, and
    finally the builtin connection/timeout exception types.  Anything
    unrecognized is fatal.
    """
    if isinstance(error, RetryableBackendError):
        return "retryable"
    if isinstance(error, (FatalBackendError, GenerationCancelled)):
        return "fatal"

    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if isinstance(status, int):
        if status in _RETRYABLE_STATUS:
            return "retryable"
        if status in _FATAL_STATUS or 400 <= status < 500:
            return "fatal"

    name = type(error).__name__
    if name in _FATAL_NAMES:
        return "fatal"
    if name in _RETRYABLE_NAMES:
        return "retryable"

    if _RETRYABLE_PATTERN.search(str(error)):
        return "retryable"
    if isinstance(error, (ConnectionError, TimeoutError)):
        return "retryable"
    return "fatal"


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how to decide whether to.

    ``max_retries`` counts retries after the first attempt: 0 means the
    first failure is terminal, 3 means up to 4 attempts in total.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    classify: Callable[[BaseException], Classification] = classify_error
    initial_delay: float = INITIAL_DELAY
    max_delay: float = MAX_DELAY
    multiplier: float = BACKOFF_MULTIPLIER

    @property
    def max_attempts(self) -> int:
        return max(self.max_retries, 0) + 1

    def delay(self, retry_index: int, rand: Callable[[], float] = random.random) -> float:
        """Backoff before retry *retry_index* (0 = first retry), with +/-25% jitter."""
        base = min(self.initial_delay * self.multiplier**retry_index, self.max_delay)
        return base * (1 - JITTER + rand() * 2 * JITTER)


@dataclass
class RetryExecutor:
    """Runs an action under a RetryPolicy.

    ``sleep`` is injectable so tests don't wait on real backoff.
    """

    sleep: Callable[[float], None] = time.sleep
    attempts: int = field(default=0, init=False)

    def execute(self, action: Callable[[], T], policy: RetryPolicy) -> T:
        """Run *action*, retrying retryable failures up to ``policy.max_retries`` times.

        Raises:
            The original error for fatal failures or when retries are disabled,
            otherwise RetryExhaustedError wrapping the last error.
        """
        self.attempts = 0
        while True:
            self.attempts += 1
            try:
                return action()
            except Exception as e:
                if policy.classify(e) != "retryable":
                    raise
                if self.attempts >= policy.max_attempts:
                    if policy.max_retries <= 0:
                        raise
                    raise RetryExhaustedError(e, self.attempts) from e
                wait = policy.delay(self.attempts - 1)
                logger.warning(
                    f"{type(e).__name__}: {e}. Retrying in {wait:.1f}s "
                    f"(attempt {self.attempts + 1}/{policy.max_attempts})"
                )
                self.sleep(wait)
