"""Tests for aipipe.core.llm.retry."""

import pytest

from aipipe.core.exceptions import (
    FatalBackendError,
    GenerationCancelled,
    RetryableBackendError,
    RetryExhaustedError,
)
from aipipe.core.llm.retry import RetryExecutor, RetryPolicy, classify_error


class RateLimitError(Exception):
    pass


class AuthenticationError(Exception):
    pass


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class Flaky:
    """Callable that raises the queued errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestClassifyError:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504, 529])
    def test_retryable_status(self, status):
        assert classify_error(StatusError("boom", status)) == "retryable"

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_fatal_status(self, status):
        assert classify_error(StatusError("boom", status)) == "fatal"

    def test_own_types(self):
        assert classify_error(RetryableBackendError("x")) == "retryable"
        assert classify_error(FatalBackendError("x")) == "fatal"
        assert classify_error(GenerationCancelled("x")) == "fatal"

    def test_by_class_name(self):
        assert classify_error(RateLimitError("slow down")) == "retryable"
        assert classify_error(AuthenticationError("bad key")) == "fatal"

    def test_by_message(self):
        assert classify_error(RuntimeError("read ECONNRESET")) == "retryable"
        assert classify_error(RuntimeError("Model is overloaded")) == "retryable"

    def test_builtin_network_errors(self):
        assert classify_error(ConnectionRefusedError()) == "retryable"
        assert classify_error(TimeoutError()) == "retryable"

    def test_unknown_is_fatal(self):
        assert classify_error(ValueError("nope")) == "fatal"

    def test_is_pure(self):
        err = StatusError("boom", 503)
        assert {classify_error(err) for _ in range(5)} == {"retryable"}


class TestRetryPolicy:
    def test_attempts(self):
        assert RetryPolicy(max_retries=3).max_attempts == 4
        assert RetryPolicy(max_retries=0).max_attempts == 1

    def test_delay_doubles_and_caps(self):
        policy = RetryPolicy()
        middle = lambda: 0.5  # noqa: E731 - zero jitter
        assert policy.delay(0, middle) == 1.0
        assert policy.delay(1, middle) == 2.0
        assert policy.delay(2, middle) == 4.0
        assert policy.delay(10, middle) == 30.0

    def test_jitter_bounds(self):
        policy = RetryPolicy()
        assert policy.delay(0, lambda: 0.0) == pytest.approx(0.75)
        assert policy.delay(0, lambda: 1.0) == pytest.approx(1.25)


class TestRetryExecutor:
    @pytest.mark.smoke
    def test_succeeds_after_transient_failures(self):
        sleeps = []
        action = Flaky(StatusError("busy", 503), StatusError("busy", 503))
        executor = RetryExecutor(sleep=sleeps.append)
        assert executor.execute(action, RetryPolicy(max_retries=3)) == "ok"
        assert action.calls == 3
        assert executor.attempts == 3
        assert len(sleeps) == 2
        assert sleeps[1] > sleeps[0] * 1.1

    def test_fatal_error_makes_single_attempt(self):
        sleeps = []
        action = Flaky(AuthenticationError("bad key"))
        with pytest.raises(AuthenticationError):
            RetryExecutor(sleep=sleeps.append).execute(action, RetryPolicy(max_retries=3))
        assert action.calls == 1
        assert sleeps == []

    def test_exhaustion(self):
        action = Flaky(*[StatusError("limited", 429) for _ in range(10)])
        with pytest.raises(RetryExhaustedError) as exc:
            RetryExecutor(sleep=lambda _s: None).execute(action, RetryPolicy(max_retries=2))
        assert action.calls == 3
        assert exc.value.attempts == 3
        assert exc.value.status_code == 429

    def test_zero_retries_raises_original(self):
        action = Flaky(StatusError("limited", 429))
        with pytest.raises(StatusError):
            RetryExecutor(sleep=lambda _s: None).execute(action, RetryPolicy(max_retries=0))
        assert action.calls == 1

    def test_logs_each_retry(self, log_messages):
        action = Flaky(RateLimitError("slow down"))
        RetryExecutor(sleep=lambda _s: None).execute(action, RetryPolicy(max_retries=1))
        assert any("Retrying in" in m and "attempt 2/2" in m for m in log_messages)
