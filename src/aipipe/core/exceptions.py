"""
aipipe exception hierarchy.

All aipipe exceptions inherit from AipipeError, so the CLI can turn any
expected failure into a one-line message and a non-zero exit code while
still letting callers distinguish specific failure modes.
"""


class AipipeError(Exception):
    """Base exception class for all aipipe errors."""


class ConfigError(AipipeError):
    """Raised for malformed configuration values (bad key, out-of-range value)."""

    def __init__(self, message: str, key: str | None = None, value: object = None):
        super().__init__(message)
        self.key = key
        self.value = value


class InvalidModelFormat(AipipeError):
    """Raised when a model string cannot be parsed into provider/model-id."""


class ChainedAliasError(InvalidModelFormat):
    """Raised when an alias expands to another alias name."""


class UnknownProvider(AipipeError):
    """Raised when a model string names a provider outside the supported set."""


class MissingCredentials(AipipeError):
    """Raised when no credentials are available for the resolved provider."""


class EmptyPrompt(AipipeError):
    """Raised when an invocation carries no prompt content at all."""


class AttachmentError(AipipeError):
    """Raised when a file or image attachment cannot be read."""


class BudgetExceeded(AipipeError):
    """Raised when a request would push spend past the configured ceiling."""

    def __init__(self, spent: float, estimate: float, limit: float):
        super().__init__(
            f"Budget exceeded: ${spent:.4f} spent + ${estimate:.4f} estimated exceeds limit of ${limit:.4f}"
        )
        self.spent = spent
        self.estimate = estimate
        self.limit = limit


class BackendError(AipipeError):
    """Raised for failures reported by a text-generation backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableBackendError(BackendError):
    """Transient backend failure (rate limit, network, 5xx) worth retrying."""


class FatalBackendError(BackendError):
    """Backend failure that retrying cannot fix (credentials, bad request, unknown model)."""


class RetryExhaustedError(BackendError):
    """Raised when every allowed attempt failed with a retryable error."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(
            f"{last_error} (gave up after {attempts} attempt{'s' if attempts != 1 else ''})",
            status_code=getattr(last_error, "status_code", None),
        )
        self.last_error = last_error
        self.attempts = attempts


class GenerationCancelled(AipipeError):
    """Raised when the user interrupts a generation in progress."""


class CacheIOError(AipipeError):
    """Raised for response cache read/write failures (always absorbed by callers)."""


class SessionIOError(AipipeError):
    """Raised when a session cannot be read, written, imported, or found."""
