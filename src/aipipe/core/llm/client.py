"""
LLM backend — uniform generate/stream capability powered by LiteLLM.

The orchestrator only ever talks to the ``Backend`` protocol.  Provider
specifics (litellm model prefix, which keyword carries the credential) are
looked up from the static provider registry here, and every provider
exception is converted to RetryableBackendError or FatalBackendError at
this seam.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from aipipe.core.exceptions import BackendError, FatalBackendError, RetryableBackendError
from aipipe.core.llm.config import PROVIDERS
from aipipe.core.llm.retry import classify_error
from aipipe.core.llm.types import Request, Response, StreamEnd, StreamEvent, TextDelta, Usage
from aipipe.core.llm.utils import extract_finish_reason, extract_text, extract_usage, safe_get_content


@runtime_checkable
class Backend(Protocol):
    """Opaque text-generation capability."""

    def generate(self, request: Request) -> Response:
        """Run *request* to completion."""
        ...

    def stream(self, request: Request) -> Iterator[StreamEvent]:
        """Yield TextDelta events followed by exactly one StreamEnd."""
        ...


def to_backend_error(error: Exception) -> BackendError:
    """Wrap a provider exception in our retryable/fatal hierarchy."""
    if isinstance(error, BackendError):
        return error
    status = getattr(error, "status_code", None)
    if not isinstance(status, int):
        status = None
    message = f"{type(error).__name__}: {error}"
    if classify_error(error) == "retryable":
        return RetryableBackendError(message, status_code=status)
    return FatalBackendError(message, status_code=status)


class LiteLLMBackend:
    """
    Backend that routes every provider through litellm.

    Model names are translated to litellm conventions:
      - ``openai/gpt-4o``            -> ``openai/gpt-4o``
      - ``google/gemini-2.5-flash``  -> ``gemini/gemini-2.5-flash``
      - ``togetherai/meta-llama/x``  -> ``together_ai/meta-llama/x``
    """

    def __init__(self, api_key: str | None = None, timeout: int = 180):
        self.api_key = api_key
        self.timeout = timeout

    def _build_completion_kwargs(self, request: Request) -> dict[str, Any]:
        spec = PROVIDERS[request.model.provider]
        kwargs: dict[str, Any] = {
            "model": f"{spec.litellm_prefix}/{request.model.model_id}",
            "messages": request.to_litellm_messages(),
            "timeout": self.timeout,
            "num_retries": 0,  # RetryExecutor owns retries
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_output_tokens is not None:
            kwargs["max_tokens"] = request.max_output_tokens
        if self.api_key and spec.accepts_api_key:
            kwargs[spec.credential_kwarg] = self.api_key
        return kwargs

    def generate(self, request: Request) -> Response:
        import litellm

        kwargs = self._build_completion_kwargs(request)
        logger.debug(f"litellm.completion model={kwargs['model']}")
        try:
            response = litellm.completion(**kwargs)
        except Exception as e:
            raise to_backend_error(e) from e

        return Response(
            text=safe_get_content(response),
            usage=extract_usage(response),
            finish_reason=extract_finish_reason(response),
        )

    def stream(self, request: Request) -> Iterator[StreamEvent]:
        import litellm

        kwargs = self._build_completion_kwargs(request)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}
        logger.debug(f"litellm.completion(stream) model={kwargs['model']}")
        try:
            stream = litellm.completion(**kwargs)
        except Exception as e:
            raise to_backend_error(e) from e
        return self._consume_stream(stream)

    @staticmethod
    def _consume_stream(stream: Any) -> Iterator[StreamEvent]:
        """Translate litellm chunks into TextDelta events and a final StreamEnd."""
        usage = None
        finish_reason = "stop"
        try:
            for chunk in stream:
                chunk_usage = extract_usage(chunk)
                if chunk_usage.total_tokens:
                    usage = chunk_usage

                choices = getattr(chunk, "choices", None)
                if not choices:
                    continue
                choice = choices[0]
                if getattr(choice, "finish_reason", None):
                    finish_reason = choice.finish_reason

                delta = getattr(choice, "delta", None)
                text = extract_text(getattr(delta, "content", None)) if delta is not None else ""
                if text:
                    yield TextDelta(text)
        except BackendError:
            raise
        except Exception as e:
            raise to_backend_error(e) from e
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()

        yield StreamEnd(usage=usage or Usage(), finish_reason=finish_reason)
