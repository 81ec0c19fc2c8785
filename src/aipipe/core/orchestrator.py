"""
Orchestrator — one invocation (or one chat turn) from raw inputs to output.

Steps, each of which may short-circuit the rest:
    1. Resolve configuration and model.
    2. Assemble the prompt (system prompt, attachments, stdin, arguments).
    3. Prepend prior session history.
    4. Consult the response cache (a hit skips straight to step 7).
    5. Pre-flight budget check.
    6. Dispatch through the retry executor, buffered or streaming.
    7. Price the call, update the budget, append to the session, store in
       the cache, and hand the result back for output.

A failure at any step leaves the session and cache untouched.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from aipipe.core.config import ConfigContext, ConfigResolver
from aipipe.core.config_schema import Configuration
from aipipe.core.exceptions import BackendError, ConfigError, GenerationCancelled
from aipipe.core.llm.caching import ResponseCache, fingerprint
from aipipe.core.llm.client import Backend, LiteLLMBackend
from aipipe.core.llm.model_resolver import resolve_model
from aipipe.core.llm.pricing import CostInfo, calculate_cost
from aipipe.core.llm.prompts import PromptInput, assemble_user_content, read_images
from aipipe.core.llm.retry import RetryExecutor, RetryPolicy
from aipipe.core.llm.templates import load_role, load_template
from aipipe.core.llm.token_budget import BudgetGuard, BudgetState
from aipipe.core.llm.token_management import estimate_token_count
from aipipe.core.llm.types import Message, ModelReference, Request, Response, StreamEnd, StreamEvent, TextDelta, Usage
from aipipe.core.secrets import ApiKeyFile, EnvProvider, SecretsManager
from aipipe.core.session import SessionStore, Turn

BackendFactory = Callable[[str | None], Backend]


def _default_backend(api_key: str | None) -> Backend:
    return LiteLLMBackend(api_key=api_key)


@dataclass(frozen=True)
class Invocation:
    """Raw inputs for one turn.

    ``flags`` holds explicit CLI settings keyed by setting name (``model``,
    ``temperature``, ``budget``, ``cache`` ...); None means "not given".
    """

    args: tuple[str, ...] = ()
    stdin: str | None = None
    files: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    role: str | None = None
    template: str | None = None
    session: str | None = None
    flags: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PreparedTurn:
    """Everything decided before any cache or network access."""

    config: Configuration
    request: Request
    fingerprint: str
    session: str | None
    prior_cost: float = 0.0


@dataclass(frozen=True)
class TurnResult:
    text: str
    usage: Usage
    finish_reason: str
    model: ModelReference
    cost: CostInfo
    budget: BudgetState
    cached: bool = False
    streamed: bool = False
    user_message: Message | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "model": self.model.full_id,
            "usage": self.usage.to_dict(),
            "finish_reason": self.finish_reason,
            "cached": self.cached,
            "cost": round(self.cost.total_cost, 6),
        }


class Orchestrator:
    """Coordinates configuration, caching, budget, retries, and sessions.

    Args:
        context: Where configuration, sessions, and cache live.
        env: Environment mapping (API keys, availability checks).
        backend_factory: Builds a Backend from the resolved API key.
        sleep: Backoff sleep used by the retry executor.
    """

    def __init__(
        self,
        context: ConfigContext,
        env: Mapping[str, str],
        backend_factory: BackendFactory = _default_backend,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.env = env
        self.resolver = ConfigResolver(context, env=env)
        self.secrets = SecretsManager([EnvProvider(env), ApiKeyFile(context.api_keys_path)])
        self.sessions = SessionStore(context.history_dir)
        self.backend_factory = backend_factory
        self.executor = RetryExecutor(sleep=sleep)

    # -- resolution ----------------------------------------------------------

    def resolve(self, flags: Mapping[str, Any] | None = None) -> tuple[Configuration, ModelReference]:
        """Resolve the effective configuration, including the model's provider override block."""
        base = self.resolver.resolve(flags)
        model = resolve_model(base.model, base.aliases)
        return self.resolver.resolve(flags, provider=model.provider), model

    def check_availability(self, provider: str) -> bool:
        """Whether credentials for *provider* exist (environment first, then the key file)."""
        return self.secrets.is_available(provider)

    def system_prompt(self, config: Configuration, invocation: Invocation) -> str | None:
        """An explicit --system flag beats a role, which beats configured system prompts."""
        explicit = invocation.flags.get("system")
        if explicit:
            return explicit
        if invocation.role:
            role = load_role(self.context.roles_dir, invocation.role)
            if role is None:
                raise ConfigError(f"Role {invocation.role!r} not found in {self.context.roles_dir}", key="role")
            return role
        return config.system

    def load_template(self, name: str) -> str:
        template = load_template(self.context.templates_dir, name)
        if template is None:
            raise ConfigError(f"Template {name!r} not found in {self.context.templates_dir}", key="template")
        return template

    # -- steps 1-3 -----------------------------------------------------------

    def prepare(self, invocation: Invocation, history: Sequence[Message] | None = None) -> PreparedTurn:
        """Build the immutable Request for *invocation*.

        Args:
            history: In-memory prior messages (chat).  When None and a
                session name is given, history is loaded from the session store.
        """
        config, model = self.resolve(invocation.flags)
        system = self.system_prompt(config, invocation)

        template = self.load_template(invocation.template) if invocation.template else None
        content = assemble_user_content(
            PromptInput(
                args=invocation.args,
                stdin=invocation.stdin,
                files=invocation.files,
                images=invocation.images,
                template=template,
            )
        )
        user_message = Message(role="user", content=content, images=read_images(invocation.images))

        prior_cost = 0.0
        if history is None:
            history = ()
            if invocation.session:
                session = self.sessions.load(invocation.session)
                history = session.history()
                prior_cost = session.cumulative_cost

        request = Request(
            model=model,
            messages=(*history, user_message),
            system_prompt=system,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            stream=config.stream and not config.json_output,
        )
        return PreparedTurn(
            config=config,
            request=request,
            fingerprint=fingerprint(request),
            session=invocation.session,
            prior_cost=prior_cost,
        )

    def initial_budget(self, prepared: PreparedTurn) -> BudgetState:
        """Fresh per-request state, or cumulative state seeded from the session's spend."""
        config = prepared.config
        spent = prepared.prior_cost if config.budget_mode == "cumulative" else 0.0
        return BudgetState(limit=config.budget, spent=spent, mode=config.budget_mode)

    # -- steps 4-7 -----------------------------------------------------------

    def execute(
        self,
        prepared: PreparedTurn,
        budget: BudgetState | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> TurnResult:
        """Run a prepared turn.

        Raises:
            BudgetExceeded: pre-flight estimate over the limit (no network call made).
            MissingCredentials: no API key for the provider.
            BackendError: a fatal backend error or exhausted retries.
            GenerationCancelled: the user interrupted the call.
        """
        config = prepared.config
        request = prepared.request
        budget = budget if budget is not None else self.initial_budget(prepared)
        cache = ResponseCache(self.context.cache_dir, ttl=config.cache_ttl) if config.cache else None

        entry = cache.lookup(prepared.fingerprint) if cache else None
        if entry is not None:
            response = entry.response
            if on_text and request.stream:
                on_text(response.text)
            cost = calculate_cost(request.model.provider, request.model.model_id, 0, 0)
            cached, streamed = True, request.stream
        else:
            BudgetGuard.pre_check(budget, BudgetGuard.estimate(request))
            # Availability covers multi-variable providers; the key comes from the merged config
            self.secrets.require(request.model.provider)
            api_key = config.api_keys.get(request.model.provider)
            backend = self.backend_factory(api_key)
            policy = RetryPolicy(max_retries=config.retries)
            if request.stream:
                response = self._dispatch_stream(backend, request, policy, on_text)
            else:
                response = self._dispatch(backend, request, policy)
            usage = response.usage
            cost = calculate_cost(request.model.provider, request.model.model_id, usage.input_tokens, usage.output_tokens)
            cached, streamed = False, request.stream

        budget = BudgetGuard.post_update(budget, cost.total_cost)
        user_message = request.messages[-1]

        if prepared.session:
            self.sessions.append(
                prepared.session,
                [Turn(role="user", content=user_message.content), Turn(role="assistant", content=response.text)],
                cost=cost.total_cost,
            )
        if cache is not None and not cached:
            cache.store(prepared.fingerprint, response)

        return TurnResult(
            text=response.text,
            usage=response.usage,
            finish_reason=response.finish_reason,
            model=request.model,
            cost=cost,
            budget=budget,
            cached=cached,
            streamed=streamed,
            user_message=user_message,
        )

    def run(self, invocation: Invocation, on_text: Callable[[str], None] | None = None) -> TurnResult:
        """Prepare and execute one invocation."""
        prepared = self.prepare(invocation)
        return self.execute(prepared, on_text=on_text)

    # -- dispatch ------------------------------------------------------------

    def _dispatch(self, backend: Backend, request: Request, policy: RetryPolicy) -> Response:
        try:
            return self.executor.execute(lambda: backend.generate(request), policy)
        except KeyboardInterrupt:
            raise GenerationCancelled("Generation cancelled") from None

    def _dispatch_stream(
        self,
        backend: Backend,
        request: Request,
        policy: RetryPolicy,
        on_text: Callable[[str], None] | None,
    ) -> Response:
        """Stream deltas to *on_text* as they arrive.

        Retries cover opening the stream and receiving its first event; once
        text has been forwarded, a failure is terminal and the printed text
        stays on the terminal.
        """

        def _open() -> tuple[StreamEvent | None, Iterator[StreamEvent]]:
            events = iter(backend.stream(request))
            return next(events, None), events

        events: Iterator[StreamEvent] | None = None
        parts: list[str] = []
        end: StreamEnd | None = None
        try:
            first, events = self.executor.execute(_open, policy)
            pending = [first] if first is not None else []
            for event in _chain(pending, events):
                if isinstance(event, TextDelta):
                    parts.append(event.text)
                    if on_text:
                        on_text(event.text)
                elif isinstance(event, StreamEnd):
                    end = event
                    break
        except KeyboardInterrupt:
            _close(events)
            raise GenerationCancelled("Generation cancelled") from None
        except BackendError:
            _close(events)
            raise

        text = "".join(parts)
        if end is None:
            logger.warning("Stream ended without usage information; estimating output tokens")
            end = StreamEnd(usage=Usage(output_tokens=estimate_token_count(text)))
        return Response(text=text, usage=end.usage, finish_reason=end.finish_reason)


def _chain(first: list[StreamEvent], rest: Iterator[StreamEvent]) -> Iterator[StreamEvent]:
    yield from first
    yield from rest


def _close(events: Iterator[StreamEvent] | None) -> None:
    close = getattr(events, "close", None)
    if callable(close):
        close()
