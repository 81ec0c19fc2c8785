"""
Model-facing building blocks: provider registry, model resolution, backend,
retry, response cache, budget, pricing, and prompt assembly.

The backend is powered by LiteLLM, imported lazily on first call.
"""

from .caching import CacheEntry, ResponseCache, fingerprint
from .client import Backend, LiteLLMBackend
from .config import DEFAULT_MODEL, DEFAULT_PROVIDER, PROVIDERS, SUPPORTED_PROVIDERS, ProviderSpec, get_provider
from .model_resolver import resolve_model
from .pricing import calculate_cost, format_cost, get_pricing, price
from .retry import RetryExecutor, RetryPolicy, classify_error
from .token_budget import BudgetGuard, BudgetState
from .token_management import estimate_token_count
from .types import ImagePart, Message, ModelReference, Request, Response, StreamEnd, TextDelta, Usage

__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_PROVIDER",
    "PROVIDERS",
    "SUPPORTED_PROVIDERS",
    "Backend",
    "BudgetGuard",
    "BudgetState",
    "CacheEntry",
    "ImagePart",
    "LiteLLMBackend",
    "Message",
    "ModelReference",
    "ProviderSpec",
    "Request",
    "Response",
    "ResponseCache",
    "RetryExecutor",
    "RetryPolicy",
    "StreamEnd",
    "TextDelta",
    "Usage",
    "calculate_cost",
    "classify_error",
    "estimate_token_count",
    "fingerprint",
    "format_cost",
    "get_pricing",
    "get_provider",
    "price",
    "resolve_model",
]
