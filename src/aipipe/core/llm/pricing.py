"""
Static per-provider price table and cost arithmetic.

Prices are USD per 1M tokens.  Lookup is exact model id, then the longest
matching prefix (so ``gpt-4o-2024-11-20`` prices as ``gpt-4o``), then the
provider's ``default`` row.  Providers without a table cost nothing.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelPricing:
    input_price: float  # per 1M tokens
    output_price: float  # per 1M tokens


@dataclass(frozen=True)
class CostInfo:
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost


_FREE = ModelPricing(0.0, 0.0)

PRICING: dict[str, dict[str, ModelPricing]] = {
    "openai": {
        "gpt-4o": ModelPricing(2.5, 10.0),
        "gpt-4o-mini": ModelPricing(0.15, 0.6),
        "gpt-4.5-preview": ModelPricing(10.0, 30.0),
        "o1": ModelPricing(15.0, 60.0),
        "o1-mini": ModelPricing(1.1, 4.4),
        "o3-mini": ModelPricing(1.1, 4.4),
        "default": ModelPricing(2.5, 10.0),
    },
    "anthropic": {
        "claude-sonnet-4": ModelPricing(3.0, 15.0),
        "claude-opus-4": ModelPricing(15.0, 75.0),
        "claude-haiku-3": ModelPricing(0.25, 1.25),
        "default": ModelPricing(3.0, 15.0),
    },
    "google": {
        "gemini-2.5-pro": ModelPricing(1.25, 10.0),
        "gemini-2.5-flash": ModelPricing(0.075, 0.3),
        "gemini-1.5-pro": ModelPricing(1.25, 5.0),
        "gemini-1.5-flash": ModelPricing(0.075, 0.3),
        "gemini-pro": ModelPricing(0.5, 1.5),
        "default": ModelPricing(0.5, 1.5),
    },
    "perplexity": {
        "sonar": ModelPricing(1.0, 5.0),
        "sonar-pro": ModelPricing(5.0, 20.0),
        "sonar-deep-research": ModelPricing(30.0, 40.0),
        "default": ModelPricing(1.0, 5.0),
    },
    "xai": {
        "grok-3": ModelPricing(3.0, 15.0),
        "grok-3-mini": ModelPricing(0.5, 0.5),
        "grok-2": ModelPricing(2.0, 10.0),
        "default": ModelPricing(3.0, 15.0),
    },
    "mistral": {
        "mistral-large-latest": ModelPricing(2.0, 6.0),
        "mistral-medium": ModelPricing(0.5, 1.5),
        "mistral-small": ModelPricing(0.1, 0.5),
        "open-mistral-7b": _FREE,
        "default": ModelPricing(2.0, 6.0),
    },
    "groq": {
        "llama-3.3-70b-versatile": ModelPricing(0.59, 0.79),
        "llama-3.1-8b-instant": ModelPricing(0.04, 0.04),
        "mixtral-8x7b-32768": ModelPricing(0.24, 0.24),
        "default": ModelPricing(0.59, 0.79),
    },
    "deepseek": {
        "deepseek-chat": ModelPricing(0.14, 0.28),
        "deepseek-reasoner": ModelPricing(0.55, 2.19),
        "default": ModelPricing(0.14, 0.28),
    },
    "cohere": {
        "command-r-plus": ModelPricing(3.0, 15.0),
        "command-r": ModelPricing(0.5, 1.5),
        "default": ModelPricing(0.5, 1.5),
    },
    # Routed to arbitrary upstream providers; price unknown
    "openrouter": {"default": _FREE},
    "azure": {"default": ModelPricing(2.5, 10.0)},
    "togetherai": {
        "meta-llama/Llama-3.3-70b-Instruct": ModelPricing(0.9, 0.9),
        "meta-llama/Llama-3.1-405b-instruct": ModelPricing(5.0, 5.0),
        "default": ModelPricing(0.9, 0.9),
    },
    "bedrock": {"default": ModelPricing(2.5, 10.0)},
    "vertex": {"default": ModelPricing(2.5, 10.0)},
    # Local inference
    "ollama": {"default": _FREE},
    "huggingface": {"default": _FREE},
    "deepinfra": {"default": ModelPricing(0.3, 0.6)},
}


def get_pricing(provider: str, model_id: str) -> ModelPricing:
    table = PRICING.get(provider)
    if not table:
        return _FREE
    if model_id in table:
        return table[model_id]

    lowered = model_id.lower()
    prefixes = sorted((k for k in table if k != "default"), key=len, reverse=True)
    for key in prefixes:
        if lowered.startswith(key.lower()):
            return table[key]
    return table.get("default", _FREE)


def calculate_cost(provider: str, model_id: str, input_tokens: int, output_tokens: int) -> CostInfo:
    pricing = get_pricing(provider, model_id)
    return CostInfo(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=input_tokens / 1_000_000 * pricing.input_price,
        output_cost=output_tokens / 1_000_000 * pricing.output_price,
    )


def price(provider: str, model_id: str, input_tokens: int, output_tokens: int) -> float:
    """Dollar cost of a call."""
    return calculate_cost(provider, model_id, input_tokens, output_tokens).total_cost


def format_cost(cost: CostInfo) -> str:
    """One-line summary, e.g. ``$0.0025 (1,000 in) + $0.0050 (500 out) = $0.0075``."""
    parts = []
    if cost.input_tokens > 0:
        parts.append(f"${cost.input_cost:.4f} ({cost.input_tokens:,} in)")
    if cost.output_tokens > 0:
        parts.append(f"${cost.output_cost:.4f} ({cost.output_tokens:,} out)")
    if not parts:
        return "$0.0000 (0 tokens)"
    return f"{' + '.join(parts)} = ${cost.total_cost:.4f}"
