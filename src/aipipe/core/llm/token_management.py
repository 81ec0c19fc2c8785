"""Token counting heuristics (no tokenizer dependency)."""

from __future__ import annotations

from aipipe.core.llm.types import Request

# Per-message overhead for role markers and separators
MESSAGE_OVERHEAD_TOKENS = 4


def estimate_token_count(text: str) -> int:
    """
    Estimate token count using a simple heuristic.

    Uses the formula: roughly 1 token = 4 characters or 0.75 words.
    Returns the more conservative (higher) estimate.

    Args:
        text: The text to estimate tokens for

    Returns:
        Estimated token count
    """
    if not text:
        return 0

    words = len(text.split())
    chars = len(text)

    word_estimate = int(words / 0.75)
    char_estimate = int(chars / 4)

    return max(word_estimate, char_estimate)


def estimate_request_tokens(request: Request) -> int:
    """Estimated input tokens for a whole request (system prompt plus every message)."""
    total = 0
    if request.system_prompt:
        total += estimate_token_count(request.system_prompt) + MESSAGE_OVERHEAD_TOKENS
    for message in request.messages:
        total += estimate_token_count(message.content) + MESSAGE_OVERHEAD_TOKENS
    return total
