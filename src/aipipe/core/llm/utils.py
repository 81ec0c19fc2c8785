"""Utility functions for LLM response handling."""

from typing import Any

from loguru import logger

from aipipe.core.llm.types import Usage


def safe_get_content(response: Any, default: str = "") -> str:
    """Text of the first choice, or ``default`` when the response has none."""
    choices = getattr(response, "choices", None)
    if not choices:
        logger.warning("Backend response carried no choices")
        return default
    message = getattr(choices[0], "message", None)
    if message is None:
        logger.warning("Backend response choice carried no message")
        return default
    return extract_text(getattr(message, "content", None)) or default


def extract_text(content: Any) -> str:
    """Flatten message content (a string or a list of content blocks) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        text_parts = []
        for part in content:
            if isinstance(part, str):
                text_parts.append(part)
            elif isinstance(part, dict):
                if part.get("type", "text") == "text" and "text" in part:
                    text_parts.append(part["text"])
            elif getattr(part, "type", "text") == "text" and hasattr(part, "text"):
                text_parts.append(part.text)
        return "".join(text_parts)
    if hasattr(content, "text"):
        return content.text
    return str(content)


def extract_finish_reason(response: Any, default: str = "stop") -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        return default
    return getattr(choices[0], "finish_reason", None) or default


def extract_usage(response: Any) -> Usage:
    """Read prompt/completion token counts from a litellm response or chunk."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return Usage()
    return Usage(
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )
