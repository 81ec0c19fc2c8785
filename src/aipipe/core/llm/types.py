"""Request, response, and stream event types shared by the backend and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ModelReference:
    """A fully resolved backend target."""

    provider: str
    model_id: str

    @property
    def full_id(self) -> str:
        return f"{self.provider}/{self.model_id}"

    def __str__(self) -> str:
        return self.full_id


@dataclass(frozen=True)
class ImagePart:
    """An image attachment already encoded as a data URL."""

    path: str
    data_url: str


@dataclass(frozen=True)
class Message:
    """One chat message.  ``images`` only ever appears on user messages."""

    role: str
    content: str
    images: tuple[ImagePart, ...] = ()

    def to_litellm(self) -> dict[str, Any]:
        """Render in the OpenAI-style message shape litellm expects."""
        if not self.images:
            return {"role": self.role, "content": self.content}
        parts: list[dict[str, Any]] = [{"type": "text", "text": self.content}]
        for image in self.images:
            parts.append({"type": "image_url", "image_url": {"url": image.data_url}})
        return {"role": self.role, "content": parts}


@dataclass(frozen=True)
class Request:
    """A fully assembled generation request.  Immutable once built."""

    model: ModelReference
    messages: tuple[Message, ...]
    system_prompt: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    stream: bool = False

    def to_litellm_messages(self) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(m.to_litellm() for m in self.messages)
        return messages


@dataclass(frozen=True)
class Usage:
    """Token usage reported by a backend."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            input_tokens=int(data.get("input_tokens", 0) or 0),
            output_tokens=int(data.get("output_tokens", 0) or 0),
        )


@dataclass(frozen=True)
class Response:
    """A complete (buffered) backend response."""

    text: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str = "stop"

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "usage": self.usage.to_dict(), "finish_reason": self.finish_reason}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Response:
        return cls(
            text=str(data["text"]),
            usage=Usage.from_dict(data.get("usage") or {}),
            finish_reason=str(data.get("finish_reason") or "stop"),
        )


@dataclass(frozen=True)
class TextDelta:
    """A partial text increment from a streaming call."""

    text: str


@dataclass(frozen=True)
class StreamEnd:
    """Terminal stream event carrying usage and finish reason."""

    usage: Usage = field(default_factory=Usage)
    finish_reason: str = "stop"


StreamEvent = TextDelta | StreamEnd
