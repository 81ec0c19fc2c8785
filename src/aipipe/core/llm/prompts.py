"""
Prompt assembly: attachments, images, piped input, arguments, templates.

User content is built in a fixed order: file attachments (in the order
given, each labeled with its path), then piped stdin, then positional
arguments.  A template wraps the stdin + argument text via ``{{input}}``;
a template without that placeholder is prepended instead.
"""

from __future__ import annotations

import base64
import mimetypes
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from aipipe.core.exceptions import AttachmentError, EmptyPrompt
from aipipe.core.llm.templates import apply_template, has_input_placeholder
from aipipe.core.llm.types import ImagePart

_IMAGE_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
_DEFAULT_IMAGE_MIME = "image/png"


def format_attachment(path: str, content: str) -> str:
    return f"# {path}\n```\n{content}\n```"


def read_attachments(paths: Sequence[str]) -> list[str]:
    """Read each file and wrap it in a labeled fenced block.

    Raises:
        AttachmentError: if any file is missing or unreadable.
    """
    blocks = []
    for path in paths:
        source = Path(path).expanduser()
        if not source.is_file():
            raise AttachmentError(f"File not found: {path}")
        try:
            content = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AttachmentError(f"Could not read {path}: {e}") from e
        blocks.append(format_attachment(path, content))
    return blocks


def image_mime_type(path: str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _IMAGE_MIME:
        return _IMAGE_MIME[suffix]
    guessed, _ = mimetypes.guess_type(path)
    if guessed and guessed.startswith("image/"):
        return guessed
    return _DEFAULT_IMAGE_MIME


def read_images(paths: Sequence[str]) -> tuple[ImagePart, ...]:
    """Encode each image as a base64 data URL.

    Raises:
        AttachmentError: if any image is missing or unreadable.
    """
    images = []
    for path in paths:
        source = Path(path).expanduser()
        if not source.is_file():
            raise AttachmentError(f"Image not found: {path}")
        try:
            data = source.read_bytes()
        except OSError as e:
            raise AttachmentError(f"Could not read image {path}: {e}") from e
        encoded = base64.b64encode(data).decode("ascii")
        images.append(ImagePart(path=path, data_url=f"data:{image_mime_type(path)};base64,{encoded}"))
    return tuple(images)


@dataclass(frozen=True)
class PromptInput:
    """Raw prompt material for one turn, before assembly."""

    args: tuple[str, ...] = ()
    stdin: str | None = None
    files: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    template: str | None = None

    @property
    def arg_text(self) -> str:
        return " ".join(a for a in self.args if a)


def assemble_user_content(prompt: PromptInput) -> str:
    """Build the new user message text.

    Raises:
        EmptyPrompt: when there is no piped input, argument, or template.
        AttachmentError: when an attachment cannot be read.
    """
    stdin = prompt.stdin if prompt.stdin and prompt.stdin.strip() else None
    arg_text = prompt.arg_text.strip() or None
    template = prompt.template if prompt.template and prompt.template.strip() else None

    if stdin is None and arg_text is None and template is None:
        raise EmptyPrompt("No prompt provided; pass text as arguments, pipe it on stdin, or use --template")

    parts = read_attachments(prompt.files)
    inputs = [p for p in (stdin, arg_text) if p]

    if template is None:
        parts.extend(inputs)
    elif has_input_placeholder(template):
        parts.append(apply_template(template, {"input": "\n\n".join(inputs)}).strip())
    else:
        parts.append(template.strip())
        parts.extend(inputs)

    return "\n\n".join(parts)
