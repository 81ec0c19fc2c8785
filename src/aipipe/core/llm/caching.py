"""
Content-addressed response cache.

Entries live at ``{cache_dir}/{fingerprint}.json``.  The cache is strictly an
optimization: every read or write failure degrades to a miss or a no-op with
a warning, and never fails the surrounding request.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from aipipe.core.exceptions import CacheIOError
from aipipe.core.llm.types import Request, Response
from aipipe.core.utils.file_io import atomic_write_json, read_json_object

_FINGERPRINT_LEN = 64


def fingerprint(request: Request) -> str:
    """Deterministic sha256 over every field that can change the model's output.

    Covers model, system prompt, the full message sequence (including image
    bytes), temperature, and max tokens.  Attachment content is hashed rather
    than attachment paths, so editing a file invalidates the entry.
    """
    payload = {
        "model": request.model.full_id,
        "system": request.system_prompt,
        "messages": [
            {
                "role": m.role,
                "content": m.content,
                "images": [image.data_url for image in m.images],
            }
            for m in request.messages
        ],
        "temperature": request.temperature,
        "max_output_tokens": request.max_output_tokens,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    response: Response
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "response": self.response.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            fingerprint=str(data["fingerprint"]),
            response=Response.from_dict(data["response"]),
            created_at=float(data["created_at"]),
        )


class ResponseCache:
    """Keyed lookup and best-effort persistence of responses.

    Args:
        cache_dir: Directory holding one JSON file per entry.
        ttl: Optional lifetime in seconds; older entries read as misses.
    """

    def __init__(self, cache_dir: str | Path, ttl: float | None = None):
        self.cache_dir = Path(cache_dir).expanduser()
        self.ttl = ttl

    def _path(self, key: str) -> Path:
        if len(key) != _FINGERPRINT_LEN or not all(c in "0123456789abcdef" for c in key):
            raise CacheIOError(f"Invalid cache fingerprint {key!r}")
        return self.cache_dir / f"{key}.json"

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the entry for *key*, or None on miss, expiry, or any read error."""
        try:
            data = read_json_object(self._path(key))
            if data is None:
                return None
            entry = CacheEntry.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, CacheIOError) as e:
            logger.warning(f"Response cache read failed for {key[:12]}: {e}")
            return None

        if entry.fingerprint != key:
            logger.warning(f"Response cache entry {key[:12]} has mismatched fingerprint; ignoring")
            return None
        if self.ttl is not None and time.time() - entry.created_at > self.ttl:
            logger.debug(f"Response cache entry {key[:12]} expired")
            return None
        logger.debug(f"Response cache hit {key[:12]}")
        return entry

    def store(self, key: str, response: Response) -> None:
        """Persist *response* under *key*.  Failures are logged, never raised."""
        entry = CacheEntry(fingerprint=key, response=response, created_at=time.time())
        try:
            atomic_write_json(self._path(key), entry.to_dict())
        except (OSError, TypeError, ValueError, CacheIOError) as e:
            logger.warning(f"Response cache write failed for {key[:12]}: {e}")

    def clear(self) -> int:
        """Delete every entry.  Returns how many were removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not remove cache entry {path.name}: {e}")
        return removed
