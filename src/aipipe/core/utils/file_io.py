"""
File I/O utilities: JSON documents with atomic replacement.

All functions operate on explicit paths — no implicit directory lookups.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from aipipe.core.types import PathLike


def atomic_write_text(path: PathLike, content: str, encoding: str = "utf-8") -> None:
    """Atomic write: temp file + rename so a kill can't corrupt the previous content."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)  # atomic on POSIX
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def atomic_write_json(path: PathLike, data: Any) -> None:
    """Serialize *data* as pretty JSON and write it atomically."""
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


def read_json_object(path: PathLike) -> dict[str, Any] | None:
    """Read a JSON object from *path*.

    Returns None when the file does not exist.

    Raises:
        ValueError: If the file is not valid JSON or not a JSON object.
        OSError: If the file exists but cannot be read.
    """
    source = Path(path)
    if not source.exists():
        return None
    with open(source, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{source} does not contain a JSON object")
    return data
