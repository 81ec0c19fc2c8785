"""Session persistence — one JSON document per named conversation.

Layout::

    history_dir/
        {name}.json   # {"name", "messages": [{role, content, timestamp}], "cumulative_cost"}

Every write replaces the whole file atomically (temp file + rename), so a
crash mid-write leaves the previous history intact.  Two processes writing
the same session is last-writer-wins, never a corrupt file.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aipipe.core.exceptions import SessionIOError
from aipipe.core.llm.types import Message
from aipipe.core.utils.file_io import atomic_write_json, read_json_object

ExportFormat = Literal["json", "markdown", "yaml"]
EXPORT_FORMATS: tuple[str, ...] = ("json", "markdown", "yaml")

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Turn:
    """A single conversational message."""

    role: str
    content: str
    timestamp: str = field(default_factory=_now_iso)

    def to_message(self) -> Message:
        return Message(role=self.role, content=self.content)


@dataclass
class Session:
    """A named conversation and what it has cost so far."""

    name: str
    messages: list[Turn] = field(default_factory=list)
    cumulative_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def history(self) -> tuple[Message, ...]:
        return tuple(turn.to_message() for turn in self.messages)


@dataclass(frozen=True)
class SessionSummary:
    name: str
    turns: int
    cumulative_cost: float


# -- import validation -------------------------------------------------------


class _TurnModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["system", "user", "assistant"]
    content: str
    timestamp: str | datetime | None = None

    def stamp(self) -> str:
        if isinstance(self.timestamp, datetime):
            return self.timestamp.isoformat()
        return self.timestamp or _now_iso()


class _SessionDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    messages: list[_TurnModel]
    cumulative_cost: float = Field(default=0.0, ge=0, alias="cumulativeCost")


def _describe(error: ValidationError) -> str:
    issues = []
    for issue in error.errors():
        location = ".".join(str(p) for p in issue["loc"]) or "document"
        issues.append(f"{location}: {issue['msg']}")
    return "; ".join(issues)


# -- store -------------------------------------------------------------------


class SessionStore:
    """File-backed store of named sessions."""

    def __init__(self, history_dir: str | Path) -> None:
        self._base = Path(history_dir).expanduser()

    # -- public API ----------------------------------------------------------

    def load(self, name: str) -> Session:
        """Load *name*; a session that does not exist yet is returned empty.

        Raises:
            SessionIOError: if the file exists but cannot be read or parsed.
        """
        path = self._session_path(name)
        try:
            raw = read_json_object(path)
        except (OSError, ValueError) as e:
            raise SessionIOError(f"Could not read session {name!r} from {path}: {e}") from e
        if raw is None:
            return Session(name=name)
        return self._parse(name, raw, source=str(path))

    def exists(self, name: str) -> bool:
        return self._session_path(name).is_file()

    def save(self, session: Session) -> None:
        path = self._session_path(session.name)
        try:
            atomic_write_json(path, session.to_dict())
        except OSError as e:
            raise SessionIOError(f"Could not write session {session.name!r} to {path}: {e}") from e
        logger.debug(f"Saved session {session.name!r} ({len(session.messages)} messages)")

    def append(self, name: str, turns: Iterable[Turn], cost: float = 0.0) -> Session:
        """Append *turns* in order and add *cost* to the running total."""
        session = self.load(name)
        session.messages.extend(turns)
        session.cumulative_cost += cost
        self.save(session)
        return session

    def export(self, name: str, fmt: ExportFormat = "json") -> str:
        """Render the full session as ``json``, ``yaml``, or a ``markdown`` transcript."""
        if not self.exists(name):
            raise SessionIOError(f"Session {name!r} not found")
        session = self.load(name)

        if fmt == "json":
            return json.dumps(session.to_dict(), indent=2, ensure_ascii=False)
        if fmt == "yaml":
            return yaml.safe_dump(session.to_dict(), sort_keys=False, allow_unicode=True)
        if fmt == "markdown":
            lines = [f"# Session: {session.name}", ""]
            for turn in session.messages:
                lines.extend([f"## {turn.role.capitalize()}", "", turn.content, ""])
            return "\n".join(lines)
        raise SessionIOError(f"Unknown export format {fmt!r}; choose one of: {', '.join(EXPORT_FORMATS)}")

    def import_session(self, name: str, content: str) -> Session:
        """Validate *content* (JSON or YAML) and save it as *name*.

        Accepts the exported session document or a bare list of
        ``{role, content}`` messages.  Nothing is written unless the whole
        document is valid.
        """
        self._session_path(name)
        try:
            raw = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise SessionIOError(f"Invalid session document: could not parse ({e})") from e

        session = self._parse(name, raw, source="import")
        self.save(session)
        return session

    def delete(self, name: str) -> None:
        path = self._session_path(name)
        if not path.is_file():
            raise SessionIOError(f"Session {name!r} not found")
        try:
            path.unlink()
        except OSError as e:
            raise SessionIOError(f"Could not delete session {name!r}: {e}") from e

    def list_sessions(self) -> list[str]:
        """Session names, sorted."""
        if not self._base.is_dir():
            return []
        return sorted(p.stem for p in self._base.glob("*.json") if p.is_file() and _NAME_RE.match(p.stem))

    def summaries(self) -> list[SessionSummary]:
        results = []
        for name in self.list_sessions():
            try:
                session = self.load(name)
            except SessionIOError as e:
                logger.warning(f"Skipping unreadable session {name!r}: {e}")
                continue
            results.append(SessionSummary(name, len(session.messages), session.cumulative_cost))
        return results

    # -- internal helpers ----------------------------------------------------

    def _session_path(self, name: str) -> Path:
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise SessionIOError(
                f"Invalid session name {name!r}; use letters, digits, '.', '_' or '-' (not starting with '.')"
            )
        return self._base / f"{name}.json"

    @staticmethod
    def _parse(name: str, raw: Any, source: str) -> Session:
        if isinstance(raw, list):
            raw = {"messages": raw}
        if not isinstance(raw, dict):
            raise SessionIOError(f"Invalid session document from {source}: expected an object or a list of messages")
        try:
            doc = _SessionDocument.model_validate(raw)
        except ValidationError as e:
            raise SessionIOError(f"Invalid session document from {source}: {_describe(e)}") from e

        turns = [Turn(role=m.role, content=m.content, timestamp=m.stamp()) for m in doc.messages]
        return Session(name=name, messages=turns, cumulative_cost=doc.cumulative_cost)
