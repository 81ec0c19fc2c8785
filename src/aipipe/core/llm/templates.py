"""
Roles (stored system prompts) and prompt templates.

Roles live in ``{config_dir}/roles/NAME.txt`` (or ``roles/NAME``) and become
the system prompt.  Templates live in ``{config_dir}/templates/NAME.md`` and
wrap the user's input through ``{{input}}`` placeholders.  Names are reduced
to their basename so a name can never reach outside its directory.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
INPUT_PLACEHOLDER = "{{input}}"


def _safe_name(name: str) -> str:
    return os.path.basename(name.strip().replace("\\", "/"))


def load_role(roles_dir: str | Path, name: str) -> str | None:
    """Return the role text for *name*, or None if no such role exists."""
    safe = _safe_name(name)
    if not safe:
        return None
    base = Path(roles_dir).expanduser()
    for candidate in (base / f"{safe}.txt", base / safe):
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8").strip()
    return None


def list_roles(roles_dir: str | Path) -> list[str]:
    """Sorted role names (``.txt`` extension stripped, duplicates merged)."""
    base = Path(roles_dir).expanduser()
    if not base.is_dir():
        return []
    names = set()
    for path in base.iterdir():
        if not path.is_file() or path.name.startswith("."):
            continue
        names.add(path.stem if path.suffix == ".txt" else path.name)
    return sorted(names)


def load_template(templates_dir: str | Path, name: str) -> str | None:
    """Return the template body for *name* (``.md`` optional), or None."""
    safe = re.sub(r"\.md$", "", _safe_name(name), flags=re.IGNORECASE)
    if not safe:
        return None
    path = Path(templates_dir).expanduser() / f"{safe}.md"
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def list_templates(templates_dir: str | Path) -> list[str]:
    base = Path(templates_dir).expanduser()
    if not base.is_dir():
        return []
    return sorted({path.stem for path in base.glob("*.md") if path.is_file()})


def apply_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown placeholders are left as-is."""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        return variables[key] if key in variables else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def has_input_placeholder(template: str) -> bool:
    return INPUT_PLACEHOLDER in template
