"""Type aliases shared by the configuration and I/O layers."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

# A resolved configuration layer keyed by dot paths ("llm.retries")
ConfigDict = dict[str, Any]

# Read-only input to the merge: a nested settings tree, CLI flags, or a flat layer
Layer = Mapping[str, Any]

# Process environment, or a stand-in for it in tests
EnvMap = Mapping[str, str]

PathLike = str | Path
