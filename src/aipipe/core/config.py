"""
Layered configuration resolution.

Merges configuration from these sources, highest precedence first:
    1. Explicit CLI flags
    2. Environment variables (provider API keys only)
    3. Per-provider override block (``providers.<id>.*`` in config.json)
    4. Top-level settings file (config.json)
    5. Stored API-key file (apiKeys.json)
    6. Built-in defaults

Every source is flattened to dot-paths and the layers are merged first-wins,
so a lower layer can never overwrite a key a higher layer already set no
matter what order the files were read in.  Values are coerced and validated
when they are ingested: a bad CLI flag raises ConfigError, a bad persisted
key is dropped with a warning so a corrupt file never blocks a CLI-only run.

Usage:
    context = ConfigContext.from_env(os.environ, override="~/.aipipe-test")
    resolver = ConfigResolver(context, env=os.environ)
    config = resolver.resolve({"temperature": "0.3"}, provider="anthropic")

    config.temperature        # 0.3 (CLI wins)
    config.max_output_tokens  # from providers.anthropic.maxOutputTokens, if set
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from aipipe.core.config_schema import Configuration
from aipipe.core.exceptions import AipipeError, ConfigError
from aipipe.core.llm.config import DEFAULT_MODEL, SUPPORTED_PROVIDERS, TEMPERATURE_MAX, TEMPERATURE_MIN
from aipipe.core.llm.model_resolver import resolve_model
from aipipe.core.secrets import ApiKeyFile, EnvProvider
from aipipe.core.types import ConfigDict, EnvMap, Layer, PathLike
from aipipe.core.utils.file_io import atomic_write_json, read_json_object

CONFIG_DIR_ENV = "AIPIPE_CONFIG_DIR"
_DEFAULT_CONFIG_DIR_NAME = ".aipipe"

SETTINGS_FILE = "config.json"
API_KEYS_FILE = "apiKeys.json"

# camelCase keys used in config.json -> canonical snake_case field names
_KEY_ALIASES: dict[str, str] = {
    "maxOutputTokens": "max_output_tokens",
    "apiKeys": "api_keys",
    "budgetMode": "budget_mode",
    "cacheTtl": "cache_ttl",
    "json": "json_output",
    "format": "output_format",
    "cost": "show_cost",
}

_BOOL_KEYS = frozenset({"cache", "stream", "json_output", "markdown", "show_cost"})
_STRING_KEYS = frozenset({"model", "system"})
_CHOICE_KEYS: dict[str, tuple[str, ...]] = {
    "budget_mode": ("per-request", "cumulative"),
    "output_format": ("json", "yaml", "csv", "text"),
}
_PROVIDER_OVERRIDE_KEYS = frozenset({"system", "temperature", "max_output_tokens"})

_DEFAULTS: ConfigDict = {
    "model": DEFAULT_MODEL,
    "budget_mode": "per-request",
    "retries": 3,
    "cache": True,
    "stream": True,
    "json_output": False,
    "output_format": "json",
    "markdown": False,
    "show_cost": False,
}


@dataclass(frozen=True)
class ConfigContext:
    """Location of every file aipipe reads or writes.

    Passed explicitly to the resolver, session store, and response cache
    instead of living in a process-wide global.
    """

    config_dir: Path

    @classmethod
    def from_env(cls, env: EnvMap | None = None, override: PathLike | None = None) -> ConfigContext:
        """Build a context from an explicit override, ``$AIPIPE_CONFIG_DIR``, or ``~/.aipipe``."""
        env = os.environ if env is None else env
        raw = override or env.get(CONFIG_DIR_ENV) or os.path.join("~", _DEFAULT_CONFIG_DIR_NAME)
        return cls(Path(raw).expanduser())

    @property
    def settings_path(self) -> Path:
        return self.config_dir / SETTINGS_FILE

    @property
    def api_keys_path(self) -> Path:
        return self.config_dir / API_KEYS_FILE

    @property
    def history_dir(self) -> Path:
        return self.config_dir / "history"

    @property
    def cache_dir(self) -> Path:
        return self.config_dir / "cache"

    @property
    def roles_dir(self) -> Path:
        return self.config_dir / "roles"

    @property
    def templates_dir(self) -> Path:
        return self.config_dir / "templates"


# ---------------------------------------------------------------------------
# Dot-path helpers
# ---------------------------------------------------------------------------


def canonical_key(key: str) -> str:
    """Map one key segment to its canonical snake_case name."""
    return _KEY_ALIASES.get(key, key)


def get_path(data: Layer, key_path: str, default: Any = None) -> Any:
    """Get a value by dot-notation path."""
    current: Any = data
    for part in key_path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def set_path(data: dict[str, Any], key_path: str, value: Any) -> None:
    """Set a value by dot-notation path, creating intermediate dicts.

    Sibling keys at every level are left untouched.
    """
    parts = key_path.split(".")
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def flatten(data: Layer, prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into ``{"a.b.c": value}`` pairs."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value:
            result.update(flatten(value, full_key))
        else:
            result[full_key] = value
    return result


def unflatten(data: Layer) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        set_path(result, key, value)
    return result


def merge_layers(layers: list[Layer]) -> dict[str, Any]:
    """Merge flat layers, highest precedence first.  The first layer to set a key wins.

    A key is also skipped when a higher layer already claimed one of its
    ancestors or descendants, so nested blocks never interleave.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            if key in merged or _conflicts(key, merged):
                continue
            merged[key] = value
    return merged


def _conflicts(key: str, merged: Layer) -> bool:
    prefix = key + "."
    for existing in merged:
        if existing.startswith(prefix) or key.startswith(existing + "."):
            return True
    return False


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def coerce_value(key: str, raw: Any) -> Any:
    """Coerce a raw value (string from the CLI, or a JSON value) for a known key.

    Raises:
        ConfigError: naming the key and the offending value.
    """
    name = canonical_key(key.split(".")[-1])

    if name == "temperature":
        value = _to_float(key, raw)
        if not TEMPERATURE_MIN <= value <= TEMPERATURE_MAX:
            raise ConfigError(
                f"Invalid temperature {raw!r} for {key!r}. Must be a number between "
                f"{TEMPERATURE_MIN:g} and {TEMPERATURE_MAX:g}.",
                key=key,
                value=raw,
            )
        return value

    if name == "max_output_tokens":
        value = _to_int(key, raw)
        if value <= 0:
            raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be a positive integer.", key=key, value=raw)
        return value

    if name == "retries":
        value = _to_int(key, raw)
        if value < 0:
            raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be zero or more.", key=key, value=raw)
        return value

    if name in ("budget", "cache_ttl"):
        value = _to_float(key, raw)
        if value < 0 or (name == "cache_ttl" and value == 0):
            raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be a positive number.", key=key, value=raw)
        return value

    if name in _CHOICE_KEYS:
        choices = _CHOICE_KEYS[name]
        if raw not in choices:
            raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be one of: {', '.join(choices)}.", key=key, value=raw)
        return raw

    if name in _BOOL_KEYS:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.lower() in ("true", "false"):
            return raw.lower() == "true"
        raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be true or false.", key=key, value=raw)

    if name in _STRING_KEYS:
        if not isinstance(raw, str):
            raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be a string.", key=key, value=raw)
        return raw

    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw


def _to_float(key: str, raw: Any) -> float:
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be a number.", key=key, value=raw)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be a number.", key=key, value=raw) from None


def _to_int(key: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be an integer.", key=key, value=raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().lstrip("+-").isdigit():
        return int(raw.strip())
    raise ConfigError(f"Invalid {key!r} value {raw!r}. Must be an integer.", key=key, value=raw)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


def ingest_settings(raw: Layer, source: str = SETTINGS_FILE) -> ConfigDict:
    """Canonicalize and validate a settings document.

    Bad values are dropped with a warning naming the key and value.
    Unrecognized keys are carried through untouched (the model ignores them).
    """
    settings: ConfigDict = {}
    for key, value in raw.items():
        name = canonical_key(key)
        if name == "aliases":
            settings["aliases"] = _ingest_aliases(value, source)
        elif name == "providers":
            settings["providers"] = _ingest_providers(value, source)
        elif name == "api_keys":
            logger.warning(f"Ignoring 'apiKeys' in {source}; API keys live in {API_KEYS_FILE}")
        else:
            try:
                settings[name] = coerce_value(key, value)
            except ConfigError as e:
                logger.warning(f"{source}: {e} Falling back to default.")
    return settings


def _ingest_aliases(value: Any, source: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        logger.warning(f"{source}: 'aliases' must be an object, got {value!r}; ignoring")
        return {}
    aliases = {}
    for name, target in value.items():
        if isinstance(target, str) and target.strip():
            aliases[str(name)] = target.strip()
        else:
            logger.warning(f"{source}: alias {name!r} has invalid target {target!r}; ignoring")
    return aliases


def _ingest_providers(value: Any, source: str) -> dict[str, ConfigDict]:
    if not isinstance(value, Mapping):
        logger.warning(f"{source}: 'providers' must be an object, got {value!r}; ignoring")
        return {}
    providers: dict[str, ConfigDict] = {}
    for provider_id, block in value.items():
        if provider_id not in SUPPORTED_PROVIDERS:
            logger.warning(f"{source}: override block for unknown provider {provider_id!r}; ignoring")
            continue
        if not isinstance(block, Mapping):
            logger.warning(f"{source}: providers.{provider_id} must be an object; ignoring")
            continue
        entries: ConfigDict = {}
        for key, item in block.items():
            name = canonical_key(key)
            if name not in _PROVIDER_OVERRIDE_KEYS:
                continue
            try:
                entries[name] = coerce_value(f"providers.{provider_id}.{key}", item)
            except ConfigError as e:
                logger.warning(f"{source}: {e} Falling back to default.")
        providers[provider_id] = entries
    return providers


def ingest_cli_flags(cli_flags: Layer) -> ConfigDict:
    """Validate explicit CLI flags.  Unset (None) flags are skipped; bad values raise."""
    flags: ConfigDict = {}
    for key, value in cli_flags.items():
        if value is None:
            continue
        flags[canonical_key(key)] = coerce_value(key, value)
    return flags


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ConfigResolver:
    """Reads the settings and API-key files from a ConfigContext and layers them."""

    def __init__(self, context: ConfigContext, env: EnvMap | None = None):
        self.context = context
        self.env = os.environ if env is None else env
        self.api_keys = ApiKeyFile(context.api_keys_path)
        self._settings: ConfigDict | None = None

    def load_settings(self) -> ConfigDict:
        """Load config.json, degrading to an empty object when missing or malformed."""
        if self._settings is None:
            path = self.context.settings_path
            try:
                raw = read_json_object(path) or {}
            except (OSError, ValueError) as e:
                logger.warning(f"Could not load settings from {path}: {e}")
                raw = {}
            self._settings = ingest_settings(raw, source=str(path))
        return self._settings

    def layers(self, cli_flags: Layer | None = None, provider: str | None = None) -> list[ConfigDict]:
        """Return flat layers, highest precedence first."""
        settings = self.load_settings()
        cli_layer = flatten(ingest_cli_flags(cli_flags or {}))
        env_layer = {f"api_keys.{p}": key for p, key in EnvProvider(self.env).as_dict().items()}
        override_layer: ConfigDict = {}
        if provider:
            override_layer = dict(settings.get("providers", {}).get(provider, {}))
        # Alias names may contain dots ("gpt-4.1"), so the table stays one leaf
        settings_layer = flatten({k: v for k, v in settings.items() if k != "aliases"})
        if settings.get("aliases"):
            settings_layer["aliases"] = dict(settings["aliases"])
        key_file_layer = {f"api_keys.{p}": key for p, key in self.api_keys.as_dict().items()}
        return [cli_layer, env_layer, override_layer, settings_layer, key_file_layer, dict(_DEFAULTS)]

    def resolve(self, cli_flags: Layer | None = None, provider: str | None = None) -> Configuration:
        """Merge every source into one effective Configuration.

        Args:
            cli_flags: Explicit flag values keyed by setting name; None means unset.
            provider: Resolved provider id whose override block should apply.
        """
        merged = unflatten(merge_layers(self.layers(cli_flags, provider)))
        try:
            return Configuration.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


def resolve_config(
    cli_flags: Layer,
    env: EnvMap,
    config_dir: PathLike,
    provider: str | None = None,
) -> Configuration:
    """Functional form of ConfigResolver.resolve()."""
    return ConfigResolver(ConfigContext(Path(config_dir).expanduser()), env=env).resolve(cli_flags, provider)


# ---------------------------------------------------------------------------
# Settings file management (config set / reset)
# ---------------------------------------------------------------------------


def read_settings_file(context: ConfigContext) -> ConfigDict:
    """Raw settings document, or {} when missing or unreadable."""
    try:
        return read_json_object(context.settings_path) or {}
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {context.settings_path}: {e}")
        return {}


def set_setting(context: ConfigContext, key: str, raw: str) -> tuple[str, Any]:
    """Persist one value.

    Provider ids are treated as API keys and go to apiKeys.json.
    ``aliases.<name>`` stores one alias whose name may contain dots; any
    other key is coerced and written into config.json by dot-path.

    Returns:
        (destination file, stored value).
    """
    if key in SUPPORTED_PROVIDERS:
        ApiKeyFile(context.api_keys_path).set(key, raw)
        return str(context.api_keys_path), raw

    if not key or any(not part for part in key.split(".")):
        raise ConfigError(f"Invalid config key {key!r}", key=key, value=raw)
    head, _, rest = key.partition(".")
    if canonical_key(head) == "api_keys":
        raise ConfigError("API keys are stored per provider; run `aipipe config set <provider> <key>`", key=key)
    data = read_settings_file(context)
    if canonical_key(head) == "aliases":
        # Everything after "aliases." is one alias name, dots included
        target = _validate_alias_target(key, rest, raw, data.get("aliases"))
        aliases = data.get("aliases")
        if not isinstance(aliases, dict):
            aliases = data["aliases"] = {}
        aliases[rest] = target
        atomic_write_json(context.settings_path, data)
        return str(context.settings_path), target

    coerced = coerce_value(key, raw)
    set_path(data, key, coerced)
    atomic_write_json(context.settings_path, data)
    return str(context.settings_path), coerced


def _validate_alias_target(key: str, name: str, raw: str, existing: Any) -> str:
    if not name:
        raise ConfigError("Alias name missing; use `aipipe config set aliases.<name> <provider/model-id>`", key=key)
    target = raw.strip()
    if isinstance(existing, Mapping) and target in existing:
        raise ConfigError(
            f"Alias {name!r} cannot point to another alias {target!r}; use a provider/model-id", key=key, value=raw
        )
    if "/" not in target:
        raise ConfigError(f"Alias target {raw!r} must be 'provider/model-id'", key=key, value=raw)
    try:
        resolve_model(target)
    except AipipeError as e:
        raise ConfigError(f"Invalid alias target for {key!r}: {e}", key=key, value=raw) from e
    return target


def reset_settings(context: ConfigContext) -> None:
    """Empty config.json.  API keys are not affected."""
    atomic_write_json(context.settings_path, {})
