"""
API-key store and credential lookup.

Credentials are resolved through a chain of providers.  Each provider
implements the SecretProvider protocol; the SecretsManager checks providers
in order and returns the first non-None result.  The default chain is
environment variables first, then the stored API-key file.

Usage:
    from aipipe.core.secrets import ApiKeyFile, EnvProvider, SecretsManager

    manager = SecretsManager(providers=[
        EnvProvider(os.environ),
        ApiKeyFile("~/.aipipe/apiKeys.json"),
    ])

    manager.get("anthropic")          # key for one provider
    manager.is_available("bedrock")   # all required env vars present?
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from aipipe.core.exceptions import MissingCredentials
from aipipe.core.llm.config import PROVIDERS, get_provider
from aipipe.core.utils.file_io import atomic_write_json, read_json_object

# ---------------------------------------------------------------------------
# Provider protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class SecretProvider(Protocol):
    """Interface for credential sources."""

    def get(self, provider_id: str) -> str | None:
        """Return the API key for *provider_id*, or None."""
        ...

    def has_credentials(self, provider_id: str) -> bool:
        """Whether this source alone satisfies the provider's requirements."""
        ...


# ---------------------------------------------------------------------------
# Built-in providers
# ---------------------------------------------------------------------------


class EnvProvider:
    """
    Read credentials from environment variables, checked verbatim.

    Maps provider ids to their fixed variable names:
        "anthropic" -> ANTHROPIC_API_KEY
        "bedrock"   -> AWS_ACCESS_KEY_ID + AWS_SECRET_ACCESS_KEY
    """

    def __init__(self, env: Mapping[str, str]):
        self._env = env

    def get(self, provider_id: str) -> str | None:
        spec = get_provider(provider_id)
        if spec is None:
            return None
        return self._env.get(spec.primary_env_var) or None

    def has_credentials(self, provider_id: str) -> bool:
        spec = get_provider(provider_id)
        if spec is None:
            return False
        return all(self._env.get(var) for var in spec.env_vars)

    def as_dict(self) -> dict[str, str]:
        """Primary keys for every provider whose env var is set."""
        result = {}
        for provider_id in PROVIDERS:
            value = self.get(provider_id)
            if value:
                result[provider_id] = value
        return result


class ApiKeyFile:
    """
    Read and write the JSON API-key store.

    Expected format (provider id -> secret):
        {"openai": "sk-...", "anthropic": "sk-ant-..."}

    A missing or malformed file reads as empty; entries whose key is not a
    supported provider are ignored.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            try:
                raw = read_json_object(self._path) or {}
            except (OSError, ValueError) as e:
                logger.warning(f"Could not load API keys from {self._path}: {e}")
                raw = {}
            data = {}
            for provider_id, secret in raw.items():
                if provider_id not in PROVIDERS:
                    logger.warning(f"Ignoring API key for unknown provider {provider_id!r} in {self._path}")
                    continue
                if isinstance(secret, str) and secret:
                    data[provider_id] = secret
            self._data = data
        return self._data

    def get(self, provider_id: str) -> str | None:
        return self._load().get(provider_id)

    def has_credentials(self, provider_id: str) -> bool:
        spec = get_provider(provider_id)
        if spec is None or not spec.accepts_api_key:
            return False
        return provider_id in self._load()

    def as_dict(self) -> dict[str, str]:
        return dict(self._load())

    def set(self, provider_id: str, secret: str) -> None:
        """Store *secret* for *provider_id*, preserving the other entries."""
        try:
            data = read_json_object(self._path) or {}
        except (OSError, ValueError):
            data = {}
        data[provider_id] = secret
        atomic_write_json(self._path, data)
        self._data = None


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SecretsManager:
    """
    Chain-of-responsibility credential manager.

    Queries providers in order, returning the first non-None result.
    """

    def __init__(self, providers: list[SecretProvider]):
        self._providers: list[SecretProvider] = list(providers)

    def get(self, provider_id: str, default: str | None = None) -> str | None:
        for provider in self._providers:
            value = provider.get(provider_id)
            if value is not None:
                return value
        return default

    def is_available(self, provider_id: str) -> bool:
        """True when any source fully satisfies the provider's credentials."""
        return any(provider.has_credentials(provider_id) for provider in self._providers)

    def require(self, provider_id: str) -> str | None:
        """Check availability, raising an actionable MissingCredentials if absent.

        Returns the single API key when the provider uses one, else None
        (multi-variable providers read their environment directly).
        """
        if not self.is_available(provider_id):
            spec = PROVIDERS[provider_id]
            env_hint = " and ".join(spec.env_vars)
            message = f"No credentials found for provider {provider_id!r}; set {env_hint}"
            if spec.accepts_api_key:
                message += f" or run `aipipe config set {provider_id} <key>`"
            raise MissingCredentials(message)
        return self.get(provider_id)


def mask_api_key(key: str) -> str:
    """Mask a secret, showing only a short prefix and the last 4 characters."""
    if len(key) <= 8:
        return "****"
    return f"{key[:3]}...{key[-4:]}"
