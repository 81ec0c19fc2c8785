"""
Model string resolution.

Turns a user-facing model string (an alias, ``provider/model-id``, or a bare
``model-id``) into a ModelReference.  Alias expansion is a single pass:
an alias whose target is itself an alias is rejected rather than chained.
"""

from __future__ import annotations

from collections.abc import Mapping

from aipipe.core.exceptions import ChainedAliasError, InvalidModelFormat, UnknownProvider
from aipipe.core.llm.config import DEFAULT_PROVIDER, SUPPORTED_PROVIDERS, is_supported_provider
from aipipe.core.llm.types import ModelReference


def expand_alias(model_string: str, aliases: Mapping[str, str]) -> str:
    """Substitute an exact alias match once.

    Raises:
        ChainedAliasError: if the alias target is itself an alias name.
    """
    if model_string not in aliases:
        return model_string
    target = aliases[model_string]
    if target in aliases:
        raise ChainedAliasError(
            f"Alias {model_string!r} points to another alias {target!r}; "
            "aliases must map to a provider/model-id, not to other aliases"
        )
    return target


def parse_model_string(model_string: str) -> ModelReference:
    """Split ``provider/model-id`` on the first slash; a bare id uses the default provider."""
    model_string = model_string.strip()
    if not model_string:
        raise InvalidModelFormat("Model string is empty; expected 'provider/model-id' or 'model-id'")

    provider, sep, model_id = model_string.partition("/")
    if not sep:
        return ModelReference(provider=DEFAULT_PROVIDER, model_id=model_string)
    if not provider or not model_id:
        raise InvalidModelFormat(f"Invalid model {model_string!r}; expected 'provider/model-id'")
    return ModelReference(provider=provider, model_id=model_id)


def resolve_model(model_string: str, aliases: Mapping[str, str] | None = None) -> ModelReference:
    """Resolve *model_string* against *aliases* and the closed provider set.

    Raises:
        InvalidModelFormat: empty or malformed string.
        ChainedAliasError: alias pointing at another alias.
        UnknownProvider: provider outside the supported set.
    """
    if model_string is None or not model_string.strip():
        raise InvalidModelFormat("Model string is empty; expected 'provider/model-id' or 'model-id'")

    ref = parse_model_string(expand_alias(model_string.strip(), aliases or {}))
    if not is_supported_provider(ref.provider):
        raise UnknownProvider(
            f"Unknown provider {ref.provider!r}. Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    return ref
