"""
LLM Configuration — provider registry and model defaults.

Central, static description of every supported provider.  The set is
closed: anything not listed here is rejected by the model resolver.
Nothing in this module is mutated at runtime.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "openai/gpt-4o"

TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0


@dataclass(frozen=True)
class ProviderSpec:
    """Static descriptor for one provider."""

    id: str
    label: str
    env_vars: tuple[str, ...]
    litellm_prefix: str
    credential_kwarg: str = "api_key"

    @property
    def primary_env_var(self) -> str:
        return self.env_vars[0]

    @property
    def accepts_api_key(self) -> bool:
        """Whether a single stored secret is enough to authenticate."""
        return len(self.env_vars) == 1


_SPECS: tuple[ProviderSpec, ...] = (
    ProviderSpec("openai", "OpenAI", ("OPENAI_API_KEY",), "openai"),
    ProviderSpec("anthropic", "Anthropic", ("ANTHROPIC_API_KEY",), "anthropic"),
    ProviderSpec("google", "Google Gemini", ("GOOGLE_GENERATIVE_AI_API_KEY",), "gemini"),
    ProviderSpec("perplexity", "Perplexity", ("PERPLEXITY_API_KEY",), "perplexity"),
    ProviderSpec("xai", "xAI Grok", ("XAI_API_KEY",), "xai"),
    ProviderSpec("mistral", "Mistral", ("MISTRAL_API_KEY",), "mistral"),
    ProviderSpec("groq", "Groq", ("GROQ_API_KEY",), "groq"),
    ProviderSpec("deepseek", "DeepSeek", ("DEEPSEEK_API_KEY",), "deepseek"),
    ProviderSpec("cohere", "Cohere", ("COHERE_API_KEY",), "cohere"),
    ProviderSpec("openrouter", "OpenRouter", ("OPENROUTER_API_KEY",), "openrouter"),
    ProviderSpec("azure", "Azure AI", ("AZURE_AI_API_KEY",), "azure_ai"),
    ProviderSpec("togetherai", "Together AI", ("TOGETHERAI_API_KEY",), "together_ai"),
    ProviderSpec("bedrock", "Amazon Bedrock", ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"), "bedrock"),
    ProviderSpec("vertex", "Google Vertex AI", ("GOOGLE_VERTEX_PROJECT", "GOOGLE_VERTEX_LOCATION"), "vertex_ai"),
    ProviderSpec("ollama", "Ollama (local)", ("OLLAMA_HOST",), "ollama", credential_kwarg="api_base"),
    ProviderSpec("huggingface", "Hugging Face", ("HF_TOKEN",), "huggingface"),
    ProviderSpec("deepinfra", "DeepInfra", ("DEEPINFRA_API_KEY",), "deepinfra"),
)

PROVIDERS: Mapping[str, ProviderSpec] = {spec.id: spec for spec in _SPECS}
SUPPORTED_PROVIDERS: tuple[str, ...] = tuple(spec.id for spec in _SPECS)

PROVIDER_ENV_VARS: dict[str, tuple[str, ...]] = {spec.id: spec.env_vars for spec in _SPECS}


def get_provider(provider_id: str) -> ProviderSpec | None:
    """Return the spec for *provider_id*, or None if unsupported."""
    return PROVIDERS.get(provider_id)


def is_supported_provider(provider_id: str) -> bool:
    return provider_id in PROVIDERS
