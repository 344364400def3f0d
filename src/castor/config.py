"""Configuration: credentials, endpoints and the provider model catalog."""

from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv

from castor.errors import ConfigurationError
from castor.models import ProviderId

load_dotenv()

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
OLLAMA_BASE_URL_ENV = "OLLAMA_BASE_URL"


@dataclass(frozen=True)
class ProviderSettings:
    """Static facts about one provider."""

    provider: ProviderId
    #: ``None`` for providers that need no credential.
    api_key_env: str | None
    default_model: str
    suggested_models: tuple[str, ...] = ()


PROVIDER_SETTINGS: dict[ProviderId, ProviderSettings] = {
    ProviderId.OPENAI: ProviderSettings(
        provider=ProviderId.OPENAI,
        api_key_env="OPENAI_API_KEY",
        default_model="gpt-4o-mini",
        suggested_models=(
            "gpt-5",
            "gpt-5-mini",
            "gpt-5-nano",
            "gpt-4.1",
            "gpt-4o",
            "gpt-4o-mini",
            "gpt-4.1-mini",
        ),
    ),
    ProviderId.ANTHROPIC: ProviderSettings(
        provider=ProviderId.ANTHROPIC,
        api_key_env="ANTHROPIC_API_KEY",
        default_model="claude-3-5-sonnet-latest",
        suggested_models=(
            "claude-3-5-sonnet-latest",
            "claude-3-5-haiku-latest",
            "claude-sonnet-4-5",
            "claude-haiku-4-5",
            "claude-opus-4-1-20250805",
        ),
    ),
    ProviderId.GOOGLE: ProviderSettings(
        provider=ProviderId.GOOGLE,
        api_key_env="GEMINI_API_KEY",
        default_model="gemini-2.5-flash",
        suggested_models=("gemini-2.5-pro", "gemini-2.5-flash"),
    ),
    ProviderId.OLLAMA: ProviderSettings(
        provider=ProviderId.OLLAMA,
        api_key_env=None,
        default_model="gpt-oss:20b",
        # deepseek-r1 is omitted: it lacks function calling.
        suggested_models=("gpt-oss:20b", "qwen3:30b", "phi4-mini:latest"),
    ),
}


def get_settings(provider: ProviderId) -> ProviderSettings:
    """Return the settings entry for *provider*."""
    return PROVIDER_SETTINGS[provider]


def has_credentials(provider: ProviderId) -> bool:
    """Whether the credential for *provider* is present in the environment."""
    env_var = PROVIDER_SETTINGS[provider].api_key_env
    if env_var is None:
        return True
    return bool(os.environ.get(env_var))


def resolve_api_key(provider: ProviderId) -> str:
    """Return the API key for *provider* or raise ``ConfigurationError``."""
    env_var = PROVIDER_SETTINGS[provider].api_key_env
    if env_var is None:
        raise ConfigurationError(f"{provider.value} does not use an API key")
    key = os.environ.get(env_var)
    if not key:
        raise ConfigurationError(
            f"{env_var} environment variable not set",
            hint=f"Set {env_var} to call {provider.value}.",
        )
    return key


def resolve_ollama_base_url() -> str:
    """Return the Ollama base URL without a trailing slash."""
    raw = os.environ.get(OLLAMA_BASE_URL_ENV)
    if not raw:
        return DEFAULT_OLLAMA_BASE_URL
    return raw.rstrip("/")
