"""What each supported provider needs from us: integration id, keys, kwargs."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderCapabilities:
    provider: str
    model_provider: str
    token_limit_param: str
    api_key_env: str
    default_base_url: str | None = None
    # Keyword the LangChain integration takes for a custom endpoint.
    endpoint_param: str | None = "base_url"
    # Speaks chat completions, so OPENAI_BASE_URL / OPENAI_API_KEY apply.
    openai_compatible: bool = False


_CAPABILITIES: dict[str, ProviderCapabilities] = {
    "openai": ProviderCapabilities(
        provider="openai",
        model_provider="openai",
        token_limit_param="max_completion_tokens",
        api_key_env="OPENAI_API_KEY",
        openai_compatible=True,
    ),
    # ChatDeepSeek surfaces reasoning_content, which ChatOpenAI discards.
    "deepseek": ProviderCapabilities(
        provider="deepseek",
        model_provider="deepseek",
        token_limit_param="max_tokens",
        api_key_env="DEEPSEEK_API_KEY",
        default_base_url="https://api.deepseek.com",
        openai_compatible=True,
    ),
    "anthropic": ProviderCapabilities(
        provider="anthropic",
        model_provider="anthropic",
        token_limit_param="max_tokens",
        api_key_env="ANTHROPIC_API_KEY",
    ),
    "google": ProviderCapabilities(
        provider="google",
        model_provider="google_genai",
        token_limit_param="max_output_tokens",
        api_key_env="GOOGLE_API_KEY",
        endpoint_param=None,
    ),
    "mistral": ProviderCapabilities(
        provider="mistral",
        model_provider="mistralai",
        token_limit_param="max_tokens",
        api_key_env="MISTRAL_API_KEY",
        endpoint_param="endpoint",
    ),
}

SUPPORTED_PROVIDERS = tuple(_CAPABILITIES)


def get_provider_capabilities(provider: str) -> ProviderCapabilities:
    """Look up ``provider``; unknown names get OpenAI-style defaults."""
    key = (provider or "").strip().lower()
    if key in _CAPABILITIES:
        return _CAPABILITIES[key]
    return ProviderCapabilities(
        provider=key or "unknown",
        model_provider=key or "unknown",
        token_limit_param="max_tokens",
        api_key_env="OPENAI_API_KEY",
    )
