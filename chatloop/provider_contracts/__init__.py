"""Provider contracts: per-provider chunk parsing and stop-reason mapping."""

from __future__ import annotations

from .anthropic import AnthropicProviderContract
from .base import ProviderContract
from .deepseek import DeepSeekProviderContract
from .openai import OpenAIProviderContract

_CONTRACTS: dict[str, type[ProviderContract]] = {
    "openai": OpenAIProviderContract,
    "deepseek": DeepSeekProviderContract,
    "anthropic": AnthropicProviderContract,
}


def get_provider_contract(provider: str) -> ProviderContract:
    key = (provider or "").strip().lower()
    return _CONTRACTS.get(key, ProviderContract)(key)


__all__ = ["ProviderContract", "get_provider_contract"]
