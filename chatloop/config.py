"""Model descriptors and environment-driven configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from .provider_capabilities import get_provider_capabilities

logger = logging.getLogger("chatloop")

DEFAULT_PROVIDER = "deepseek"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. When a question needs arithmetic, call the "
    "calculate_expression tool instead of computing the result yourself."
)


def _load_max_iterations() -> int:
    """Load max iterations from environment.

    0 or negative means unlimited iterations.
    """
    raw = (os.getenv("MAX_ITERATIONS", "0") or "0").strip()
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid MAX_ITERATIONS=%r, defaulting to 0 (unlimited)",
            raw,
        )
        return 0


@dataclass(frozen=True)
class Model:
    """A concrete model on a concrete provider, with its credentials."""

    provider: str
    id: str
    api_key: str = ""
    base_url: str | None = None
    temperature: float = 0.0

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks.
        return (
            f"Model(provider={self.provider!r}, id={self.id!r}, "
            f"base_url={self.base_url!r})"
        )


def get_model(provider: str, model_id: str, **overrides: Any) -> Model:
    """Resolve a :class:`Model` from the provider registry and the environment.

    ``OPENAI_BASE_URL`` and ``OPENAI_API_KEY`` apply to every provider that
    speaks the OpenAI protocol; the provider's own key variable wins when set.
    """
    capabilities = get_provider_capabilities(provider)
    openai_protocol = capabilities.openai_compatible

    api_key = overrides.pop("api_key", None)
    if api_key is None:
        api_key = os.getenv(capabilities.api_key_env, "")
        if not api_key and openai_protocol:
            api_key = os.getenv("OPENAI_API_KEY", "")

    base_url = overrides.pop("base_url", None)
    if base_url is None:
        base_url = (
            os.getenv("OPENAI_BASE_URL") if openai_protocol else None
        ) or capabilities.default_base_url

    return Model(
        provider=capabilities.provider,
        id=model_id,
        api_key=api_key,
        base_url=base_url,
        **overrides,
    )


class AgentConfig:
    """Configuration for an interactive session."""

    def __init__(self, init_data: dict[str, Any]) -> None:
        self.provider: str = init_data.get("provider") or DEFAULT_PROVIDER
        self.model: str = init_data.get("model") or DEFAULT_MODEL
        self.system_prompt: str = init_data.get("system_prompt") or DEFAULT_SYSTEM_PROMPT
        self.max_iterations: int = int(init_data.get("max_iterations") or 0)
        self.log_level: str = (init_data.get("log_level") or "WARNING").upper()
        self.api_key: str | None = init_data.get("api_key")
        self.base_url: str | None = init_data.get("base_url")

    @classmethod
    def from_env(cls) -> AgentConfig:
        return cls({
            "provider": os.getenv("CHATLOOP_PROVIDER"),
            "model": os.getenv("CHATLOOP_MODEL"),
            "system_prompt": os.getenv("CHATLOOP_SYSTEM_PROMPT"),
            "max_iterations": _load_max_iterations(),
            "log_level": os.getenv("CHATLOOP_LOG_LEVEL"),
        })

    def resolve_model(self) -> Model:
        overrides: dict[str, Any] = {}
        if self.api_key is not None:
            overrides["api_key"] = self.api_key
        if self.base_url is not None:
            overrides["base_url"] = self.base_url
        return get_model(self.provider, self.model, **overrides)
