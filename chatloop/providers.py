"""Chat model factory on top of LangChain's ``init_chat_model``."""

from __future__ import annotations

import logging
from typing import Any

from langchain.chat_models import init_chat_model
from langchain_core.language_models.chat_models import BaseChatModel

from .errors import UnsupportedProviderError
from .provider_capabilities import SUPPORTED_PROVIDERS, get_provider_capabilities

logger = logging.getLogger("chatloop")


def create_chat_model(
    provider: str,
    model: str,
    api_key: str,
    *,
    endpoint_url: str | None = None,
    streaming: bool = True,
    temperature: float = 0.0,
    **kwargs: Any,
) -> BaseChatModel:
    """Build the LangChain chat model that serves ``model`` on ``provider``.

    ``endpoint_url`` falls back to the provider's default endpoint, if it has
    one, and is passed under whatever keyword the integration expects. Extra
    ``kwargs`` go straight to the integration.

    Raises:
        UnsupportedProviderError: If ``provider`` is not in
            :data:`SUPPORTED_PROVIDERS`.
    """
    key = provider.lower().strip()
    if key not in SUPPORTED_PROVIDERS:
        raise UnsupportedProviderError(
            f"Unsupported provider: {key!r}. "
            f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    capabilities = get_provider_capabilities(key)

    params: dict[str, Any] = dict(kwargs)
    params.update(api_key=api_key, streaming=streaming, temperature=temperature)
    endpoint = endpoint_url or capabilities.default_base_url
    if endpoint and capabilities.endpoint_param:
        params[capabilities.endpoint_param] = endpoint

    logger.debug("Creating %s chat model %s (endpoint=%s)", key, model, endpoint)
    return init_chat_model(
        model=model,
        model_provider=capabilities.model_provider,
        **params,
    )
