"""DeepSeek provider contract."""

from __future__ import annotations

from typing import Any

from .openai import OpenAIProviderContract


class DeepSeekProviderContract(OpenAIProviderContract):
    """DeepSeek streams reasoning as ``reasoning_content`` beside the text."""

    def extract_chunk_thinking(self, additional_kwargs: dict[str, Any]) -> list[str]:
        reasoning = additional_kwargs.get("reasoning_content")
        if isinstance(reasoning, str) and reasoning:
            return [reasoning]
        return []
