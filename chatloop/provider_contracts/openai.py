"""OpenAI provider contract."""

from __future__ import annotations

from typing import Any

from .base import ProviderContract


class OpenAIProviderContract(ProviderContract):
    """Understands the Responses API block types as well as plain text."""

    def extract_thinking_deltas(self, block: dict[str, Any]) -> list[str]:
        if block.get("type") != "reasoning":
            return super().extract_thinking_deltas(block)
        summary = block.get("summary")
        parts = [s.get("text", "") for s in summary if isinstance(s, dict)] if isinstance(summary, list) else []
        parts.append(block.get("reasoning", ""))
        return [str(p) for p in parts if p]

    def extract_text_delta(self, block: dict[str, Any]) -> str:
        if block.get("type") == "output_text":
            return str(block.get("text", ""))
        return super().extract_text_delta(block)
