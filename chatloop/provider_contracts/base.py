"""Base provider contract for provider-specific request/response behavior."""

from __future__ import annotations

from typing import Any

from ..history_normalizer import normalize_history_content
from ..provider_capabilities import (
    ProviderCapabilities,
    get_provider_capabilities,
)
from ..types import ContentBlock, StopReason

_FINISH_REASONS: dict[str, StopReason] = {
    "stop": StopReason.STOP,
    "end_turn": StopReason.STOP,
    "stop_sequence": StopReason.STOP,
    "length": StopReason.LENGTH,
    "max_tokens": StopReason.LENGTH,
    "tool_calls": StopReason.TOOL_CALLS,
    "function_call": StopReason.TOOL_CALLS,
    "tool_use": StopReason.TOOL_CALLS,
    "content_filter": StopReason.ERROR,
    "safety": StopReason.ERROR,
    "error": StopReason.ERROR,
}


class ProviderContract:
    """Default provider contract implementation."""

    finish_reasons: dict[str, StopReason] = _FINISH_REASONS

    def __init__(self, provider: str) -> None:
        key = (provider or "").strip().lower()
        self.provider = key or "unknown"
        self.capabilities: ProviderCapabilities = get_provider_capabilities(self.provider)

    @property
    def token_limit_param(self) -> str:
        return self.capabilities.token_limit_param

    def build_budget_kwargs(self, budget: int) -> dict[str, Any]:
        return {self.token_limit_param: int(budget)}

    def normalize_history_content(
        self, content: str | tuple[ContentBlock, ...]
    ) -> str:
        return normalize_history_content(content)

    def extract_thinking_deltas(self, block: dict[str, Any]) -> list[str]:
        if block.get("type") != "thinking":
            return []
        thinking = str(block.get("thinking", ""))
        return [thinking] if thinking else []

    def extract_text_delta(self, block: dict[str, Any]) -> str:
        if block.get("type") != "text":
            return ""
        return str(block.get("text", ""))

    def extract_chunk_thinking(self, additional_kwargs: dict[str, Any]) -> list[str]:
        """Thinking text carried outside the content blocks of a chunk."""
        return []

    def extract_finish_reason(self, response_metadata: dict[str, Any]) -> str | None:
        raw = response_metadata.get("finish_reason") or response_metadata.get("stop_reason")
        return str(raw) if raw else None

    def map_stop_reason(self, finish_reason: str | None) -> StopReason:
        """Map a backend finish reason onto a stop reason.

        A stream that ends without any finish reason counts as a natural stop.
        Unrecognized reasons are treated as errors.
        """
        if not finish_reason:
            return StopReason.STOP
        return self.finish_reasons.get(finish_reason.strip().lower(), StopReason.ERROR)
