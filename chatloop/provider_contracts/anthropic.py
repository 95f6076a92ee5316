"""Anthropic provider contract."""

from __future__ import annotations

from ..types import StopReason
from .base import _FINISH_REASONS, ProviderContract


class AnthropicProviderContract(ProviderContract):
    """Anthropic-specific stop reasons."""

    finish_reasons = {
        **_FINISH_REASONS,
        "pause_turn": StopReason.STOP,
        "refusal": StopReason.ERROR,
    }
