"""History normalization utilities before LLM replay."""

from __future__ import annotations

from .types import ContentBlock, TextContent


def normalize_history_content(content: str | tuple[ContentBlock, ...]) -> str:
    """Normalize assistant content before sending it back to a provider.

    Only non-empty text blocks survive, joined into a single string. Thinking
    blocks are dropped; OpenAI-compatible endpoints reject them as content.
    """
    if isinstance(content, str):
        return content
    return "".join(
        block.text
        for block in content
        if isinstance(block, TextContent) and block.text.strip()
    )
