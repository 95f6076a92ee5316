"""Chunk builders and a scripted chat-model backend for tests."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any
from unittest.mock import MagicMock

from langchain_core.messages import AIMessageChunk, ToolCallChunk
from langchain_deepseek import ChatDeepSeek

from chatloop.config import Model


def make_model(**overrides) -> Model:
    """Create a Model with sensible test defaults."""
    return Model(**{
        "provider": "deepseek",
        "id": "deepseek-chat",
        "api_key": "test-key",
        "base_url": "https://api.deepseek.com",
        **overrides,
    })


def text_chunk(text: str) -> AIMessageChunk:
    return AIMessageChunk(content=text, tool_call_chunks=[])


def finish_chunk(reason: str = "stop") -> AIMessageChunk:
    return AIMessageChunk(content="", response_metadata={"finish_reason": reason})


@lru_cache(maxsize=1)
def _deepseek() -> ChatDeepSeek:
    return ChatDeepSeek(model="deepseek-reasoner", api_key="test-key")


def deepseek_chunk(delta: dict[str, Any], finish_reason: str | None = None) -> AIMessageChunk:
    """Convert a raw DeepSeek stream delta exactly as ChatDeepSeek does."""
    raw = {
        "id": "chunk-1",
        "object": "chat.completion.chunk",
        "model": "deepseek-reasoner",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    generation = _deepseek()._convert_chunk_to_generation_chunk(raw, AIMessageChunk, {})
    return generation.message


def reasoning_chunk(text: str) -> AIMessageChunk:
    return deepseek_chunk({"role": "assistant", "content": "", "reasoning_content": text})


def tool_call_chunk(
    name: str, args: dict | str, tc_id: str = "tc-1", index: int = 0
) -> AIMessageChunk:
    """Create an AIMessageChunk containing a single complete tool call."""
    raw = args if isinstance(args, str) else json.dumps(args)
    return AIMessageChunk(
        content="",
        tool_call_chunks=[
            ToolCallChunk(name=name, args=raw, id=tc_id, index=index),
        ],
    )


class FakeBackend:
    """Scripted stand-in for a chat model's ``astream``.

    Each positional arg is the list of chunks for one invocation. Records the
    messages of every call and whether each backend stream was closed.
    """

    def __init__(self, *iterations: list[Any]) -> None:
        self.iterations = list(iterations)
        self.calls: list[list[Any]] = []
        self.closed: list[bool] = []

    async def astream(self, messages):
        index = len(self.calls)
        self.calls.append(list(messages))
        self.closed.append(False)
        chunks = self.iterations[index] if index < len(self.iterations) else [text_chunk("")]
        try:
            for chunk in chunks:
                if isinstance(chunk, BaseException):
                    raise chunk
                if callable(chunk):
                    await chunk()
                    continue
                yield chunk
        finally:
            self.closed[index] = True


def setup_mock_llm(mock_create, backend: FakeBackend) -> MagicMock:
    """Wire up mock_create to return a mock LLM backed by ``backend``."""
    mock_llm = MagicMock()
    mock_llm.astream = backend.astream
    mock_llm.bind_tools = MagicMock(return_value=mock_llm)
    mock_llm.bind = MagicMock(return_value=mock_llm)
    mock_create.return_value = mock_llm
    return mock_llm
