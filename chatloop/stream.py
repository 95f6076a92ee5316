"""Streaming and buffered model invocation with cooperative cancellation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Sequence

import httpx
import openai
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessageChunk

from .cancellation import CancellationToken
from .codec import to_langchain_messages
from .config import Model
from .errors import TransportFailure
from .event_stream import EventStream
from .provider_contracts import ProviderContract, get_provider_contract
from .providers import create_chat_model
from .types import (
    ContentBlock,
    Context,
    Message,
    StopReason,
    StreamEvent,
    TextContent,
    ThinkingContent,
    ToolCall,
)

logger = logging.getLogger("chatloop")

_REPLACEMENT_CHAR = "\ufffd"

# Faults below the protocol level: nothing terminal came back from the backend.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    httpx.TransportError,
    openai.APIConnectionError,
)


@dataclass
class StreamOptions:
    signal: CancellationToken | None = None
    tools: Sequence[Any] = ()
    tool_choice: str | dict[str, Any] | None = None
    max_tokens: int | None = None
    temperature: float | None = None


def sanitize_delta(text: str) -> str:
    """Strip U+FFFD replacement characters from streaming deltas."""
    if _REPLACEMENT_CHAR not in text:
        return text
    logger.warning("Stripped %d U+FFFD from delta: %r",
                   text.count(_REPLACEMENT_CHAR), text[:200])
    return text.replace(_REPLACEMENT_CHAR, "")


class _Aborted(Exception):
    pass


_EXHAUSTED = object()


async def _anext(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


async def _next_chunk(iterator: AsyncIterator[Any], signal: CancellationToken | None) -> Any:
    """Await the next backend chunk, giving up as soon as ``signal`` fires.

    Returns ``_EXHAUSTED`` when the backend has no more chunks and raises
    ``_Aborted`` when cancellation wins the race.
    """
    if signal is None:
        return await _anext(iterator)
    if signal.cancelled:
        raise _Aborted()

    read = asyncio.ensure_future(_anext(iterator))
    watch = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({read, watch}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watch.cancel()
    if read.done() and not signal.cancelled:
        return read.result()

    # A chunk that lands after cancellation is discarded along with any error.
    read.cancel()
    await asyncio.wait({read})
    if not read.cancelled():
        read.exception()
    raise _Aborted()


async def _close_backend(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if not callable(aclose):
        return
    try:
        await aclose()
    except Exception:
        logger.warning("Error while closing backend stream", exc_info=True)


class _MessageAssembler:
    """Accumulates deltas into content blocks and tool calls."""

    def __init__(self) -> None:
        self.blocks: list[list[str]] = []  # [kind, text]
        self.tool_calls: list[dict[str, str]] = []
        self.finish_reason: str | None = None

    def add_text(self, delta: str) -> None:
        self._append("text", delta)

    def add_thinking(self, delta: str) -> None:
        self._append("thinking", delta)

    def _append(self, kind: str, delta: str) -> None:
        if self.blocks and self.blocks[-1][0] == kind:
            self.blocks[-1][1] += delta
        else:
            self.blocks.append([kind, delta])

    def add_tool_call_chunk(self, chunk: Any) -> dict[str, Any]:
        """Merge a streamed tool-call fragment; returns the delta event payload."""

        def _get(obj: Any, key: str, default: Any = None) -> Any:
            if isinstance(obj, dict):
                return obj.get(key, default)
            return getattr(obj, key, default)

        idx = _get(chunk, "index")
        if idx is None:
            idx = 0

        while len(self.tool_calls) <= idx:
            self.tool_calls.append({"id": "", "name": "", "arguments": ""})

        tc = self.tool_calls[idx]
        chunk_id = _get(chunk, "id")
        if chunk_id:
            tc["id"] = chunk_id
        chunk_name = _get(chunk, "name")
        if chunk_name:
            tc["name"] = chunk_name
        chunk_args = _get(chunk, "args") or ""
        if chunk_args:
            tc["arguments"] += chunk_args
        return {"index": idx, "id": tc["id"], "name": tc["name"], "delta": chunk_args}

    def content(self) -> tuple[ContentBlock, ...]:
        return tuple(
            TextContent(text=text) if kind == "text" else ThinkingContent(thinking=text)
            for kind, text in self.blocks
            if text
        )

    def completed_tool_calls(self) -> tuple[ToolCall, ...]:
        """Finished tool calls, each with an id unique within the message."""
        calls: list[ToolCall] = []
        seen: set[str] = set()
        # Entries without a name come from index gaps in the stream.
        for tc in self.tool_calls:
            if not tc["name"]:
                continue
            call_id = tc["id"]
            if not call_id or call_id in seen:
                if call_id:
                    logger.warning("Duplicate tool call id %s, assigning a fresh one", call_id)
                call_id = f"call_{uuid.uuid4().hex}"
            seen.add(call_id)
            calls.append(ToolCall(id=call_id, name=tc["name"], arguments=tc["arguments"]))
        return tuple(calls)


class StreamHandle(EventStream):
    """One model request, consumed as events and finalized with ``result()``."""

    def __init__(self, model: Model, context: Context, options: StreamOptions) -> None:
        self.model = model
        self.context = context
        self.options = options
        self.contract: ProviderContract = get_provider_contract(model.provider)
        self._assembler = _MessageAssembler()
        super().__init__()

    def _build_llm(self) -> BaseChatModel:
        llm = create_chat_model(
            provider=self.model.provider,
            model=self.model.id,
            api_key=self.model.api_key,
            endpoint_url=self.model.base_url,
            streaming=True,
            temperature=(
                self.options.temperature
                if self.options.temperature is not None
                else self.model.temperature
            ),
        )
        if self.options.tools:
            bind_kwargs: dict[str, Any] = {}
            if self.options.tool_choice is not None:
                bind_kwargs["tool_choice"] = self.options.tool_choice
            llm = llm.bind_tools(list(self.options.tools), **bind_kwargs)
        if self.options.max_tokens:
            llm = llm.bind(**self.contract.build_budget_kwargs(self.options.max_tokens))
        return llm

    def _finalize(self, stop_reason: StopReason, error_message: str | None = None) -> Message:
        tool_calls: tuple[ToolCall, ...] = ()
        if stop_reason not in (StopReason.ABORTED, StopReason.ERROR):
            tool_calls = self._assembler.completed_tool_calls()
            if tool_calls:
                stop_reason = StopReason.TOOL_CALLS
        message = Message(
            role="assistant",
            content=self._assembler.content(),
            tool_calls=tool_calls or None,
            stop_reason=stop_reason,
            error_message=error_message,
            model=self.model.id,
        )
        self._finish(message)
        logger.info(
            "Invocation finished (model=%s, stop_reason=%s, tool_calls=%d)",
            self.model.id, stop_reason, len(tool_calls),
        )
        return message

    def _chunk_events(self, chunk: AIMessageChunk) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        asm = self._assembler

        for thinking_raw in self.contract.extract_chunk_thinking(chunk.additional_kwargs or {}):
            thinking = sanitize_delta(thinking_raw)
            if thinking:
                asm.add_thinking(thinking)
                events.append(StreamEvent("thinking_delta", {"delta": thinking}))

        if isinstance(chunk.content, str):
            delta = sanitize_delta(chunk.content)
            if delta:
                asm.add_text(delta)
                events.append(StreamEvent("text_delta", {"delta": delta}))
        elif isinstance(chunk.content, list):
            for block in chunk.content:
                if isinstance(block, dict):
                    for thinking_raw in self.contract.extract_thinking_deltas(block):
                        thinking = sanitize_delta(thinking_raw)
                        if thinking:
                            asm.add_thinking(thinking)
                            events.append(StreamEvent("thinking_delta", {"delta": thinking}))
                    delta = sanitize_delta(self.contract.extract_text_delta(block))
                else:
                    delta = sanitize_delta(str(block))
                if delta:
                    asm.add_text(delta)
                    events.append(StreamEvent("text_delta", {"delta": delta}))

        for tc_chunk in chunk.tool_call_chunks or ():
            events.append(StreamEvent("tool_call_delta", asm.add_tool_call_chunk(tc_chunk)))

        finish_reason = self.contract.extract_finish_reason(chunk.response_metadata or {})
        if finish_reason:
            asm.finish_reason = finish_reason
        return events

    async def _produce(self) -> AsyncGenerator[StreamEvent, None]:
        signal = self.options.signal
        if signal is not None and signal.cancelled:
            logger.info("Invocation aborted before request (model=%s)", self.model.id)
            self._finalize(StopReason.ABORTED)
            return

        llm = self._build_llm()
        messages = to_langchain_messages(self.context, self.contract)
        logger.info(
            "Invoking model %s/%s with %d messages",
            self.model.provider, self.model.id, len(messages),
        )
        backend = llm.astream(messages)
        try:
            yield StreamEvent("start", {"model": self.model.id})
            while True:
                try:
                    chunk = await _next_chunk(backend, signal)
                except _Aborted:
                    logger.info("Invocation aborted mid-stream (model=%s)", self.model.id)
                    self._finalize(StopReason.ABORTED)
                    return
                except TRANSPORT_ERRORS as exc:
                    raise TransportFailure(f"Backend connection failed: {exc}") from exc
                except Exception as exc:
                    logger.error("Backend error during stream: %s", exc)
                    message = self._finalize(StopReason.ERROR, str(exc))
                    yield StreamEvent("error", {
                        "stop_reason": str(message.stop_reason),
                        "message": str(exc),
                    })
                    return

                if chunk is _EXHAUSTED:
                    break
                if not isinstance(chunk, AIMessageChunk):
                    continue
                for event in self._chunk_events(chunk):
                    yield event
                    if signal is not None and signal.cancelled:
                        logger.info("Invocation aborted mid-stream (model=%s)", self.model.id)
                        self._finalize(StopReason.ABORTED)
                        return

            message = self._finalize(self.contract.map_stop_reason(self._assembler.finish_reason))
            yield StreamEvent("done", {"stop_reason": str(message.stop_reason)})
        finally:
            await _close_backend(backend)


def stream(
    model: Model,
    context: Context,
    options: StreamOptions | None = None,
) -> StreamHandle:
    """Open a streaming invocation of ``model`` over ``context``.

    Nothing is sent until the handle is iterated or ``result()`` is awaited.
    """
    return StreamHandle(model, context, options or StreamOptions())


async def complete(
    model: Model,
    context: Context,
    options: StreamOptions | None = None,
) -> Message:
    """Invoke ``model`` and return only the finalized message."""
    return await stream(model, context, options).result()
