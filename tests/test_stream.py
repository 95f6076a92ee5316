"""Tests for the streaming and buffered invokers."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from chatloop.cancellation import CancellationController
from chatloop.errors import TransportFailure
from chatloop.stream import StreamOptions, complete, sanitize_delta, stream
from chatloop.types import (
    Context,
    Message,
    StopReason,
    TextContent,
    ThinkingContent,
)

from .helpers import (
    FakeBackend,
    deepseek_chunk,
    finish_chunk,
    make_model,
    reasoning_chunk,
    setup_mock_llm,
    text_chunk,
    tool_call_chunk,
)


def _context(text: str = "Hello") -> Context:
    return Context(
        messages=[Message.user(text)],
        system_prompt="You are a helpful assistant.",
    )


def _names_chunks(count: int = 50) -> list:
    return [text_chunk(f"Name{i}, ") for i in range(count)] + [finish_chunk("stop")]


class TestSanitizeDelta:
    def test_plain_text_untouched(self):
        assert sanitize_delta("hello") == "hello"

    def test_strips_replacement_chars(self):
        assert sanitize_delta("he\ufffdllo\ufffd") == "hello"


class TestBufferedInvoker:
    @patch("chatloop.stream.create_chat_model")
    async def test_success_stops_with_content(self, mock_create):
        backend = FakeBackend([text_chunk("Hi "), text_chunk("there!"), finish_chunk("stop")])
        setup_mock_llm(mock_create, backend)

        msg = await complete(make_model(), _context())

        assert msg.role == "assistant"
        assert msg.stop_reason == "stop"
        assert msg.stop_reason is StopReason.STOP
        assert len(msg.content) > 0
        assert msg.text == "Hi there!"
        assert msg.tool_calls is None
        assert msg.model == "deepseek-chat"

    @patch("chatloop.stream.create_chat_model")
    async def test_sends_system_prompt_and_history(self, mock_create):
        backend = FakeBackend([text_chunk("ok")])
        setup_mock_llm(mock_create, backend)

        await complete(make_model(), _context("What is 15 + 27?"))

        sent = backend.calls[0]
        assert isinstance(sent[0], SystemMessage)
        assert sent[0].content == "You are a helpful assistant."
        assert isinstance(sent[1], HumanMessage)
        assert sent[1].content == "What is 15 + 27?"

    @patch("chatloop.stream.create_chat_model")
    async def test_missing_finish_reason_is_stop(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("done")]))
        msg = await complete(make_model(), _context())
        assert msg.stop_reason == StopReason.STOP

    @patch("chatloop.stream.create_chat_model")
    async def test_length_finish_reason(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("cut"), finish_chunk("length")]))
        msg = await complete(make_model(), _context())
        assert msg.stop_reason == StopReason.LENGTH
        assert msg.text == "cut"

    @patch("chatloop.stream.create_chat_model")
    async def test_content_filter_is_error(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([finish_chunk("content_filter")]))
        msg = await complete(make_model(), _context())
        assert msg.stop_reason == StopReason.ERROR

    @patch("chatloop.stream.create_chat_model")
    async def test_tool_call_deltas_give_tool_calls(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            tool_call_chunk("calculate_expression", {"expression": "15 + 27"}, tc_id="call-1"),
            finish_chunk("tool_calls"),
        ]))
        msg = await complete(make_model(), _context())

        assert msg.stop_reason == StopReason.TOOL_CALLS
        assert msg.tool_calls is not None
        assert len(msg.tool_calls) == 1
        tc = msg.tool_calls[0]
        assert tc.id == "call-1"
        assert tc.name == "calculate_expression"
        assert tc.parse_arguments() == {"expression": "15 + 27"}

    @patch("chatloop.stream.create_chat_model")
    async def test_tool_calls_win_over_stop_finish_reason(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            tool_call_chunk("calculate_expression", {"expression": "1"}),
            finish_chunk("stop"),
        ]))
        msg = await complete(make_model(), _context())
        assert msg.stop_reason == StopReason.TOOL_CALLS

    @patch("chatloop.stream.create_chat_model")
    async def test_binds_tools_and_token_limit(self, mock_create, registry):
        mock_llm = setup_mock_llm(mock_create, FakeBackend([text_chunk("ok")]))
        options = StreamOptions(tools=registry.tools(), tool_choice="auto", max_tokens=512)

        await complete(make_model(), _context(), options)

        mock_llm.bind_tools.assert_called_once()
        args, kwargs = mock_llm.bind_tools.call_args
        assert [t.name for t in args[0]] == ["calculate_expression"]
        assert kwargs == {"tool_choice": "auto"}
        mock_llm.bind.assert_called_once_with(max_tokens=512)

    @patch("chatloop.stream.create_chat_model")
    async def test_no_tools_means_no_binding(self, mock_create):
        mock_llm = setup_mock_llm(mock_create, FakeBackend([text_chunk("ok")]))
        await complete(make_model(), _context())
        mock_llm.bind_tools.assert_not_called()
        mock_llm.bind.assert_not_called()

    @patch("chatloop.stream.create_chat_model")
    async def test_model_passed_to_factory(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("ok")]))
        await complete(make_model(temperature=0.3), _context())
        mock_create.assert_called_once_with(
            provider="deepseek",
            model="deepseek-chat",
            api_key="test-key",
            endpoint_url="https://api.deepseek.com",
            streaming=True,
            temperature=0.3,
        )

    @patch("chatloop.stream.create_chat_model")
    async def test_temperature_option_overrides_model(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("ok")]))
        await complete(make_model(temperature=0.3), _context(), StreamOptions(temperature=1.0))
        assert mock_create.call_args.kwargs["temperature"] == 1.0


class TestStreamEvents:
    @patch("chatloop.stream.create_chat_model")
    async def test_events_in_backend_order(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            reasoning_chunk("Let me think. "),
            text_chunk("The answer "),
            text_chunk("is 42."),
            finish_chunk("stop"),
        ]))
        handle = stream(make_model(), _context())
        events = [event async for event in handle]

        assert [e.type for e in events] == [
            "start", "thinking_delta", "text_delta", "text_delta", "done",
        ]
        assert events[1].delta == "Let me think. "
        assert events[-1].data == {"stop_reason": "stop"}

        msg = await handle.result()
        assert msg.content == (
            ThinkingContent(thinking="Let me think. "),
            TextContent(text="The answer is 42."),
        )
        assert msg.thinking == "Let me think. "

    @patch("chatloop.stream.create_chat_model")
    async def test_list_content_blocks(self, mock_create):
        from langchain_core.messages import AIMessageChunk

        setup_mock_llm(mock_create, FakeBackend([
            AIMessageChunk(content=[
                {"type": "thinking", "thinking": "hmm"},
                {"type": "text", "text": "Hello"},
            ]),
        ]))
        msg = await complete(make_model(provider="anthropic"), _context())
        assert msg.thinking == "hmm"
        assert msg.text == "Hello"

    @patch("chatloop.stream.create_chat_model")
    async def test_tool_call_delta_events(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            tool_call_chunk("calculate_expression", '{"expr', tc_id="c1"),
            tool_call_chunk("", 'ession": "2^10"}', tc_id=""),
        ]))
        handle = stream(make_model(), _context())
        deltas = [e for e in [event async for event in handle] if e.type == "tool_call_delta"]

        assert [d.data["delta"] for d in deltas] == ['{"expr', 'ession": "2^10"}']
        assert deltas[1].data["id"] == "c1"
        msg = await handle.result()
        assert msg.tool_calls[0].arguments == '{"expression": "2^10"}'

    @patch("chatloop.stream.create_chat_model")
    async def test_result_without_iterating_drives_stream(self, mock_create):
        backend = FakeBackend([text_chunk("buffered"), finish_chunk("stop")])
        setup_mock_llm(mock_create, backend)

        handle = stream(make_model(), _context())
        assert backend.calls == []
        msg = await handle.result()

        assert msg.text == "buffered"
        assert backend.closed == [True]

    @patch("chatloop.stream.create_chat_model")
    async def test_result_after_partial_iteration_drains(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("a"), text_chunk("b"), text_chunk("c")]))
        handle = stream(make_model(), _context())
        async for event in handle:
            if event.type == "text_delta":
                break
        msg = await handle.result()
        assert msg.text == "abc"

    @patch("chatloop.stream.create_chat_model")
    async def test_result_only_once(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("x")]))
        handle = stream(make_model(), _context())
        await handle.result()
        with pytest.raises(RuntimeError):
            await handle.result()

    @patch("chatloop.stream.create_chat_model")
    async def test_not_restartable(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("x")]))
        handle = stream(make_model(), _context())
        _ = [event async for event in handle]
        with pytest.raises(RuntimeError):
            async for _ in handle:
                pass

    @patch("chatloop.stream.create_chat_model")
    async def test_aclose_mid_stream_closes_backend(self, mock_create):
        backend = FakeBackend(_names_chunks())
        setup_mock_llm(mock_create, backend)
        handle = stream(make_model(), _context())

        async for event in handle:
            if event.type == "text_delta":
                break
        await handle.aclose()

        assert backend.closed == [True]
        with pytest.raises(RuntimeError, match="without a final message"):
            await handle.result()

    @patch("chatloop.stream.create_chat_model")
    async def test_aclose_after_completion_keeps_result(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("done")]))
        handle = stream(make_model(), _context())
        _ = [event async for event in handle]
        await handle.aclose()
        assert (await handle.result()).text == "done"


class TestCancellation:
    @patch("chatloop.stream.create_chat_model")
    async def test_abort_mid_stream_keeps_partial_text(self, mock_create):
        backend = FakeBackend(_names_chunks(), [text_chunk("Alice, Bob"), finish_chunk("stop")])
        setup_mock_llm(mock_create, backend)
        context = Context(
            messages=[Message.user("What is 15 + 27? Then list 50 first names.")],
            system_prompt="You are a helpful assistant.",
        )

        controller = CancellationController()
        handle = stream(make_model(), context, StreamOptions(signal=controller.signal))
        text = ""
        seen_after_abort = 0
        async for event in handle:
            if controller.aborted:
                seen_after_abort += 1
            if event.type in ("text_delta", "thinking_delta"):
                text += event.delta
            if len(text) >= 50:
                controller.abort()
        msg = await handle.result()

        assert seen_after_abort == 0
        assert msg.stop_reason == "aborted"
        assert len(msg.content) > 0
        assert msg.text == text
        assert len(msg.text) >= 50
        assert backend.closed[0] is True

        context.append(msg)
        context.append(Message.user("Please continue, but only generate 5 names."))
        follow_up = await complete(make_model(), context)
        assert follow_up.stop_reason == "stop"
        assert len(follow_up.content) > 0

        replayed = backend.calls[1]
        assert isinstance(replayed[2], AIMessage)
        assert replayed[2].content == text

    @patch("chatloop.stream.create_chat_model")
    async def test_abort_during_reasoning_keeps_thinking(self, mock_create):
        backend = FakeBackend([
            reasoning_chunk("The user wants fifty names. "),
            reasoning_chunk("I should pick common ones. "),
            deepseek_chunk({"content": "Alice, "}),
        ])
        setup_mock_llm(mock_create, backend)
        controller = CancellationController()

        handle = stream(make_model(id="deepseek-reasoner"), _context(), StreamOptions(signal=controller.signal))
        async for event in handle:
            if event.type == "thinking_delta":
                controller.abort()
        msg = await handle.result()

        assert msg.stop_reason == StopReason.ABORTED
        assert msg.content == (ThinkingContent(thinking="The user wants fifty names. "),)
        assert msg.text == ""
        assert backend.closed[0] is True

    @patch("chatloop.stream.create_chat_model")
    async def test_immediate_abort_makes_no_backend_call(self, mock_create):
        backend = FakeBackend([text_chunk("never")])
        setup_mock_llm(mock_create, backend)
        controller = CancellationController()
        controller.abort()

        handle = stream(make_model(), _context(), StreamOptions(signal=controller.signal))
        events = [event async for event in handle]
        msg = await handle.result()

        assert events == []
        assert msg.stop_reason == "aborted"
        assert msg.content == ()
        assert backend.calls == []
        mock_create.assert_not_called()

    @patch("chatloop.stream.create_chat_model")
    async def test_immediate_abort_is_idempotent(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend())
        context = _context()
        before = list(context.messages)

        results = []
        for _ in range(2):
            controller = CancellationController()
            controller.abort()
            results.append(await complete(
                make_model(), context, StreamOptions(signal=controller.signal),
            ))

        assert [(m.stop_reason, m.content) for m in results] == [
            (StopReason.ABORTED, ()),
            (StopReason.ABORTED, ()),
        ]
        assert context.messages == before
        mock_create.assert_not_called()

    @patch("chatloop.stream.create_chat_model")
    async def test_abort_while_waiting_for_chunk(self, mock_create):
        async def stall():
            await asyncio.sleep(10)

        backend = FakeBackend([text_chunk("partial"), stall, text_chunk("never")])
        setup_mock_llm(mock_create, backend)
        controller = CancellationController()

        handle = stream(make_model(), _context(), StreamOptions(signal=controller.signal))

        async def cancel_soon():
            await asyncio.sleep(0.05)
            controller.abort()

        canceller = asyncio.create_task(cancel_soon())
        msg = await asyncio.wait_for(handle.result(), timeout=2)
        await canceller

        assert msg.stop_reason == StopReason.ABORTED
        assert msg.text == "partial"
        assert backend.closed == [True]

    @patch("chatloop.stream.create_chat_model")
    async def test_aborted_message_drops_partial_tool_calls(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            tool_call_chunk("calculate_expression", '{"expression": "1 +'),
            text_chunk("never"),
        ]))
        controller = CancellationController()
        handle = stream(make_model(), _context(), StreamOptions(signal=controller.signal))
        async for event in handle:
            if event.type == "tool_call_delta":
                controller.abort()
        msg = await handle.result()

        assert msg.stop_reason == StopReason.ABORTED
        assert msg.tool_calls is None


class TestBackendFailures:
    @patch("chatloop.stream.create_chat_model")
    async def test_backend_error_becomes_error_stop_reason(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([
            text_chunk("Partial "),
            RuntimeError("upstream returned an error chunk"),
        ]))
        handle = stream(make_model(), _context())
        events = [event async for event in handle]
        msg = await handle.result()

        assert events[-1].type == "error"
        assert events[-1].data["message"] == "upstream returned an error chunk"
        assert msg.stop_reason == StopReason.ERROR
        assert msg.error_message == "upstream returned an error chunk"
        assert msg.text == "Partial "

    @pytest.mark.parametrize("exc", [
        ConnectionRefusedError("refused"),
        httpx.ConnectError("connect failed"),
        openai.APIConnectionError(request=httpx.Request("POST", "https://api.deepseek.com")),
    ])
    @patch("chatloop.stream.create_chat_model")
    async def test_transport_fault_propagates(self, mock_create, exc):
        backend = FakeBackend([exc])
        setup_mock_llm(mock_create, backend)

        with pytest.raises(TransportFailure) as info:
            await complete(make_model(), _context())
        assert info.value.__cause__ is exc
        assert backend.closed == [True]

    @patch("chatloop.stream.create_chat_model")
    async def test_transport_fault_surfaces_while_iterating(self, mock_create):
        setup_mock_llm(mock_create, FakeBackend([text_chunk("x"), httpx.ReadError("reset")]))
        handle = stream(make_model(), _context())
        with pytest.raises(TransportFailure):
            async for _ in handle:
                pass
        with pytest.raises(TransportFailure):
            await handle.result()
