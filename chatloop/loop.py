"""Multi-step tool-calling loop over a conversation context."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator

from .cancellation import CancellationToken
from .config import Model
from .errors import MaxIterationsExceeded
from .event_stream import EventStream
from .stream import StreamOptions, stream
from .tools.registry import ToolRegistry
from .tools.result_schema import make_tool_error
from .types import Context, Message, StreamEvent, ToolCall

logger = logging.getLogger("chatloop")


def parse_tool_arguments(tool_call: ToolCall) -> dict[str, Any]:
    """Decode a tool call's arguments, falling back to ``{}`` when malformed."""
    args = tool_call.parse_arguments()
    if not args and tool_call.arguments.strip() not in ("", "{}"):
        logger.warning(
            "Unparseable arguments for tool call %s (%s): %r; using empty arguments",
            tool_call.id, tool_call.name, tool_call.arguments[:200],
        )
    return args


class TurnHandle(EventStream):
    """One agent turn: model events interleaved with tool activity.

    Besides the invoker's events this yields ``tool_call`` and
    ``tool_result`` around each dispatch and ``message`` for every message
    appended to the context. ``result()`` returns the final assistant message.
    """

    def __init__(
        self,
        loop: ToolCallLoop,
        context: Context,
        user_input: str,
        signal: CancellationToken | None,
        model: Model | None = None,
    ) -> None:
        self.loop = loop
        self.context = context
        self.user_input = user_input
        self.signal = signal
        self.model = model or loop.model
        super().__init__()

    def _append(self, message: Message) -> StreamEvent:
        self.context.append(message)
        return StreamEvent("message", {"role": message.role, "message": message})

    async def _produce(self) -> AsyncGenerator[StreamEvent, None]:
        loop = self.loop
        yield self._append(Message.user(self.user_input))

        iteration = 0
        while loop.max_iterations <= 0 or iteration < loop.max_iterations:
            iteration += 1
            logger.info("Agent iteration %d", iteration)

            handle = stream(self.model, self.context, loop.stream_options(self.signal))
            try:
                async for event in handle:
                    yield event
            finally:
                await handle.aclose()
            message = await handle.result()
            yield self._append(message)

            if not message.tool_calls:
                self._finish(message)
                return

            for tc in message.tool_calls:
                args = parse_tool_arguments(tc)
                yield StreamEvent("tool_call", {
                    "tool_call_id": tc.id,
                    "tool_name": tc.name,
                    "tool_input": args,
                })

                if tc.name in loop.registry:
                    result, is_error = await loop.registry.execute(tc.name, args)
                else:
                    logger.warning("Model requested unknown tool %s", tc.name)
                    result = make_tool_error(kind=tc.name, error=f"Unknown tool: {tc.name}")
                    is_error = True

                text = str(result.get("text", ""))
                yield StreamEvent("tool_result", {
                    "tool_call_id": tc.id,
                    "result": text,
                    "is_error": is_error,
                })
                yield self._append(Message.tool_result(tc.id, text))

        raise MaxIterationsExceeded(loop.max_iterations)


class ToolCallLoop:
    """Runs turns of model invocation and tool dispatch until a final answer.

    There is no iteration ceiling unless ``max_iterations`` is positive.
    """

    def __init__(
        self,
        model: Model,
        registry: ToolRegistry | None = None,
        *,
        max_iterations: int | None = None,
        tool_choice: str | dict[str, Any] | None = "auto",
        max_tokens: int | None = None,
    ) -> None:
        self.model = model
        self.registry = registry if registry is not None else ToolRegistry()
        self.max_iterations = max_iterations or 0
        self.tool_choice = tool_choice
        self.max_tokens = max_tokens

    def stream_options(self, signal: CancellationToken | None) -> StreamOptions:
        tools = self.registry.tools()
        return StreamOptions(
            signal=signal,
            tools=tools,
            tool_choice=self.tool_choice if tools else None,
            max_tokens=self.max_tokens,
        )

    def stream(
        self,
        context: Context,
        user_input: str,
        signal: CancellationToken | None = None,
        *,
        model: Model | None = None,
    ) -> TurnHandle:
        """Start a turn whose events can be consumed as they happen.

        ``model`` overrides the loop's model for this turn only.
        """
        return TurnHandle(self, context, user_input, signal, model)

    async def run(
        self,
        context: Context,
        user_input: str,
        signal: CancellationToken | None = None,
        *,
        model: Model | None = None,
    ) -> Message:
        """Run a full turn and return the final assistant message.

        ``context`` is mutated in place: the user message, every intermediate
        assistant/tool exchange and the final answer are appended to it.
        """
        return await self.stream(context, user_input, signal, model=model).result()
