"""Single-use async event stream with a finalized result."""

from __future__ import annotations

from typing import AsyncGenerator, AsyncIterator

from .types import Message, StreamEvent


class EventStream:
    """Lazy, finite, non-restartable sequence of events plus a final Message.

    Subclasses implement :meth:`_produce`, an async generator that yields
    events and stores the finalized message with :meth:`_finish` before it
    returns. Iterating the stream drives the generator; :meth:`result` drains
    whatever is left and returns the final message.
    """

    def __init__(self) -> None:
        self._source: AsyncGenerator[StreamEvent, None] = self._guarded()
        self._iterated = False
        self._result_taken = False
        self._final: Message | None = None
        self._error: BaseException | None = None

    def _produce(self) -> AsyncGenerator[StreamEvent, None]:
        raise NotImplementedError

    def _finish(self, message: Message) -> None:
        self._final = message

    async def _guarded(self) -> AsyncGenerator[StreamEvent, None]:
        source = self._produce()
        try:
            async for event in source:
                yield event
        except Exception as exc:
            self._error = exc
            raise
        finally:
            await source.aclose()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._iterated:
            raise RuntimeError("Event stream can only be iterated once")
        self._iterated = True
        return self._source

    async def result(self) -> Message:
        """Return the finalized message, draining remaining events first."""
        if self._result_taken:
            raise RuntimeError("result() can only be called once per stream")
        self._result_taken = True
        if self._error is None:
            async for _ in self._source:
                pass
        if self._error is not None:
            raise self._error
        if self._final is None:
            raise RuntimeError("Event stream ended without a final message")
        return self._final

    async def aclose(self) -> None:
        """Stop producing events and release the backend without finalizing.

        A later :meth:`result` raises unless a final message already exists.
        """
        await self._source.aclose()
