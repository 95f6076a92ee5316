"""Cooperative cancellation for model invocations."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger("chatloop")


class CancellationToken:
    """One-shot cancellation flag shared between a caller and an invocation.

    Once cancelled it stays cancelled. Invocations check :attr:`cancelled` at
    entry and at every event boundary, and may ``await wait()`` to race a
    pending backend read against the signal.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Cancellation requested%s", f": {reason}" if reason else "")

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


class CancellationController:
    """Owns a token for a single request and lets the caller trigger it."""

    def __init__(self) -> None:
        self.signal = CancellationToken()

    def abort(self, reason: str | None = None) -> None:
        self.signal.cancel(reason)

    @property
    def aborted(self) -> bool:
        return self.signal.cancelled
