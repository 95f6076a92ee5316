"""Exception types raised by the runtime."""

from __future__ import annotations


class ChatLoopError(Exception):
    """Base class for runtime errors."""


class ContextError(ChatLoopError):
    """A message would break the ordering of a conversation context."""


class UnknownToolError(ChatLoopError, KeyError):
    """Dispatch was asked for a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool: {self.name}"


class TransportFailure(ChatLoopError):
    """The backend connection failed before a terminal signal arrived."""


class MaxIterationsExceeded(ChatLoopError):
    """The tool-call loop hit its configured iteration ceiling."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Agent exceeded maximum of {max_iterations} iterations")
        self.max_iterations = max_iterations


class UnsupportedProviderError(ChatLoopError, ValueError):
    """No chat model integration exists for the requested provider."""
