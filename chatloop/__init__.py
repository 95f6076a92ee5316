"""Conversational agent runtime with streaming, cancellation and tool calling."""

from .cancellation import CancellationController, CancellationToken
from .config import Model, get_model
from .errors import (
    ChatLoopError,
    ContextError,
    MaxIterationsExceeded,
    TransportFailure,
    UnknownToolError,
    UnsupportedProviderError,
)
from .loop import ToolCallLoop, TurnHandle
from .stream import StreamHandle, StreamOptions, complete, stream
from .tools import ToolRegistry
from .types import (
    Context,
    Message,
    StopReason,
    StreamEvent,
    TextContent,
    ThinkingContent,
    ToolCall,
)

__all__ = [
    "CancellationController",
    "CancellationToken",
    "ChatLoopError",
    "Context",
    "ContextError",
    "MaxIterationsExceeded",
    "Message",
    "Model",
    "StopReason",
    "StreamEvent",
    "StreamHandle",
    "StreamOptions",
    "TextContent",
    "ThinkingContent",
    "ToolCall",
    "ToolCallLoop",
    "ToolRegistry",
    "TransportFailure",
    "TurnHandle",
    "UnknownToolError",
    "UnsupportedProviderError",
    "complete",
    "get_model",
    "stream",
]
