"""Conversation data model: messages, tool calls, stream events and context."""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from .errors import ContextError

Role = Literal["system", "user", "assistant", "tool"]


def now_ms() -> int:
    return int(time.time() * 1000)


class StopReason(str, enum.Enum):
    """Terminal classification of a finalized assistant message."""

    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    ABORTED = "aborted"
    LENGTH = "length"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TextContent:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ThinkingContent:
    thinking: str
    type: Literal["thinking"] = "thinking"


ContentBlock = Union[TextContent, ThinkingContent]


@dataclass(frozen=True)
class ToolCall:
    """A model request to run a named tool.

    ``arguments`` is the raw payload as the model produced it, normally a
    JSON-encoded object. It is kept verbatim so that a malformed payload can be
    replayed to the backend unchanged.
    """

    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        """Decode ``arguments``; anything that is not a JSON object yields ``{}``."""
        if not self.arguments.strip():
            return {}
        try:
            parsed = json.loads(self.arguments)
        except (json.JSONDecodeError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}


@dataclass(frozen=True)
class Message:
    role: Role
    content: str | tuple[ContentBlock, ...] = ""
    timestamp: int = field(default_factory=now_ms)
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    stop_reason: StopReason | None = None
    error_message: str | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        if self.tool_calls is not None and self.role != "assistant":
            raise ValueError("tool_calls are only valid on assistant messages")
        if self.tool_call_id is not None and self.role != "tool":
            raise ValueError("tool_call_id is only valid on tool messages")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", content=text)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", content=text)

    @classmethod
    def tool_result(cls, tool_call_id: str, text: str) -> Message:
        return cls(role="tool", content=text, tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextContent))

    @property
    def thinking(self) -> str:
        if isinstance(self.content, str):
            return ""
        return "".join(b.thinking for b in self.content if isinstance(b, ThinkingContent))

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class StreamEvent:
    """An event emitted while a model response or an agent turn streams.

    Invoker events: ``start``, ``text_delta``, ``thinking_delta``,
    ``tool_call_delta``, ``done``, ``error``.
    Loop events: ``tool_call``, ``tool_result``, ``message``.
    """

    def __init__(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        self.type = event_type
        self.data = data or {}

    @property
    def delta(self) -> str:
        return str(self.data.get("delta", ""))

    def to_json(self) -> str:
        return json.dumps({"type": self.type, **self.data}, default=str)

    def __repr__(self) -> str:
        return f"StreamEvent({self.type!r}, {self.data!r})"


@dataclass
class Context:
    """Ordered message history plus an optional system prompt.

    Messages are append-only during a turn. :meth:`append` rejects a message
    that would leave the history out of order: every tool call of an assistant
    message is answered by exactly one tool message, directly after it, before
    any other message.
    """

    messages: list[Message] = field(default_factory=list)
    system_prompt: str | None = None

    def pending_tool_call_ids(self) -> list[str]:
        answered: set[str] = set()
        for msg in reversed(self.messages):
            if msg.role == "tool":
                answered.add(msg.tool_call_id or "")
                continue
            if msg.role == "assistant" and msg.tool_calls:
                return [tc.id for tc in msg.tool_calls if tc.id not in answered]
            break
        return []

    def append(self, message: Message) -> Message:
        pending = self.pending_tool_call_ids()
        if message.role == "tool":
            if message.tool_call_id not in pending:
                raise ContextError(
                    f"Tool message {message.tool_call_id!r} does not answer a pending tool call"
                )
        elif pending:
            raise ContextError(
                f"Cannot append {message.role} message while tool calls are pending: "
                + ", ".join(pending)
            )
        self.messages.append(message)
        return message

    def extend(self, messages: list[Message]) -> None:
        for message in messages:
            self.append(message)

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def __len__(self) -> int:
        return len(self.messages)
