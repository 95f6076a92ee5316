"""Conversion between a Context and the backend's message formats.

Two targets are supported: the OpenAI chat-completions request body (plain
dicts, as sent over the wire) and the LangChain message objects the chat model
integrations consume.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.messages.tool import invalid_tool_call, tool_call
from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from .history_normalizer import normalize_history_content
from .provider_contracts import ProviderContract
from .types import (
    ContentBlock,
    Context,
    Message,
    TextContent,
    ThinkingContent,
    ToolCall,
)


def _decode_arguments(raw: str) -> dict[str, Any] | None:
    """Return the decoded argument object, or None when it is not valid JSON."""
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def tool_definitions(tools: Sequence[BaseTool | dict[str, Any]]) -> list[dict[str, Any]]:
    """Serialize tools as ``{type: "function", function: {...}}`` entries."""
    return [convert_to_openai_tool(t) for t in tools]


# ---------------------------------------------------------------------------
# OpenAI wire format
# ---------------------------------------------------------------------------

def _assistant_to_openai(message: Message) -> dict[str, Any]:
    text = message.text
    payload: dict[str, Any] = {"role": "assistant", "content": text}
    thinking = message.thinking
    if thinking:
        payload["reasoning_content"] = thinking
    if message.tool_calls:
        if not text:
            payload["content"] = None
        payload["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": tc.arguments},
            }
            for tc in message.tool_calls
        ]
    return payload


def to_openai_messages(context: Context) -> list[dict[str, Any]]:
    """Serialize a Context into the chat-completions ``messages`` array."""
    messages: list[dict[str, Any]] = []
    if context.system_prompt:
        messages.append({"role": "system", "content": context.system_prompt})
    for message in context.messages:
        if message.role == "assistant":
            messages.append(_assistant_to_openai(message))
        elif message.role == "tool":
            messages.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.text,
            })
        else:
            messages.append({"role": message.role, "content": message.text})
    return messages


def to_request(
    model_id: str,
    context: Context,
    tools: Sequence[BaseTool | dict[str, Any]] = (),
    tool_choice: str | dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a chat-completions request body for ``context``."""
    request: dict[str, Any] = {
        "model": model_id,
        "messages": to_openai_messages(context),
    }
    if tools:
        request["tools"] = tool_definitions(tools)
        if tool_choice is not None:
            request["tool_choice"] = tool_choice
    return request


def _text_of(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(part.get("text", ""))
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return str(content)


def _assistant_from_openai(entry: dict[str, Any]) -> Message:
    blocks: list[ContentBlock] = []
    reasoning = entry.get("reasoning_content")
    if reasoning:
        blocks.append(ThinkingContent(thinking=str(reasoning)))
    text = _text_of(entry.get("content"))
    if text:
        blocks.append(TextContent(text=text))

    raw_calls = entry.get("tool_calls") or []
    tool_calls: list[ToolCall] = []
    for raw in raw_calls:
        function = raw.get("function") or {}
        arguments = function.get("arguments", "")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        tool_calls.append(ToolCall(
            id=str(raw.get("id", "")),
            name=str(function.get("name", "")),
            arguments=arguments,
        ))
    return Message(
        role="assistant",
        content=tuple(blocks),
        tool_calls=tuple(tool_calls) or None,
    )


def from_openai_messages(messages: Sequence[dict[str, Any]]) -> Context:
    """Parse a chat-completions ``messages`` array back into a Context.

    A leading system message becomes the context's system prompt.
    """
    context = Context()
    entries = list(messages)
    if entries and entries[0].get("role") == "system":
        context.system_prompt = _text_of(entries[0].get("content"))
        entries = entries[1:]
    for entry in entries:
        role = entry.get("role", "")
        if role == "assistant":
            context.append(_assistant_from_openai(entry))
        elif role == "tool":
            context.append(Message.tool_result(
                str(entry.get("tool_call_id", "")),
                _text_of(entry.get("content")),
            ))
        elif role in ("user", "system"):
            context.append(Message(role=role, content=_text_of(entry.get("content"))))
        else:
            raise ValueError(f"Unknown message role: {role!r}")
    return context


# ---------------------------------------------------------------------------
# LangChain messages
# ---------------------------------------------------------------------------

def _assistant_to_langchain(message: Message, contract: ProviderContract | None) -> AIMessage:
    if contract is not None:
        content = contract.normalize_history_content(message.content)
    else:
        content = normalize_history_content(message.content)
    if not message.tool_calls:
        return AIMessage(content=content)

    valid: list[Any] = []
    invalid: list[Any] = []
    for tc in message.tool_calls:
        args = _decode_arguments(tc.arguments)
        if args is None:
            invalid.append(invalid_tool_call(
                name=tc.name,
                args=tc.arguments,
                id=tc.id,
                error="Arguments are not a JSON object",
            ))
        else:
            valid.append(tool_call(name=tc.name, args=args, id=tc.id))
    return AIMessage(content=content, tool_calls=valid, invalid_tool_calls=invalid)


def to_langchain_messages(
    context: Context,
    contract: ProviderContract | None = None,
) -> list[BaseMessage]:
    """Convert a Context to the LangChain message list sent to the chat model."""
    messages: list[BaseMessage] = []
    if context.system_prompt:
        messages.append(SystemMessage(content=context.system_prompt))
    for message in context.messages:
        if message.role == "user":
            messages.append(HumanMessage(content=message.text))
        elif message.role == "assistant":
            messages.append(_assistant_to_langchain(message, contract))
        elif message.role == "tool":
            messages.append(ToolMessage(content=message.text, tool_call_id=message.tool_call_id))
        elif message.role == "system":
            messages.append(SystemMessage(content=message.text))
    return messages
