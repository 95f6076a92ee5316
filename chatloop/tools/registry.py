"""Name-keyed registry of tool executors."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

from langchain_core.tools import BaseTool

from ..codec import tool_definitions
from ..errors import UnknownToolError
from .result_schema import make_tool_error, normalize_tool_result

logger = logging.getLogger("chatloop")


class ToolRegistry:
    """Maps tool names to LangChain tools.

    Each tool carries its own description and pydantic argument schema; the
    registry advertises them to the model and dispatches calls by name.
    """

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> BaseTool:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name!r}")
        self._tools[tool.name] = tool
        logger.debug("Registered tool %s", tool.name)
        return tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def definitions(self) -> list[dict[str, Any]]:
        """OpenAI ``tools`` entries for every registered tool."""
        return tool_definitions(self.tools())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[BaseTool]:
        return iter(self._tools.values())

    async def execute(self, name: str, args: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """Execute a tool by name and return (result, is_error).

        Result is always a normalized structured envelope; executor failures,
        argument validation included, become error envelopes.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        logger.info("Dispatching tool %s", name)
        try:
            result = await tool.ainvoke(args)
            normalized = normalize_tool_result(name, result)
            is_error = not bool(normalized.get("success", True))
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            normalized = make_tool_error(kind=name, error=f"Tool error: {exc}")
            is_error = True
        return normalized, is_error

    async def dispatch(self, name: str, args: dict[str, Any]) -> str:
        """Run tool ``name`` with ``args`` and return its result text."""
        result, _ = await self.execute(name, args)
        return str(result.get("text", ""))
