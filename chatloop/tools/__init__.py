"""Tool registry and built-in tools."""

from __future__ import annotations

from langchain_core.tools import BaseTool

from .calculator import CalculateExpressionTool
from .registry import ToolRegistry

ALL_TOOLS = [
    CalculateExpressionTool,
]


def create_all_tools() -> list[BaseTool]:
    """Create instances of all built-in tools."""
    return [tool_cls() for tool_cls in ALL_TOOLS]


def create_default_registry() -> ToolRegistry:
    return ToolRegistry(create_all_tools())


__all__ = [
    "ALL_TOOLS",
    "CalculateExpressionTool",
    "ToolRegistry",
    "create_all_tools",
    "create_default_registry",
]
