"""Shared fixtures for runtime tests."""

from __future__ import annotations

import pytest

from chatloop.tools import ToolRegistry, create_all_tools


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(create_all_tools())
