from __future__ import annotations

from collections.abc import Iterable

from turn_orchestrator.contracts import ToolSpec
from turn_orchestrator.tool import Tool
from turn_orchestrator.tools import (
    EchoTool,
    EditFileTool,
    ListDirTool,
    PwdTool,
    ReadFileTool,
    TimeNowTool,
    WriteFileTool,
)


def normalize_tool_name(name: str) -> str:
    return name.strip().lower()


def normalize_allow_list(allow_list: Iterable[str] | None) -> set[str]:
    if not allow_list:
        return set()
    return {normalize_tool_name(raw) for raw in allow_list if isinstance(raw, str) and raw.strip()}


def is_tool_allowed(name: str, allow_list: Iterable[str] | None) -> bool:
    allowed = normalize_allow_list(allow_list)
    if not allowed:
        return True
    return normalize_tool_name(name) in allowed


def builtin_tools() -> list[Tool]:
    return [
        TimeNowTool(),
        EchoTool(),
        PwdTool(),
        ListDirTool(),
        ReadFileTool(),
        WriteFileTool(),
        EditFileTool(),
    ]


class ToolRegistry:
    """Name-indexed tool catalog. Lookups are trimmed and case-insensitive."""

    def __init__(self, tools: list[Tool] | None = None):
        source = builtin_tools() if tools is None else tools
        self._tools: dict[str, Tool] = {normalize_tool_name(t.name): t for t in source}

    def get(self, name: str, allow_list: Iterable[str] | None = None) -> Tool | None:
        if not isinstance(name, str) or not name.strip():
            return None
        tool = self._tools.get(normalize_tool_name(name))
        if tool is None or not is_tool_allowed(tool.name, allow_list):
            return None
        return tool

    def names(self) -> list[str]:
        return sorted(t.name for t in self._tools.values())

    def list_tools(self, allow_list: Iterable[str] | None = None) -> list[ToolSpec]:
        allowed = normalize_allow_list(allow_list)
        tools = [
            t for t in self._tools.values()
            if not allowed or normalize_tool_name(t.name) in allowed
        ]
        return [
            ToolSpec(name=t.name, description=t.description, input_schema=t.input_schema)
            for t in sorted(tools, key=lambda t: t.name)
        ]
