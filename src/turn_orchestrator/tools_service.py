from __future__ import annotations

import os
from dataclasses import replace

from turn_orchestrator.contracts import (
    ToolCall,
    ToolContext,
    ToolError,
    ToolExecutionLog,
    ToolSpec,
)
from turn_orchestrator.errors import CoreError
from turn_orchestrator.tool_registry import ToolRegistry
from turn_orchestrator.tool_sandbox import ToolSandbox

_PASSTHROUGH_CODES = frozenset({"TOOL_FAILURE", "INTERNAL_ERROR", "VALIDATION_ERROR"})


def _to_tool_failure(error: Exception) -> CoreError:
    if isinstance(error, CoreError) and error.code in _PASSTHROUGH_CODES:
        return error
    message = str(error).strip() or "tools adapter failed"
    return CoreError(message, "TOOL_FAILURE")


def first_tool_error(logs: list[ToolExecutionLog] | None) -> ToolError | None:
    for log in logs or []:
        if log.result.error is not None:
            return log.result.error
    return None


class ToolsService:
    """Tools port backed by the registry, with every call routed through the sandbox."""

    def __init__(self, registry: ToolRegistry, sandbox: ToolSandbox, *, default_cwd: str | None = None):
        self._registry = registry
        self._sandbox = sandbox
        self._default_cwd = default_cwd

    def list_tools(self, allow_list: list[str] | None = None) -> list[ToolSpec]:
        try:
            return self._registry.list_tools(allow_list)
        except Exception as ex:
            raise _to_tool_failure(ex) from ex

    async def execute_tool(self, call: ToolCall, context: ToolContext) -> ToolExecutionLog:
        if not context.cwd:
            context = replace(context, cwd=self._default_cwd or os.getcwd())
        try:
            return await self._sandbox.execute(call, context)
        except Exception as ex:
            raise _to_tool_failure(ex) from ex

    def first_tool_error_from_logs(self, logs: list[ToolExecutionLog] | None) -> ToolError | None:
        return first_tool_error(logs)
