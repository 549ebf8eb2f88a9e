from __future__ import annotations

import math
import secrets
import time
from dataclasses import replace
from typing import Any

from loguru import logger

from turn_orchestrator.contracts import (
    TOOL_ERROR_CODES,
    ToolCall,
    ToolContext,
    ToolError,
    ToolExecutionLog,
    ToolMeta,
    ToolResult,
)
from turn_orchestrator.tool_registry import ToolRegistry

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_tool_call_id() -> str:
    return f"tool-{_now_ms()}-{secrets.token_hex(2)}"


def _parse_args(args: Any) -> dict[str, Any]:
    if not isinstance(args, dict):
        return {}
    return dict(args)


def validate_args(schema: dict[str, Any], args: dict[str, Any]) -> str | None:
    """Return an error message when args do not satisfy the schema, else None."""
    properties = schema.get("properties") or {}
    required = schema.get("required") or []

    for key in required:
        if key not in args:
            return f"missing required argument: {key}"

    for key, value in args.items():
        prop = properties.get(key)
        if prop is None:
            return f"unknown argument: {key}"
        expected = prop.get("type")
        check = _TYPE_CHECKS.get(expected)
        if check is not None and not check(value):
            return f"argument {key} must be {expected}"
    return None


def _error_result(tool: str, code: str, message: str, duration_ms: int = 0) -> ToolResult:
    return ToolResult(
        ok=False,
        error=ToolError(code=code, tool=tool, message=message),
        meta=ToolMeta(tool=tool, duration_ms=duration_ms),
    )


def _normalize_error(tool: str, error: ToolError) -> ToolError:
    code = error.code if error.code in TOOL_ERROR_CODES else "execution_error"
    message = (error.message or "").strip() or "tool execution failed"
    return ToolError(code=code, tool=error.tool or tool, message=message)


class ToolExecutor:
    """Looks up, validates and runs one tool call; never raises."""

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolExecutionLog:
        tool_name = str(call.name or "").strip()
        normalized_call = replace(call, id=call.id or new_tool_call_id())

        tool = self._registry.get(tool_name)
        if tool is None:
            label = tool_name or "<unknown>"
            return ToolExecutionLog(
                call=normalized_call,
                result=_error_result(label, "tool_not_found", f"tool not found: {tool_name}"),
            )

        args = _parse_args(call.args)
        problem = validate_args(tool.input_schema, args)
        if problem is not None:
            return ToolExecutionLog(
                call=normalized_call,
                result=_error_result(tool.name, "invalid_args", problem),
            )

        started = _now_ms()
        try:
            result = await tool.execute(context, args)
        except Exception as ex:
            logger.debug(f"Tool {tool.name} raised: {ex!r}")
            return ToolExecutionLog(
                call=normalized_call,
                result=_error_result(tool.name, "execution_error", str(ex) or "unknown error", _now_ms() - started),
            )

        meta = result.meta or ToolMeta(tool=tool.name, duration_ms=_now_ms() - started)
        if result.ok:
            return ToolExecutionLog(call=normalized_call, result=replace(result, error=None, meta=meta))
        if result.error is None:
            return ToolExecutionLog(
                call=normalized_call,
                result=_error_result(tool.name, "execution_error", "tool execution failed", _now_ms() - started),
            )
        return ToolExecutionLog(
            call=normalized_call,
            result=replace(result, error=_normalize_error(tool.name, result.error), meta=meta),
        )
