from __future__ import annotations

import re
import secrets
from collections.abc import Iterable

from turn_orchestrator.contracts import (
    HistoryMessage,
    RuntimeInput,
    ToolCall,
    ToolContext,
    ToolError,
    ToolExecutionLog,
    ToolMeta,
    ToolResult,
    ToolsPort,
    ToolSpec,
)
from turn_orchestrator.tool_registry import is_tool_allowed

CONTEXT_MESSAGE_LIMIT = 12

_RUNTIME_NAME_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]+")


def trim_context_messages(messages: list[HistoryMessage]) -> list[HistoryMessage]:
    if len(messages) <= CONTEXT_MESSAGE_LIMIT:
        return list(messages)
    return messages[-CONTEXT_MESSAGE_LIMIT:]


def build_model_messages(runtime_input: RuntimeInput) -> list[dict]:
    """Prior turns, then the memory snippet, then the current input, as role/content dicts."""
    messages = [
        {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
        for m in trim_context_messages(runtime_input.prior_messages)
    ]
    if runtime_input.memory_snippet:
        messages.append({"role": "user", "content": f"[memory]\n{runtime_input.memory_snippet}"})
    messages.append({"role": "user", "content": runtime_input.input})
    return messages


def to_runtime_tool_name(raw: str) -> str:
    normalized = _RUNTIME_NAME_UNSAFE.sub("_", raw.strip())
    return normalized or f"tool_{secrets.token_hex(2)}"


class ToolNameMap:
    """Two-way mapping between canonical tool names and API-safe names.

    Collisions after sanitizing get a numeric suffix so every runtime name is unique.
    """

    def __init__(self, specs: list[ToolSpec]):
        self.runtime_by_canonical: dict[str, str] = {}
        self.canonical_by_runtime: dict[str, str] = {}
        for spec in specs:
            if not spec.name.strip() or spec.name in self.runtime_by_canonical:
                continue
            base = to_runtime_tool_name(spec.name)
            candidate = base
            suffix = 2
            while candidate in self.canonical_by_runtime:
                candidate = f"{base}_{suffix}"
                suffix += 1
            self.runtime_by_canonical[spec.name] = candidate
            self.canonical_by_runtime[candidate] = spec.name

    def to_runtime(self, canonical: str) -> str:
        return self.runtime_by_canonical.get(canonical) or to_runtime_tool_name(canonical)

    def to_canonical(self, runtime_name: str) -> str:
        return self.canonical_by_runtime.get(runtime_name, runtime_name)


def not_allowed_log(call: ToolCall) -> ToolExecutionLog:
    return ToolExecutionLog(
        call=call,
        result=ToolResult(
            ok=False,
            error=ToolError(code="tool_not_found", tool=call.name, message=f"tool not allowed: {call.name}"),
            meta=ToolMeta(tool=call.name, duration_ms=0),
        ),
    )


async def execute_allowed_tool(
    tools: ToolsPort,
    call: ToolCall,
    context: ToolContext,
    allow_list: Iterable[str] | None,
) -> ToolExecutionLog:
    """Run a call through the tools port unless the request's allow-list excludes it."""
    if not is_tool_allowed(call.name, allow_list):
        return not_allowed_log(call)
    return await tools.execute_tool(call, context)
