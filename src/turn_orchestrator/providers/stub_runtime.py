from __future__ import annotations

import json
import os

from loguru import logger

from turn_orchestrator.contracts import (
    RuntimeInput,
    RuntimeResult,
    TextReply,
    ToolCall,
    ToolCallReply,
    ToolContext,
    ToolsPort,
)
from turn_orchestrator.errors import CoreError
from turn_orchestrator.runtime_context import execute_allowed_tool
from turn_orchestrator.tool_executor import new_tool_call_id

ROUTE = "stub"


class StubRuntime:
    """Offline runtime: echoes input, and lets a user drive tools with ``/tool``.

    ``/summary <text>`` answers on the summary stage; ``/tool <name> <json-args>``
    runs one tool through the tools port when tools are enabled.
    """

    def __init__(self, tools: ToolsPort | None = None):
        self._tools = tools

    async def run(self, runtime_input: RuntimeInput) -> RuntimeResult:
        text = runtime_input.input.strip()

        body = _command_body(text, "/summary")
        if body is not None:
            return self._result(runtime_input, "adapter.stub.summary", f"[stub-summary] {body}")

        command = _command_body(text, "/tool")
        if command is not None and runtime_input.with_tools and self._tools is not None:
            return await self._run_tool(runtime_input, command)

        return self._result(runtime_input, "adapter.stub.echo", f"[stub-echo] {text}")

    async def _run_tool(self, runtime_input: RuntimeInput, command: str) -> RuntimeResult:
        name, _, raw_args = command.partition(" ")
        if not name:
            raise CoreError("usage: /tool <name> <json-args>", "VALIDATION_ERROR")
        try:
            args = json.loads(raw_args) if raw_args.strip() else {}
        except json.JSONDecodeError as ex:
            raise CoreError(f"invalid tool arguments: {ex.msg}", "VALIDATION_ERROR") from ex

        call = ToolCall(id=new_tool_call_id(), name=name, args=args, source="cli")
        context = ToolContext(
            request_id=runtime_input.request_id,
            session_id=runtime_input.session_id,
            session_key=runtime_input.session_key,
            cwd=runtime_input.cwd or os.getcwd(),
        )
        log = await execute_allowed_tool(self._tools, call, context, runtime_input.tool_allow)
        logger.debug(f"Stub tool {name}: ok={log.result.ok}")

        if log.result.ok:
            text = f"[stub-tool] {name}: {log.result.content or ''}".rstrip()
        else:
            message = log.result.error.message if log.result.error else "tool execution failed"
            text = f"[stub-tool] {name} failed: {message}"

        result = self._result(runtime_input, "adapter.stub.tool", text)
        result.tool_calls = [log.call]
        result.tool_results = [log]
        result.assistant_message = ToolCallReply(text=text, tool_calls=(log.call,))
        return result

    def _result(self, runtime_input: RuntimeInput, stage: str, text: str) -> RuntimeResult:
        return RuntimeResult(
            route=ROUTE,
            stage=stage,
            result=text,
            provider=runtime_input.provider,
            profile_id=runtime_input.profile_id,
            stop_reason="stop",
            assistant_message=TextReply(text=text),
        )


def _command_body(text: str, command: str) -> str | None:
    if text == command:
        return ""
    if text.startswith(command + " "):
        return text[len(command):].strip()
    return None
