from __future__ import annotations

import asyncio
import os
from typing import Any

import anthropic
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from turn_orchestrator.contracts import (
    RuntimeInput,
    RuntimeResult,
    TextReply,
    ToolCall,
    ToolCallReply,
    ToolContext,
    ToolError,
    ToolExecutionLog,
    ToolMeta,
    ToolResult,
    ToolsPort,
)
from turn_orchestrator.runtime_context import ToolNameMap, build_model_messages, execute_allowed_tool
from turn_orchestrator.system_prompt import build_system_prompt

ROUTE = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5"


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.0f}s (attempt {attempt}/5)...")


def to_api_messages(messages: list[dict]) -> list[dict]:
    """Merge consecutive same-role messages and drop leading assistant turns."""
    merged: list[dict] = []
    for message in messages:
        if not merged and message["role"] == "assistant":
            continue
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1] = {"role": message["role"], "content": f"{merged[-1]['content']}\n\n{message['content']}"}
            continue
        merged.append(dict(message))
    return merged


def step_limit_log(calls: list[ToolCall], max_steps: int) -> ToolExecutionLog:
    tool = calls[0].name if calls else "unknown"
    call_id = f"{calls[0].id}-step-limit" if calls else "step-limit"
    return ToolExecutionLog(
        call=ToolCall(id=call_id, name=tool, source="runtime"),
        result=ToolResult(
            ok=False,
            error=ToolError(
                code="execution_error",
                tool=tool,
                message=f"tool call loop exceeded max steps ({max_steps})",
            ),
            meta=ToolMeta(tool=tool, duration_ms=0),
        ),
    )


class AnthropicRuntime:
    """Runs a turn against the Messages API, executing requested tools through the tools port."""

    def __init__(
        self,
        tools: ToolsPort,
        *,
        api_key: str | None = None,
        client: Any = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        max_steps: int = 8,
    ):
        self._tools = tools
        self._client = client if client is not None else anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_steps = max(1, max_steps)

    @retry(
        retry=retry_if_exception_type((
            anthropic.RateLimitError,
            anthropic.APIConnectionError,
            anthropic.APITimeoutError,
        )),
        wait=wait_exponential(multiplier=10, min=10, max=320),
        stop=stop_after_attempt(5),
        before_sleep=_on_retry,
        reraise=True,
    )
    async def _create_message(self, system_prompt: str, messages: list[dict], tools: list[dict]) -> Any:
        logger.debug(
            f"API request: model={self._model}, max_tokens={self._max_tokens}, "
            f"messages={len(messages)}, tools={len(tools)}"
        )
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools
        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return response

    async def run(self, runtime_input: RuntimeInput) -> RuntimeResult:
        specs = runtime_input.tools if runtime_input.with_tools else []
        name_map = ToolNameMap(specs)
        api_tools = [
            {
                "name": name_map.to_runtime(spec.name),
                "description": spec.description,
                "input_schema": spec.input_schema,
            }
            for spec in specs
        ]
        system_prompt = runtime_input.system_prompt or build_system_prompt(
            runtime_input.cwd, with_tools=bool(api_tools)
        )
        messages = to_api_messages(build_model_messages(runtime_input))
        context = ToolContext(
            request_id=runtime_input.request_id,
            session_id=runtime_input.session_id,
            session_key=runtime_input.session_key,
            cwd=runtime_input.cwd or os.getcwd(),
        )

        tool_calls: list[ToolCall] = []
        tool_results: list[ToolExecutionLog] = []
        rounds = 0

        while True:
            response = await self._create_message(system_prompt, messages, api_tools)
            text_parts: list[str] = []
            content: list[dict] = []
            round_calls: list[ToolCall] = []

            for block in response.content:
                if block.type == "text":
                    text_parts.append(block.text)
                    content.append({"type": "text", "text": block.text})
                elif block.type == "tool_use":
                    content.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
                    round_calls.append(
                        ToolCall(
                            id=block.id,
                            name=name_map.to_canonical(block.name),
                            args=block.input,
                            source="runtime",
                        )
                    )

            text = "".join(text_parts).strip()
            messages.append({"role": "assistant", "content": content})

            if not round_calls:
                return self._result(
                    runtime_input, "runtime.anthropic.completed", text, response.stop_reason,
                    tool_calls, tool_results, TextReply(text=text),
                )

            tool_calls.extend(round_calls)
            logs = list(await asyncio.gather(*(
                execute_allowed_tool(self._tools, c, context, runtime_input.tool_allow) for c in round_calls
            )))
            tool_results.extend(logs)
            rounds += 1

            if rounds >= self._max_steps:
                logger.warning(f"Tool loop stopped after {rounds} round(s) for request {runtime_input.request_id}")
                tool_results.append(step_limit_log(round_calls, self._max_steps))
                return self._result(
                    runtime_input, "runtime.anthropic.suspended", text or runtime_input.input,
                    response.stop_reason, tool_calls, tool_results,
                    ToolCallReply(text=text, tool_calls=tuple(round_calls)),
                )

            messages.append({"role": "user", "content": [_tool_result_block(log) for log in logs]})

    def _result(
        self,
        runtime_input: RuntimeInput,
        stage: str,
        text: str,
        stop_reason: str | None,
        tool_calls: list[ToolCall],
        tool_results: list[ToolExecutionLog],
        assistant_message: TextReply | ToolCallReply,
    ) -> RuntimeResult:
        return RuntimeResult(
            route=ROUTE,
            stage=stage,
            result=text,
            provider=runtime_input.provider,
            profile_id=runtime_input.profile_id,
            tool_calls=tool_calls,
            tool_results=tool_results,
            stop_reason=stop_reason,
            assistant_message=assistant_message,
        )


def _tool_result_block(log: ToolExecutionLog) -> dict:
    if log.result.ok:
        return {"type": "tool_result", "tool_use_id": log.call.id, "content": log.result.content or ""}
    message = log.result.error.message if log.result.error else "tool execution failed"
    return {
        "type": "tool_result",
        "tool_use_id": log.call.id,
        "content": f"Error: {message}",
        "is_error": True,
    }
