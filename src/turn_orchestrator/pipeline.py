from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from turn_orchestrator.contracts import (
    CompactionSnapshot,
    CoreOutcome,
    RuntimeInput,
    RuntimePort,
    RuntimeResult,
    SessionPort,
    SessionRecord,
    SessionTurnResult,
    ToolCall,
    ToolError,
    ToolExecutionLog,
    ToolsPort,
    TurnContext,
)
from turn_orchestrator.errors import CoreError, to_core_error
from turn_orchestrator.events import EventSink, TraceEvent, TraceLevel, utc_now

T = TypeVar("T")

NEW_SESSION_ROUTE = "system"
NEW_SESSION_STAGE = "gateway.new_session"


@dataclass
class RunContext:
    """Everything one request needs, passed explicitly through each step."""

    request_id: str
    created_at: str
    provider: str
    profile_id: str
    session_key: str
    with_tools: bool
    tool_allow: list[str]
    event_sink: EventSink
    session_port: SessionPort
    tools_port: ToolsPort
    runtime_port: RuntimePort
    memory_enabled: bool | None = None
    cwd: str | None = None

    async def emit(
        self,
        name: str,
        *,
        level: TraceLevel = "event",
        code: str | None = None,
        message: str | None = None,
        session_key: str | None = None,
        route: str | None = None,
        stage: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        await self.event_sink.emit(
            TraceEvent(
                level=level,
                request_id=self.request_id,
                at=utc_now(),
                name=name,
                code=code,
                message=message,
                session_key=session_key or self.session_key,
                route=route,
                stage=stage,
                payload=payload,
            )
        )


async def with_failure_mapping(
    stage: str,
    fallback_code: str,
    ctx: RunContext,
    operation: Callable[[], Awaitable[T] | T],
    *,
    session_key: str | None = None,
) -> T:
    """Run one step; on failure emit ``agent.request.<stage>.failed`` and re-raise as CoreError."""
    try:
        result = operation()
        if inspect.isawaitable(result):
            result = await result
        return result
    except Exception as ex:
        normalized = to_core_error(ex, fallback_code)
        await ctx.emit(
            f"agent.request.{stage}.failed",
            level="log",
            code=normalized.code,
            message=normalized.message,
            session_key=session_key,
            stage=stage,
            payload={"code": normalized.code},
        )
        if normalized is ex:
            raise
        raise normalized from ex


async def start_new_session(ctx: RunContext) -> CoreOutcome:
    record = await with_failure_mapping(
        "core.session.resolve",
        "SESSION_FAILURE",
        ctx,
        lambda: ctx.session_port.resolve_session(
            ctx.session_key,
            ctx.provider,
            ctx.profile_id,
            force_new=True,
            memory=ctx.memory_enabled,
        ),
    )

    payload: dict[str, Any] = {"session_id": record.session_id}
    if record.memory_enabled:
        payload["memory_file"] = ctx.session_port.resolve_memory_path(record.session_key)
    await ctx.emit(
        "agent.session.created",
        message="new session created",
        session_key=record.session_key,
        route=NEW_SESSION_ROUTE,
        stage=NEW_SESSION_STAGE,
        payload=payload,
    )

    return CoreOutcome(
        request_id=ctx.request_id,
        session_key=record.session_key,
        session_id=record.session_id,
        text="",
        is_new_session=True,
    )


async def build_turn_context(ctx: RunContext, session: SessionRecord) -> TurnContext:
    memory_snippet, prior_messages = await asyncio.gather(
        with_failure_mapping(
            "core.session.loadMemory",
            "SESSION_FAILURE",
            ctx,
            lambda: ctx.session_port.load_memory_snippet(session.session_key),
            session_key=session.session_key,
        ),
        with_failure_mapping(
            "core.session.loadHistory",
            "SESSION_FAILURE",
            ctx,
            lambda: ctx.session_port.load_history(session.session_id),
            session_key=session.session_key,
        ),
    )

    tools = []
    if ctx.with_tools:
        tools = await with_failure_mapping(
            "core.tools.list",
            "TOOL_FAILURE",
            ctx,
            lambda: ctx.tools_port.list_tools(ctx.tool_allow),
            session_key=session.session_key,
        )

    return TurnContext(memory_snippet=memory_snippet, prior_messages=list(prior_messages), tools=list(tools))


async def persist_turn(
    ctx: RunContext,
    session: SessionRecord,
    turn_input: str,
    runtime_result: RuntimeResult,
    tool_calls: list[ToolCall],
    tool_results: list[ToolExecutionLog],
    tool_error: ToolError | None,
) -> bool:
    """Write the turn and run compaction. Returns whether durable memory was updated."""
    key = session.session_key

    if tool_results:
        await with_failure_mapping(
            "core.session.appendToolSummary",
            "SESSION_FAILURE",
            ctx,
            lambda: ctx.session_port.append_tool_summary(
                session.session_id,
                tool_calls,
                tool_results,
                runtime_result.route,
                runtime_result.stage,
                runtime_result.provider,
                runtime_result.profile_id,
            ),
            session_key=key,
        )

    await with_failure_mapping(
        "core.session.appendTurnMessages",
        "SESSION_FAILURE",
        ctx,
        lambda: ctx.session_port.append_turn_messages(
            session.session_id,
            turn_input,
            SessionTurnResult(
                route=runtime_result.route,
                stage=runtime_result.stage,
                result=runtime_result.result,
                provider=runtime_result.provider,
                profile_id=runtime_result.profile_id,
            ),
        ),
        session_key=key,
    )

    await with_failure_mapping(
        "core.session.markRoute",
        "SESSION_FAILURE",
        ctx,
        lambda: ctx.session_port.mark_route_usage(
            key, runtime_result.route, runtime_result.profile_id, runtime_result.provider
        ),
        session_key=key,
    )

    try:
        memory_updated = await with_failure_mapping(
            "core.session.compact",
            "SESSION_FAILURE",
            ctx,
            lambda: ctx.session_port.compact_if_needed(
                CompactionSnapshot(
                    session_key=key,
                    session_id=session.session_id,
                    memory_enabled=session.memory_enabled,
                    compacted_message_count=session.compacted_message_count,
                )
            ),
            session_key=key,
        )
    except CoreError as ex:
        logger.warning(f"Memory compaction failed for session {session.session_id}: {ex.message}")
        memory_updated = False

    if tool_error is not None:
        await ctx.emit(
            "agent.runtime.tool.failed",
            level="log",
            code="TOOL_FAILURE",
            message=tool_error.message,
            session_key=key,
            route=runtime_result.route,
            stage=runtime_result.stage,
            payload={"tool": tool_error.tool, "tool_code": tool_error.code},
        )

    await ctx.emit(
        "agent.request.completed",
        message="agent request completed",
        session_key=key,
        route=runtime_result.route,
        stage=runtime_result.stage,
        payload={
            "memory_updated": bool(memory_updated),
            "session_id": session.session_id,
            "provider": runtime_result.provider,
            "profile_id": runtime_result.profile_id,
            "tool_error": tool_error is not None,
            "tool_calls": len(tool_calls),
        },
    )
    return bool(memory_updated)


async def run_turn(ctx: RunContext, turn_input: str, created_at: str) -> CoreOutcome:
    session = await with_failure_mapping(
        "core.session.resolve",
        "SESSION_FAILURE",
        ctx,
        lambda: ctx.session_port.resolve_session(
            ctx.session_key,
            ctx.provider,
            ctx.profile_id,
            force_new=False,
            memory=ctx.memory_enabled,
        ),
    )

    turn = await build_turn_context(ctx, session)

    runtime_result = await with_failure_mapping(
        "core.runtime.run",
        "RUNTIME_FAILURE",
        ctx,
        lambda: ctx.runtime_port.run(
            RuntimeInput(
                request_id=ctx.request_id,
                created_at=created_at,
                input=turn_input,
                session_key=session.session_key,
                session_id=session.session_id,
                prior_messages=turn.prior_messages,
                memory_snippet=turn.memory_snippet,
                provider=ctx.provider,
                profile_id=ctx.profile_id,
                with_tools=ctx.with_tools,
                tool_allow=list(ctx.tool_allow),
                tools=turn.tools,
                memory_enabled=session.memory_enabled,
                cwd=ctx.cwd,
            )
        ),
        session_key=session.session_key,
    )

    tool_calls = list(runtime_result.tool_calls or [])
    tool_results = list(runtime_result.tool_results or [])
    tool_error = ctx.tools_port.first_tool_error_from_logs(tool_results)
    await persist_turn(ctx, session, turn_input, runtime_result, tool_calls, tool_results, tool_error)

    return CoreOutcome(
        request_id=ctx.request_id,
        session_key=session.session_key,
        session_id=session.session_id,
        text=runtime_result.result,
    )
