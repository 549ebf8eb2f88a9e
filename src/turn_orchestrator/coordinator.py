from __future__ import annotations

import secrets
import time
from contextlib import AsyncExitStack

from turn_orchestrator.contracts import (
    CoreOutcome,
    RunAgentOptions,
    RuntimePort,
    SessionPort,
    ToolsPort,
)
from turn_orchestrator.errors import CoreError, to_core_error
from turn_orchestrator.events import EventSink, LoggingEventSink, SafeEventSink, utc_now
from turn_orchestrator.pipeline import RunContext, run_turn, start_new_session
from turn_orchestrator.session_locks import SessionLocks


def create_request_id() -> str:
    return f"req-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


class Coordinator:
    """Entry point for one agent request: a new-session request or a full turn.

    Every failure is re-raised as a CoreError after ``agent.request.failed`` is
    emitted. Turns on the same session key run one at a time unless
    ``serialize_sessions`` is off.
    """

    def __init__(
        self,
        session_port: SessionPort,
        tools_port: ToolsPort,
        runtime_port: RuntimePort,
        event_sink: EventSink | None = None,
        *,
        serialize_sessions: bool = True,
    ):
        self._session_port = session_port
        self._tools_port = tools_port
        self._runtime_port = runtime_port
        self._event_sink = SafeEventSink(event_sink or LoggingEventSink())
        self._locks = SessionLocks() if serialize_sessions else None

    async def run_agent(self, raw_input: str, options: RunAgentOptions) -> CoreOutcome:
        request_id = create_request_id()
        created_at = utc_now()
        ctx = RunContext(
            request_id=request_id,
            created_at=created_at,
            provider=options.provider,
            profile_id=options.profile_id,
            session_key=options.session_key,
            with_tools=options.with_tools,
            tool_allow=list(options.tool_allow),
            event_sink=self._event_sink,
            session_port=self._session_port,
            tools_port=self._tools_port,
            runtime_port=self._runtime_port,
            memory_enabled=options.memory,
            cwd=options.cwd,
        )

        try:
            await ctx.emit(
                "agent.request.received",
                level="trace",
                message="agent request started",
                payload={
                    "provider": ctx.provider,
                    "profile_id": ctx.profile_id,
                    "with_tools": ctx.with_tools,
                    "has_tool_filter": len(ctx.tool_allow) > 0,
                    "new_session": options.new_session,
                },
            )

            if not (options.session_key or "").strip():
                raise CoreError("session key is required", "VALIDATION_ERROR")
            if not options.new_session and not (raw_input or "").strip():
                raise CoreError("input is required", "VALIDATION_ERROR")

            async with AsyncExitStack() as stack:
                if self._locks is not None:
                    await stack.enter_async_context(self._locks.hold(options.session_key))
                if options.new_session:
                    return await start_new_session(ctx)
                return await run_turn(ctx, raw_input, created_at)
        except Exception as ex:
            normalized = to_core_error(ex, "INTERNAL_ERROR")
            await ctx.emit(
                "agent.request.failed",
                level="log",
                code=normalized.code,
                message=normalized.message,
                stage="agent.request",
                payload={
                    "provider": ctx.provider,
                    "profile_id": ctx.profile_id,
                    "code": normalized.code,
                },
            )
            if normalized is ex:
                raise
            raise normalized from ex


def build_coordinator(
    session_port: SessionPort | None,
    tools_port: ToolsPort | None,
    runtime_port: RuntimePort | None,
    event_sink: EventSink | None = None,
    *,
    serialize_sessions: bool = True,
) -> Coordinator:
    if session_port is None:
        raise ValueError("session port implementation is required")
    if tools_port is None:
        raise ValueError("tools port implementation is required")
    if runtime_port is None:
        raise ValueError("runtime port implementation is required")
    return Coordinator(
        session_port,
        tools_port,
        runtime_port,
        event_sink,
        serialize_sessions=serialize_sessions,
    )
