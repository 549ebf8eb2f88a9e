from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import asdict
from typing import TypeVar

from turn_orchestrator.compaction import MemoryCompactor
from turn_orchestrator.contracts import (
    CompactionSnapshot,
    HistoryMessage,
    SessionRecord,
    SessionTurnResult,
    ToolCall,
    ToolExecutionLog,
)
from turn_orchestrator.errors import CoreError
from turn_orchestrator.memory.session_store import SessionStore

T = TypeVar("T")

_PASSTHROUGH_CODES = frozenset({"SESSION_FAILURE", "INTERNAL_ERROR", "VALIDATION_ERROR"})


def _to_session_failure(error: Exception) -> CoreError:
    if isinstance(error, CoreError) and error.code in _PASSTHROUGH_CODES:
        return error
    message = str(error).strip() or "session adapter failed"
    return CoreError(message, "SESSION_FAILURE")


def _call(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except Exception as ex:
        raise _to_session_failure(ex) from ex


def _drop_none(value):
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value]
    return value


def build_tool_summary(calls: list[ToolCall], results: list[ToolExecutionLog]) -> str:
    """Pair each call with its result by id, then by name; unmatched calls get a placeholder.

    Results no call claimed (a runtime's synthetic step-limit log, say) are appended at the end.
    """
    by_id: dict[str, ToolExecutionLog] = {}
    by_name: dict[str, ToolExecutionLog] = {}
    for log in results:
        by_id[log.call.id] = log
        by_name.setdefault(log.call.name, log)

    entries = []
    claimed: set[int] = set()
    for call in calls:
        matched = by_id.get(call.id) or by_name.get(call.name)
        if matched is not None:
            claimed.add(id(matched))
        if matched is None:
            entries.append(
                {
                    "call": asdict(call),
                    "result": {
                        "ok": False,
                        "error": {"code": "execution_error", "tool": call.name, "message": "tool result missing"},
                    },
                }
            )
        else:
            entries.append({"call": asdict(matched.call), "result": asdict(matched.result)})

    for log in results:
        if id(log) not in claimed:
            entries.append({"call": asdict(log.call), "result": asdict(log.result)})

    return json.dumps(_drop_none(entries), indent=2, ensure_ascii=False, default=str)


class SessionService:
    """Session port over the sqlite session store; every failure surfaces as SESSION_FAILURE."""

    def __init__(self, store: SessionStore, compactor: MemoryCompactor | None = None):
        self._store = store
        self._compactor = compactor or MemoryCompactor(store)

    async def resolve_session(
        self,
        session_key: str,
        provider: str,
        profile_id: str,
        *,
        force_new: bool = False,
        memory: bool | None = None,
    ) -> SessionRecord:
        return _call(
            lambda: self._store.get_or_create(
                session_key, provider, profile_id, force_new=force_new, memory=memory
            )
        )

    async def load_history(self, session_id: str) -> list[HistoryMessage]:
        return _call(lambda: self._store.load_recent_messages(session_id))

    async def load_memory_snippet(self, session_key: str) -> str:
        return _call(lambda: self._store.load_memory_snippet(session_key))

    async def append_turn_messages(
        self,
        session_id: str,
        user_input: str,
        turn_result: SessionTurnResult,
    ) -> None:
        def append() -> None:
            context = {
                "route": turn_result.route,
                "stage": turn_result.stage,
                "provider": turn_result.provider,
                "profile_id": turn_result.profile_id,
            }
            self._store.append_message(session_id, "user", user_input, id_prefix="msg-user", **context)
            self._store.append_message(
                session_id, "assistant", turn_result.result, id_prefix="msg-assistant", **context
            )

        _call(append)

    async def append_tool_summary(
        self,
        session_id: str,
        calls: list[ToolCall],
        results: list[ToolExecutionLog],
        route: str,
        stage: str,
        provider: str,
        profile_id: str,
    ) -> None:
        if not results:
            return

        def append() -> None:
            summary = build_tool_summary(calls, results)
            self._store.append_message(
                session_id,
                "system",
                f"toolResults:\n{summary}",
                route=route,
                stage=stage,
                provider=provider,
                profile_id=profile_id,
                id_prefix="msg-tool-context",
            )

        _call(append)

    async def mark_route_usage(self, session_key: str, route: str, profile_id: str, provider: str) -> None:
        _call(lambda: self._store.record_route(session_key, route, profile_id, provider))

    async def compact_if_needed(self, snapshot: CompactionSnapshot) -> bool:
        return _call(lambda: self._compactor.compact_if_needed(snapshot))

    def resolve_memory_path(self, session_key: str) -> str:
        return str(self._store.memory_path(session_key))
