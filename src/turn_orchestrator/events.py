from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, runtime_checkable

from loguru import logger

TraceLevel = Literal["trace", "event", "log"]


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class TraceEvent:
    level: TraceLevel
    request_id: str
    at: str
    name: str
    code: str | None = None
    message: str | None = None
    session_key: str | None = None
    route: str | None = None
    stage: str | None = None
    payload: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@runtime_checkable
class EventSink(Protocol):
    async def emit(self, event: TraceEvent) -> None: ...


class LoggingEventSink:
    """Writes trace events to loguru; failures with a code are logged as errors."""

    async def emit(self, event: TraceEvent) -> None:
        bound = logger.bind(trace_event=event.to_dict())
        if event.level == "log" and event.code:
            bound.error(f"[{event.name}] {event.message or 'agent failed'} (code={event.code})")
        elif event.level == "event":
            bound.info(f"[{event.name}] {event.message or ''}".rstrip())
        else:
            bound.debug(f"[{event.name}] {event.message or ''}".rstrip())


class FanoutEventSink:
    def __init__(self, sinks: list[EventSink]):
        self._sinks = list(sinks)

    async def emit(self, event: TraceEvent) -> None:
        for sink in self._sinks:
            await sink.emit(event)


class SafeEventSink:
    """Wraps a sink so that a failing sink can never abort a turn."""

    def __init__(self, inner: EventSink):
        self._inner = inner

    async def emit(self, event: TraceEvent) -> None:
        try:
            await self._inner.emit(event)
        except Exception as ex:
            logger.warning(f"Event sink failed for {event.name}: {ex}")
