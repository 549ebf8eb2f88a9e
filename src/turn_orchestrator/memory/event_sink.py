from __future__ import annotations

import asyncio
import json
from uuid import uuid4

from turn_orchestrator.events import TraceEvent
from turn_orchestrator.memory.store import SessionStoreDb


class AsyncEventSink:
    """Batches trace events in memory and writes them to the events table.

    ``emit`` only enqueues; a background task flushes every interval, and
    ``close`` drains whatever is left.
    """

    def __init__(self, store: SessionStoreDb, *, batch_size: int = 50, flush_interval_seconds: float = 0.5):
        self._store = store
        self._batch_size = max(1, batch_size)
        self._flush_interval_seconds = max(0.05, flush_interval_seconds)
        self._queue: asyncio.Queue[TraceEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def emit(self, event: TraceEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    async def close(self) -> None:
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.flush()

    async def flush(self) -> None:
        while not self._queue.empty():
            await self._flush_once()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval_seconds)
            await self._flush_once()

    async def _flush_once(self) -> None:
        items: list[TraceEvent] = []
        while len(items) < self._batch_size and not self._queue.empty():
            items.append(self._queue.get_nowait())

        if not items:
            return

        params = [
            (
                str(uuid4()),
                event.request_id,
                event.session_key,
                event.name,
                event.level,
                event.code,
                json.dumps(event.to_dict(), ensure_ascii=True, default=str),
                event.at,
            )
            for event in items
        ]

        with self._store.transaction():
            self._store.executemany(
                """
                INSERT INTO events (id, request_id, session_key, name, level, code, payload_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                params,
            )
