from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SessionLocks:
    """One asyncio lock per session key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, session_key: str) -> bool:
        lock = self._locks.get(session_key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, session_key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_key, asyncio.Lock())
        self._refs[session_key] = self._refs.get(session_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[session_key] -= 1
            if self._refs[session_key] == 0:
                del self._refs[session_key]
                del self._locks[session_key]
