from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from loguru import logger

from turn_orchestrator.memory.store import SessionStoreDb


@dataclass(frozen=True)
class PruneReport:
    expired_sessions: int = 0
    trimmed_messages: int = 0
    evicted_sessions: int = 0
    expired_events: int = 0


def _expire(store: SessionStoreDb, cutoff: str) -> tuple[int, int]:
    sessions = store.execute("DELETE FROM sessions WHERE updated_at < ?", (cutoff,)).rowcount
    events = store.execute("DELETE FROM events WHERE created_at < ?", (cutoff,)).rowcount
    return sessions, events


def _trim_messages(store: SessionStoreDb, limit: int) -> int:
    """Drop the oldest messages past ``limit`` and shift each watermark down by the same amount."""
    oversized = store.execute(
        """
        SELECT session_id, COUNT(*) AS total
        FROM messages
        GROUP BY session_id
        HAVING COUNT(*) > ?
        """,
        (limit,),
    ).fetchall()

    trimmed = 0
    for row in oversized:
        session_id = str(row["session_id"])
        excess = int(row["total"]) - limit
        store.execute(
            """
            DELETE FROM messages
            WHERE id IN (
                SELECT id FROM messages WHERE session_id = ? ORDER BY seq ASC LIMIT ?
            )
            """,
            (session_id, excess),
        )
        store.execute(
            "UPDATE sessions SET compacted_message_count = MAX(compacted_message_count - ?, 0) WHERE id = ?",
            (excess, session_id),
        )
        trimmed += excess
    return trimmed


def _evict_sessions(store: SessionStoreDb, limit: int) -> int:
    return store.execute(
        """
        DELETE FROM sessions
        WHERE id IN (
            SELECT id FROM sessions ORDER BY updated_at DESC LIMIT -1 OFFSET ?
        )
        """,
        (limit,),
    ).rowcount


def prune_store(
    store: SessionStoreDb,
    *,
    max_sessions: int,
    max_messages_per_session: int,
    retention_days: int,
) -> PruneReport:
    """Apply retention, per-session message caps and the session cap in one transaction.

    Deleting a session cascades to its messages and its key binding. Memory
    files are left alone; they belong to the session key, not the session.
    A cap of zero or less disables that rule.
    """
    cutoff = (datetime.now(UTC) - timedelta(days=max(1, retention_days))).isoformat(timespec="milliseconds")

    with store.transaction():
        expired_sessions, expired_events = _expire(store, cutoff)
        trimmed = _trim_messages(store, max_messages_per_session) if max_messages_per_session > 0 else 0
        evicted = _evict_sessions(store, max_sessions) if max_sessions > 0 else 0

    report = PruneReport(
        expired_sessions=expired_sessions,
        trimmed_messages=trimmed,
        evicted_sessions=evicted,
        expired_events=expired_events,
    )
    if expired_sessions or trimmed or evicted or expired_events:
        logger.info(
            f"Pruned store: {expired_sessions} expired, {evicted} evicted session(s), "
            f"{trimmed} message(s) trimmed, {expired_events} event(s) expired"
        )
    return report
