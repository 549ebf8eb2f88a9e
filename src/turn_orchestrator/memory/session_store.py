from __future__ import annotations

import hashlib
import re
import secrets
import time
from pathlib import Path

from turn_orchestrator.contracts import HistoryMessage, SessionRecord
from turn_orchestrator.events import utc_now
from turn_orchestrator.memory.store import SessionStoreDb

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


def new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


def memory_file_name(session_key: str) -> str:
    """Stable file name for a session key; the digest keeps distinct keys apart after sanitizing."""
    readable = _UNSAFE_KEY_CHARS.sub("_", session_key.strip()).strip("._") or "session"
    digest = hashlib.sha1(session_key.encode("utf-8")).hexdigest()[:8]
    return f"{readable[:64]}-{digest}.md"


class SessionStore:
    """Session records, the append-only turn log and per-key markdown memory files."""

    def __init__(
        self,
        db: SessionStoreDb,
        memory_directory: str,
        *,
        history_limit: int = 12,
        memory_snippet_chars: int = 4000,
    ):
        self._db = db
        self._memory_directory = Path(memory_directory)
        self._history_limit = max(1, history_limit)
        self._memory_snippet_chars = max(1, memory_snippet_chars)

    # -- session records --

    def get_active(self, session_key: str) -> SessionRecord | None:
        row = self._db.execute(
            """
            SELECT s.*
            FROM session_keys k
            JOIN sessions s ON s.id = k.session_id
            WHERE k.session_key = ?
            LIMIT 1
            """,
            (session_key,),
        ).fetchone()
        if row is None:
            return None
        return self._to_record(row, is_new_session=False)

    def get_or_create(
        self,
        session_key: str,
        provider: str | None = None,
        profile_id: str | None = None,
        *,
        force_new: bool = False,
        memory: bool | None = None,
    ) -> SessionRecord:
        now = utc_now()
        existing = None if force_new else self.get_active(session_key)

        if existing is not None:
            self._db.execute(
                """
                UPDATE sessions
                SET updated_at = ?,
                    provider = COALESCE(?, provider),
                    profile_id = COALESCE(?, profile_id),
                    memory_enabled = COALESCE(?, memory_enabled)
                WHERE id = ?
                """,
                (now, provider or None, profile_id or None, _flag(memory), existing.session_id),
            )
            self._db.execute(
                "UPDATE session_keys SET updated_at = ? WHERE session_key = ?",
                (now, session_key),
            )
            self._db.commit()
            refreshed = self.get_active(session_key)
            if refreshed is None:
                raise ValueError(f"Session does not exist: {session_key}")
            return refreshed

        session_id = new_id("sess")
        memory_enabled = True if memory is None else memory
        with self._db.transaction():
            self._db.execute(
                """
                INSERT INTO sessions (id, session_key, created_at, updated_at, provider, profile_id, memory_enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (session_id, session_key, now, now, provider or None, profile_id or None, _flag(memory_enabled)),
            )
            self._db.execute(
                """
                INSERT INTO session_keys (session_key, session_id, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(session_key) DO UPDATE SET session_id = excluded.session_id, updated_at = excluded.updated_at
                """,
                (session_key, session_id, now),
            )
        return SessionRecord(
            session_key=session_key,
            session_id=session_id,
            created_at=now,
            updated_at=now,
            is_new_session=True,
            memory_enabled=memory_enabled,
            compacted_message_count=0,
        )

    def record_route(self, session_key: str, route: str, profile_id: str | None, provider: str | None) -> None:
        active = self.get_active(session_key)
        if active is None:
            return
        self._db.execute(
            """
            UPDATE sessions
            SET updated_at = ?, route = ?, profile_id = COALESCE(?, profile_id), provider = COALESCE(?, provider)
            WHERE id = ?
            """,
            (utc_now(), route, profile_id or None, provider or None, active.session_id),
        )
        self._db.commit()

    def advance_watermark(self, session_id: str, compacted_message_count: int) -> int:
        """Raise the compaction watermark; it never moves backwards. Returns the stored value."""
        self._db.execute(
            """
            UPDATE sessions
            SET compacted_message_count = MAX(compacted_message_count, ?), updated_at = ?
            WHERE id = ?
            """,
            (max(0, compacted_message_count), utc_now(), session_id),
        )
        self._db.commit()
        row = self._db.execute(
            "SELECT compacted_message_count FROM sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        return int(row["compacted_message_count"]) if row is not None else 0

    # -- turn log --

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        route: str | None = None,
        stage: str | None = None,
        provider: str | None = None,
        profile_id: str | None = None,
        id_prefix: str = "msg",
    ) -> tuple[str, int]:
        row = self._db.execute(
            "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        next_seq = int(row["max_seq"]) + 1
        message_id = new_id(id_prefix)
        now = utc_now()
        self._db.execute(
            """
            INSERT INTO messages (id, session_id, seq, role, content, created_at, route, stage, provider, profile_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (message_id, session_id, next_seq, role, content, now, route, stage, provider, profile_id),
        )
        self._db.execute(
            "UPDATE sessions SET updated_at = ? WHERE id = ?",
            (now, session_id),
        )
        self._db.commit()
        return message_id, next_seq

    def load_recent_messages(self, session_id: str, limit: int | None = None) -> list[HistoryMessage]:
        rows = self._db.execute(
            """
            SELECT id, role, created_at, content
            FROM (
                SELECT id, role, created_at, content, seq
                FROM messages
                WHERE session_id = ?
                ORDER BY seq DESC
                LIMIT ?
            )
            ORDER BY seq ASC
            """,
            (session_id, max(1, limit or self._history_limit)),
        ).fetchall()
        return [_to_message(row) for row in rows]

    def load_all_messages(self, session_id: str) -> list[HistoryMessage]:
        rows = self._db.execute(
            """
            SELECT id, role, created_at, content
            FROM messages
            WHERE session_id = ?
            ORDER BY seq ASC
            """,
            (session_id,),
        ).fetchall()
        return [_to_message(row) for row in rows]

    # -- durable memory --

    def memory_path(self, session_key: str) -> Path:
        return self._memory_directory / memory_file_name(session_key)

    def append_memory(self, session_key: str, session_id: str, summary: str) -> Path:
        path = self.memory_path(session_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        separator = "\n" if path.exists() and path.stat().st_size > 0 else ""
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{separator}<!-- session {session_id} at {utc_now()} -->\n{summary.rstrip()}\n")
        return path

    def load_memory_snippet(self, session_key: str) -> str:
        active = self.get_active(session_key)
        if active is not None and not active.memory_enabled:
            return ""
        path = self.memory_path(session_key)
        if not path.is_file():
            return ""
        text = path.read_text(encoding="utf-8").strip()
        return text[-self._memory_snippet_chars:]

    def _to_record(self, row, *, is_new_session: bool) -> SessionRecord:
        return SessionRecord(
            session_key=str(row["session_key"]),
            session_id=str(row["id"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
            is_new_session=is_new_session,
            memory_enabled=bool(row["memory_enabled"]),
            compacted_message_count=int(row["compacted_message_count"]),
        )


def _flag(value: bool | None) -> int | None:
    if value is None:
        return None
    return 1 if value else 0


def _to_message(row) -> HistoryMessage:
    return HistoryMessage(
        id=str(row["id"]),
        role=row["role"],
        timestamp=str(row["created_at"]),
        content=str(row["content"]),
    )
