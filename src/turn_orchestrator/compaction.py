from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from turn_orchestrator.contracts import CompactionSnapshot, HistoryMessage

if TYPE_CHECKING:
    from turn_orchestrator.memory.session_store import SessionStore

COMPACT_TRIGGER_MESSAGES = 24
KEEP_RECENT_MESSAGES = 12
MIN_COMPACT_WINDOW = 6
SUMMARY_MESSAGE_LIMIT = 16
SUMMARY_LINE_LIMIT = 120


def _truncate(raw: str, max_length: int) -> str:
    text = raw.strip()
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."


def compaction_cutoff(message_count: int) -> int:
    return max(message_count - KEEP_RECENT_MESSAGES, 0)


def build_compaction_summary(messages: list[HistoryMessage], compacted_count: int) -> str:
    """Summarize the not-yet-compacted conversation outside the recent window.

    Only user and assistant messages between the watermark and the cutoff are
    considered, at most the last ``SUMMARY_MESSAGE_LIMIT`` of them. Returns ``""``
    when fewer than ``MIN_COMPACT_WINDOW`` qualify.
    """
    cutoff = compaction_cutoff(len(messages))
    compact_from = max(0, min(compacted_count, cutoff))
    candidates = [m for m in messages[compact_from:cutoff] if m.role in ("user", "assistant")]
    candidates = candidates[-SUMMARY_MESSAGE_LIMIT:]

    if len(candidates) < MIN_COMPACT_WINDOW:
        return ""

    lines = [f"- {m.role}: {_truncate(m.content, SUMMARY_LINE_LIMIT)}" for m in candidates]
    return "## Memory Summary\n" + "\n".join(lines)


class MemoryCompactor:
    def __init__(self, store: SessionStore):
        self._store = store

    def compact_if_needed(self, snapshot: CompactionSnapshot) -> bool:
        if not snapshot.memory_enabled:
            return False

        messages = self._store.load_all_messages(snapshot.session_id)
        if len(messages) <= COMPACT_TRIGGER_MESSAGES:
            return False

        summary = build_compaction_summary(messages, snapshot.compacted_message_count)
        if not summary:
            return False

        path = self._store.append_memory(snapshot.session_key, snapshot.session_id, summary)
        cutoff = compaction_cutoff(len(messages))
        watermark = self._store.advance_watermark(snapshot.session_id, cutoff)
        logger.info(
            f"Compaction: session {snapshot.session_id} summarized up to message {cutoff}"
            f" (watermark {watermark}) into {path}"
        )
        return True
