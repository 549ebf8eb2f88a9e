import unittest

from tests.memory.base import SessionStoreTestCase
from turn_orchestrator.compaction import (
    KEEP_RECENT_MESSAGES,
    MemoryCompactor,
    build_compaction_summary,
)
from turn_orchestrator.contracts import CompactionSnapshot, HistoryMessage


def _messages(count: int, *, role_cycle=("user", "assistant")) -> list[HistoryMessage]:
    return [
        HistoryMessage(
            id=f"m{i}",
            role=role_cycle[i % len(role_cycle)],
            timestamp="2026-01-01T00:00:00.000+00:00",
            content=f"message {i}",
        )
        for i in range(count)
    ]


class BuildCompactionSummaryTests(unittest.TestCase):
    def test_summary_lists_messages_before_recent_window(self) -> None:
        summary = build_compaction_summary(_messages(25), 0)

        lines = summary.splitlines()
        self.assertEqual("## Memory Summary", lines[0])
        self.assertEqual(13, len(lines) - 1)
        self.assertEqual("- user: message 0", lines[1])
        self.assertEqual("- user: message 12", lines[-1])

    def test_recent_messages_never_summarized(self) -> None:
        messages = _messages(40)
        summary = build_compaction_summary(messages, 0)

        for message in messages[-KEEP_RECENT_MESSAGES:]:
            self.assertNotIn(f": {message.content}\n", summary + "\n")

    def test_summary_keeps_last_sixteen_candidates(self) -> None:
        summary = build_compaction_summary(_messages(40), 0)

        lines = summary.splitlines()[1:]
        self.assertEqual(16, len(lines))
        self.assertEqual("- user: message 12", lines[0])
        self.assertEqual("- assistant: message 27", lines[-1])

    def test_window_below_minimum_gives_empty_summary(self) -> None:
        self.assertEqual("", build_compaction_summary(_messages(25), 20))
        self.assertEqual("", build_compaction_summary(_messages(17), 0))

    def test_system_messages_do_not_count(self) -> None:
        messages = _messages(30, role_cycle=("user", "system", "system", "system"))
        self.assertEqual("", build_compaction_summary(messages, 0))

    def test_watermark_is_clamped(self) -> None:
        self.assertEqual(
            build_compaction_summary(_messages(30), 0),
            build_compaction_summary(_messages(30), -5),
        )
        self.assertEqual("", build_compaction_summary(_messages(30), 1000))

    def test_long_lines_are_trimmed_and_truncated(self) -> None:
        messages = _messages(24)
        messages[0] = HistoryMessage("m0", "user", "t", "   " + "x" * 200 + "   ")
        summary = build_compaction_summary(messages, 0)

        self.assertIn("- user: " + "x" * 120 + "...", summary)
        self.assertNotIn("x" * 121, summary)


class MemoryCompactorTests(SessionStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._compactor = MemoryCompactor(self._sessions)
        self._record = self._sessions.get_or_create("chat:1")

    def _snapshot(self, *, memory_enabled: bool = True) -> CompactionSnapshot:
        current = self._sessions.get_active("chat:1")
        return CompactionSnapshot("chat:1", current.session_id, memory_enabled, current.compacted_message_count)

    def test_skips_when_memory_disabled(self) -> None:
        self._append_turns(self._record.session_id, 30)
        self.assertFalse(self._compactor.compact_if_needed(self._snapshot(memory_enabled=False)))

    def test_skips_at_or_below_trigger(self) -> None:
        self._append_turns(self._record.session_id, 24)
        self.assertFalse(self._compactor.compact_if_needed(self._snapshot()))
        self.assertFalse(self._sessions.memory_path("chat:1").exists())

    def test_watermark_is_monotonic_across_compactions(self) -> None:
        self._append_turns(self._record.session_id, 30)
        self.assertTrue(self._compactor.compact_if_needed(self._snapshot()))
        first = self._sessions.get_active("chat:1").compacted_message_count
        self.assertEqual(18, first)

        self._append_turns(self._record.session_id, 2)
        self.assertFalse(self._compactor.compact_if_needed(self._snapshot()))
        self.assertEqual(first, self._sessions.get_active("chat:1").compacted_message_count)

        self._append_turns(self._record.session_id, 6)
        self.assertTrue(self._compactor.compact_if_needed(self._snapshot()))
        self.assertEqual(26, self._sessions.get_active("chat:1").compacted_message_count)

    def test_memory_file_is_append_only(self) -> None:
        self._append_turns(self._record.session_id, 30)
        self._compactor.compact_if_needed(self._snapshot())
        before = self._sessions.memory_path("chat:1").read_text(encoding="utf-8")

        self._append_turns(self._record.session_id, 8)
        self._compactor.compact_if_needed(self._snapshot())
        after = self._sessions.memory_path("chat:1").read_text(encoding="utf-8")

        self.assertTrue(after.startswith(before))
        self.assertEqual(2, after.count("## Memory Summary"))


if __name__ == "__main__":
    unittest.main()
