from tests.memory.base import SessionStoreTestCase


class SessionStoreTests(SessionStoreTestCase):
    def test_first_resolution_creates_session(self) -> None:
        record = self._sessions.get_or_create("chat:1", "stub", "default")

        self.assertTrue(record.is_new_session)
        self.assertEqual("chat:1", record.session_key)
        self.assertTrue(record.memory_enabled)
        self.assertEqual(0, record.compacted_message_count)

    def test_second_resolution_reuses_session(self) -> None:
        first = self._sessions.get_or_create("chat:1", "stub", "default")
        second = self._sessions.get_or_create("chat:1", "stub", "default")

        self.assertFalse(second.is_new_session)
        self.assertEqual(first.session_id, second.session_id)

    def test_force_new_rebinds_key(self) -> None:
        first = self._sessions.get_or_create("chat:1")
        fresh = self._sessions.get_or_create("chat:1", force_new=True)

        self.assertTrue(fresh.is_new_session)
        self.assertNotEqual(first.session_id, fresh.session_id)
        self.assertEqual(fresh.session_id, self._sessions.get_active("chat:1").session_id)

    def test_explicit_memory_flag_updates_existing_session(self) -> None:
        self._sessions.get_or_create("chat:1")
        record = self._sessions.get_or_create("chat:1", memory=False)
        self.assertFalse(record.memory_enabled)

        record = self._sessions.get_or_create("chat:1")
        self.assertFalse(record.memory_enabled)

    def test_recent_messages_are_limited_and_ordered(self) -> None:
        record = self._sessions.get_or_create("chat:1")
        self._append_turns(record.session_id, 20)

        recent = self._sessions.load_recent_messages(record.session_id)

        self.assertEqual(12, len(recent))
        self.assertEqual("message 8", recent[0].content)
        self.assertEqual("message 19", recent[-1].content)

    def test_watermark_never_moves_backwards(self) -> None:
        record = self._sessions.get_or_create("chat:1")

        self.assertEqual(10, self._sessions.advance_watermark(record.session_id, 10))
        self.assertEqual(10, self._sessions.advance_watermark(record.session_id, 4))
        self.assertEqual(10, self._sessions.get_active("chat:1").compacted_message_count)

    def test_record_route_is_noop_for_unknown_key(self) -> None:
        self._sessions.record_route("missing", "stub", "default", "stub")
        row = self._store.execute("SELECT COUNT(*) AS c FROM sessions").fetchone()
        self.assertEqual(0, int(row["c"]))

    def test_record_route_updates_active_session(self) -> None:
        record = self._sessions.get_or_create("chat:1")
        self._sessions.record_route("chat:1", "anthropic", "work", "anthropic")

        row = self._store.execute(
            "SELECT route, profile_id, provider FROM sessions WHERE id = ?",
            (record.session_id,),
        ).fetchone()
        self.assertEqual(("anthropic", "work", "anthropic"), (row["route"], row["profile_id"], row["provider"]))

    def test_memory_snippet_empty_when_file_missing(self) -> None:
        self._sessions.get_or_create("chat:1")
        self.assertEqual("", self._sessions.load_memory_snippet("chat:1"))

    def test_memory_snippet_returns_appended_summaries(self) -> None:
        record = self._sessions.get_or_create("chat:1")
        self._sessions.append_memory("chat:1", record.session_id, "## Memory Summary\n- user: hi")
        self._sessions.append_memory("chat:1", record.session_id, "## Memory Summary\n- user: again")

        snippet = self._sessions.load_memory_snippet("chat:1")

        self.assertIn("- user: hi", snippet)
        self.assertTrue(snippet.endswith("- user: again"))

    def test_memory_snippet_empty_when_memory_disabled(self) -> None:
        record = self._sessions.get_or_create("chat:1", memory=False)
        self._sessions.append_memory("chat:1", record.session_id, "## Memory Summary\n- user: hi")

        self.assertEqual("", self._sessions.load_memory_snippet("chat:1"))

    def test_memory_snippet_keeps_trailing_characters(self) -> None:
        from turn_orchestrator.memory import SessionStore

        sessions = SessionStore(self._store, str(self._tmp_dir / "memory"), memory_snippet_chars=10)
        record = sessions.get_or_create("chat:1")
        sessions.append_memory("chat:1", record.session_id, "0123456789abcdefghij")

        self.assertEqual("abcdefghij", sessions.load_memory_snippet("chat:1"))

    def test_memory_paths_differ_for_keys_that_sanitize_alike(self) -> None:
        self.assertNotEqual(self._sessions.memory_path("a:b"), self._sessions.memory_path("a_b"))
