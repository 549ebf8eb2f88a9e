import asyncio
import os
import tempfile
import unittest
from pathlib import Path

from tests.fakes import tool_context
from turn_orchestrator.tools import (
    EchoTool,
    EditFileTool,
    ListDirTool,
    PwdTool,
    ReadFileTool,
    TimeNowTool,
    WriteFileTool,
)


class BuiltinToolsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.context = tool_context(str(self.root))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, tool, args):
        return asyncio.run(tool.execute(self.context, args))

    # -- simple tools --

    def test_echo_returns_message(self) -> None:
        result = self._run(EchoTool(), {"message": "hello"})

        self.assertTrue(result.ok)
        self.assertEqual("hello", result.content)
        self.assertEqual(["message"], EchoTool().input_schema["required"])

    def test_time_now_reports_timestamp_and_iso(self) -> None:
        result = self._run(TimeNowTool(), {})

        self.assertTrue(result.ok)
        self.assertIsInstance(result.data["timestamp"], int)
        self.assertIn(f"iso={result.data['iso']}", result.content)

    def test_pwd_uses_context_cwd(self) -> None:
        result = self._run(PwdTool(), {})

        self.assertEqual(str(self.root), result.content)

    # -- fs.read_file --

    def test_read_file_relative_to_cwd(self) -> None:
        (self.root / "notes.txt").write_text("line one\n", encoding="utf-8")

        result = self._run(ReadFileTool(), {"path": "notes.txt"})

        self.assertTrue(result.ok)
        self.assertEqual("line one\n", result.content)

    def test_read_file_rejects_directory(self) -> None:
        result = self._run(ReadFileTool(), {"path": "."})

        self.assertFalse(result.ok)
        self.assertEqual("target path is not a file", result.error.message)

    def test_read_file_enforces_max_bytes(self) -> None:
        (self.root / "big.txt").write_text("x" * 20, encoding="utf-8")

        result = self._run(ReadFileTool(), {"path": "big.txt", "maxBytes": 10})

        self.assertFalse(result.ok)
        self.assertEqual("file size exceeds maxBytes (20 > 10)", result.error.message)

    # -- fs.write_file --

    def test_write_file_creates_parent_dirs(self) -> None:
        result = self._run(WriteFileTool(), {"path": "a/b/out.txt", "content": "data", "createDir": True})

        target = self.root / "a" / "b" / "out.txt"
        self.assertTrue(result.ok)
        self.assertEqual(f"wrote {target}", result.content)
        self.assertEqual("data", target.read_text(encoding="utf-8"))

    def test_write_file_without_parent_fails(self) -> None:
        result = self._run(WriteFileTool(), {"path": "missing/out.txt", "content": "data"})

        self.assertFalse(result.ok)
        self.assertEqual("execution_error", result.error.code)

    def test_write_file_blank_path(self) -> None:
        result = self._run(WriteFileTool(), {"path": "  ", "content": "data"})

        self.assertEqual("invalid_args", result.error.code)

    # -- fs.edit_file --

    def test_edit_file_replaces_first_match(self) -> None:
        target = self.root / "edit.txt"
        target.write_text("foo foo", encoding="utf-8")

        result = self._run(EditFileTool(), {"path": "edit.txt", "search": "foo", "replace": "bar"})

        self.assertTrue(result.ok)
        self.assertEqual("bar foo", target.read_text(encoding="utf-8"))

    def test_edit_file_replaces_all(self) -> None:
        target = self.root / "edit.txt"
        target.write_text("foo foo", encoding="utf-8")

        self._run(EditFileTool(), {"path": "edit.txt", "search": "foo", "replace": "bar", "all": True})

        self.assertEqual("bar bar", target.read_text(encoding="utf-8"))

    def test_edit_file_search_not_found(self) -> None:
        (self.root / "edit.txt").write_text("abc", encoding="utf-8")

        result = self._run(EditFileTool(), {"path": "edit.txt", "search": "zzz", "replace": "y"})

        self.assertFalse(result.ok)
        self.assertEqual("search text not found", result.error.message)

    def test_edit_file_empty_search(self) -> None:
        result = self._run(EditFileTool(), {"path": "edit.txt", "search": "", "replace": "y"})

        self.assertEqual("invalid_args", result.error.code)

    # -- fs.list_dir --

    def test_list_dir_flat(self) -> None:
        (self.root / "sub").mkdir()
        (self.root / "sub" / "inner.txt").write_text("x", encoding="utf-8")
        (self.root / "top.txt").write_text("x", encoding="utf-8")

        result = self._run(ListDirTool(), {"path": "."})

        nodes = result.data["nodes"]
        self.assertEqual(1, len(nodes))
        names = [(c["type"], c["name"]) for c in nodes[0]["children"]]
        self.assertEqual([("directory", "sub"), ("file", "top.txt")], names)

    def test_list_dir_recursive_respects_depth(self) -> None:
        deep = self.root / "a" / "b" / "c"
        deep.mkdir(parents=True)

        result = self._run(ListDirTool(), {"path": ".", "recursive": True, "maxDepth": 2})

        depths = sorted(n["depth"] for n in result.data["nodes"])
        self.assertEqual([0, 1, 2], depths)
        self.assertEqual(2, result.data["maxDepth"])

    def test_list_dir_missing_path(self) -> None:
        result = self._run(ListDirTool(), {"path": os.path.join(str(self.root), "nope")})

        self.assertFalse(result.ok)


if __name__ == "__main__":
    unittest.main()
