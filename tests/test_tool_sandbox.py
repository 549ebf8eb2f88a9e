import asyncio
import time
import unittest

from tests.fakes import ScriptedTool, tool_context
from turn_orchestrator.contracts import ToolCall, ToolResult
from turn_orchestrator.tool_executor import ToolExecutor
from turn_orchestrator.tool_registry import ToolRegistry
from turn_orchestrator.tool_sandbox import FifoGate, ToolSandbox, ToolSandboxOptions


def _sandbox(tools, **options) -> ToolSandbox:
    return ToolSandbox(ToolExecutor(ToolRegistry(tools)), ToolSandboxOptions(**options))


class _RaisingExecutor:
    async def execute(self, call, context):
        raise RuntimeError("executor exploded")


class ToolSandboxTests(unittest.TestCase):
    def test_options_are_normalized(self) -> None:
        sandbox = _sandbox([], timeout_ms=0, max_concurrent_tools=2.7, retry_attempts=float("nan"))

        self.assertEqual(1, sandbox.timeout_ms)
        self.assertEqual(2, sandbox.max_concurrent_tools)
        self.assertEqual(1, sandbox.retry_policy.max_attempts)

    def test_disallowed_tool_is_rejected_without_running(self) -> None:
        tool = ScriptedTool("test.blocked")
        sandbox = _sandbox([tool], allow_list=["Time.Now"], retry_attempts=3, retry_delay_ms=1000)

        started = time.monotonic()
        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.blocked"), tool_context()))
        elapsed = time.monotonic() - started

        self.assertFalse(log.result.ok)
        self.assertEqual("tool_not_found", log.result.error.code)
        self.assertEqual("tool not allowed: test.blocked", log.result.error.message)
        self.assertEqual(0, log.result.meta.duration_ms)
        self.assertEqual([], tool.calls)
        self.assertEqual(0, sandbox.peak_active)
        self.assertLess(elapsed, 0.5)

    def test_allow_list_is_case_insensitive(self) -> None:
        tool = ScriptedTool("test.echo")
        sandbox = _sandbox([tool], allow_list=[" TEST.ECHO "])

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.echo"), tool_context()))

        self.assertTrue(log.result.ok)

    def test_concurrency_is_bounded_and_fifo(self) -> None:
        tool = ScriptedTool(
            "test.slow", delay=0.05, schema={"type": "object", "properties": {"n": {"type": "number"}}}
        )
        sandbox = _sandbox([tool], max_concurrent_tools=2)

        async def run_all():
            calls = [ToolCall(id=f"c{n}", name="test.slow", args={"n": n}) for n in range(5)]
            return await asyncio.gather(*(sandbox.execute(c, tool_context()) for c in calls))

        logs = asyncio.run(run_all())

        self.assertTrue(all(log.result.ok for log in logs))
        self.assertEqual(2, tool.peak)
        self.assertEqual(2, sandbox.peak_active)
        self.assertEqual([0, 1, 2, 3, 4], tool.started)
        self.assertEqual(0, sandbox.active_count)

    def test_retries_with_exponential_backoff(self) -> None:
        stamps: list[float] = []

        class FlakyTool(ScriptedTool):
            async def execute(self, context, args):
                stamps.append(time.monotonic())
                return await super().execute(context, args)

        tool = FlakyTool("test.flaky", [
            ToolResult.failure("test.flaky", "first"),
            ToolResult.failure("test.flaky", "second"),
            ToolResult.success("third time lucky"),
        ])
        sandbox = _sandbox([tool], retry_attempts=3, retry_delay_ms=100)

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.flaky"), tool_context()))

        self.assertTrue(log.result.ok)
        self.assertEqual(3, len(stamps))
        self.assertGreaterEqual(stamps[1] - stamps[0], 0.09)
        self.assertGreaterEqual(stamps[2] - stamps[1], 0.18)
        self.assertGreaterEqual(log.result.meta.duration_ms, 270)

    def test_non_retryable_code_is_not_retried(self) -> None:
        tool = ScriptedTool("test.flaky", [ToolResult.failure("test.flaky", "boom")])
        sandbox = _sandbox([tool], retry_attempts=3, retry_delay_ms=10, retryable_error_codes=["invalid_args"])

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.flaky"), tool_context()))

        self.assertFalse(log.result.ok)
        self.assertEqual(1, len(tool.calls))

    def test_timeout_reports_execution_error(self) -> None:
        tool = ScriptedTool("test.hang", delay=1.0)
        sandbox = _sandbox([tool], timeout_ms=50)

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.hang"), tool_context()))

        self.assertFalse(log.result.ok)
        self.assertEqual("execution_error", log.result.error.code)
        self.assertEqual('tool "test.hang" timeout after 50ms', log.result.error.message)
        self.assertEqual(0, sandbox.active_count)

    def test_executor_exception_is_contained(self) -> None:
        sandbox = ToolSandbox(_RaisingExecutor(), ToolSandboxOptions())

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.any"), tool_context()))

        self.assertEqual("execution_error", log.result.error.code)
        self.assertEqual("executor exploded", log.result.error.message)

    def test_duration_is_at_least_one_ms(self) -> None:
        sandbox = _sandbox([ScriptedTool("test.fast")])

        log = asyncio.run(sandbox.execute(ToolCall(id="c1", name="test.fast"), tool_context()))

        self.assertGreaterEqual(log.result.meta.duration_ms, 1)


class FifoGateTests(unittest.TestCase):
    def test_cancelled_waiter_does_not_leak_slot(self) -> None:
        async def scenario() -> int:
            gate = FifoGate(1)
            await gate.acquire()
            waiter = asyncio.ensure_future(gate.acquire())
            await asyncio.sleep(0)
            waiter.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await waiter
            gate.release()
            await gate.acquire()
            active = gate.active
            gate.release()
            return active

        self.assertEqual(1, asyncio.run(scenario()))


if __name__ == "__main__":
    unittest.main()
