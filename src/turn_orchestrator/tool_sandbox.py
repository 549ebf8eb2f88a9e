from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from loguru import logger

from turn_orchestrator.contracts import (
    TOOL_ERROR_CODES,
    ToolCall,
    ToolContext,
    ToolError,
    ToolExecutionLog,
    ToolMeta,
    ToolResult,
)
from turn_orchestrator.retry_policy import RetryPolicy
from turn_orchestrator.tool_executor import ToolExecutor
from turn_orchestrator.tool_registry import is_tool_allowed, normalize_allow_list

DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_CONCURRENT_TOOLS = 2
DEFAULT_RETRY_ATTEMPTS = 1
DEFAULT_RETRY_DELAY_MS = 250


def _normalize_number(raw: object, fallback: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
        return fallback
    return max(1, math.floor(raw))


@dataclass
class ToolSandboxOptions:
    allow_list: list[str] = field(default_factory=list)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_concurrent_tools: int = DEFAULT_MAX_CONCURRENT_TOOLS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    retryable_error_codes: Iterable[str] | None = None


class FifoGate:
    """Counting semaphore that admits waiters strictly in arrival order."""

    def __init__(self, limit: int):
        self._limit = max(1, limit)
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def active(self) -> int:
        return self._active

    async def acquire(self) -> None:
        if self._active < self._limit and not self._waiters:
            self._active += 1
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on.
                self.release()
            else:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # The slot moves to the waiter; active stays the same.
                waiter.set_result(None)
                return
        if self._active > 0:
            self._active -= 1


class ToolSandbox:
    """Runs tool calls behind an allow-list, a concurrency bound, a timeout and retries.

    ``execute`` never raises. A timed-out coroutine tool is cancelled; blocking work a
    tool has handed to a worker thread keeps running after the timeout is reported.
    """

    def __init__(self, executor: ToolExecutor, options: ToolSandboxOptions | None = None):
        opts = options or ToolSandboxOptions()
        self._executor = executor
        self._allow_list = sorted(normalize_allow_list(opts.allow_list))
        self._timeout_ms = _normalize_number(opts.timeout_ms, DEFAULT_TIMEOUT_MS)
        self._max_concurrent = _normalize_number(opts.max_concurrent_tools, DEFAULT_MAX_CONCURRENT_TOOLS)
        self._retry_policy = RetryPolicy.create(
            _normalize_number(opts.retry_attempts, DEFAULT_RETRY_ATTEMPTS),
            _normalize_number(opts.retry_delay_ms, DEFAULT_RETRY_DELAY_MS),
            [c for c in (opts.retryable_error_codes or ()) if c in TOOL_ERROR_CODES],
        )
        self._gate = FifoGate(self._max_concurrent)
        self._peak_active = 0

    @property
    def allow_list(self) -> list[str]:
        return list(self._allow_list)

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @property
    def max_concurrent_tools(self) -> int:
        return self._max_concurrent

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def active_count(self) -> int:
        return self._gate.active

    @property
    def peak_active(self) -> int:
        return self._peak_active

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolExecutionLog:
        if not is_tool_allowed(call.name, self._allow_list):
            return _failure_log(call, "tool_not_found", f"tool not allowed: {call.name}")

        await self._gate.acquire()
        self._peak_active = max(self._peak_active, self._gate.active)
        started = time.monotonic()
        attempts = 0

        async def attempt() -> ToolExecutionLog:
            nonlocal attempts
            attempts += 1
            try:
                return await asyncio.wait_for(
                    self._executor.execute(call, context),
                    timeout=self._timeout_ms / 1000,
                )
            except TimeoutError:
                return _failure_log(
                    call, "execution_error", f'tool "{call.name}" timeout after {self._timeout_ms}ms'
                )
            except Exception as ex:
                return _failure_log(call, "execution_error", str(ex) or "tool execution failed")

        try:
            log = await self._retry_policy.run(attempt)
        finally:
            self._gate.release()

        duration_ms = max(1, int((time.monotonic() - started) * 1000))
        meta = replace(log.result.meta, duration_ms=duration_ms) if log.result.meta else ToolMeta(
            tool=call.name, duration_ms=duration_ms
        )
        logger.debug(
            f"Tool {call.name} finished: ok={log.result.ok}, attempts={attempts}, duration={duration_ms}ms"
        )
        return ToolExecutionLog(call=log.call, result=replace(log.result, meta=meta))


def _failure_log(call: ToolCall, code: str, message: str) -> ToolExecutionLog:
    return ToolExecutionLog(
        call=call,
        result=ToolResult(
            ok=False,
            error=ToolError(code=code, tool=call.name, message=message),
            meta=ToolMeta(tool=call.name, duration_ms=0),
        ),
    )
