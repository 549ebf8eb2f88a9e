from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from turn_orchestrator.contracts import TOOL_ERROR_CODES, ToolExecutionLog


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff over tool execution logs.

    Attempt ``n`` (counted from 0) that fails with a retryable code waits
    ``base_delay_ms * multiplier ** n`` before the next attempt. When attempts
    run out the last log is returned, not raised.
    """

    max_attempts: int = 1
    base_delay_ms: int = 250
    multiplier: float = 2.0
    retryable_codes: frozenset[str] = frozenset(TOOL_ERROR_CODES)

    @classmethod
    def create(
        cls,
        max_attempts: int,
        base_delay_ms: int,
        retryable_codes: Iterable[str] | None = None,
    ) -> RetryPolicy:
        codes = frozenset(retryable_codes or ()) or frozenset(TOOL_ERROR_CODES)
        return cls(max_attempts=max(1, max_attempts), base_delay_ms=max(1, base_delay_ms), retryable_codes=codes)

    def delay_for(self, attempt: int) -> float:
        """Delay in milliseconds after the given zero-based attempt."""
        return self.base_delay_ms * (self.multiplier ** attempt)

    def should_retry(self, log: ToolExecutionLog) -> bool:
        if log.result.ok or log.result.error is None:
            return False
        code = log.result.error.code if log.result.error.code in TOOL_ERROR_CODES else "execution_error"
        return code in self.retryable_codes

    async def run(self, operation: Callable[[], Awaitable[ToolExecutionLog]]) -> ToolExecutionLog:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(multiplier=self.base_delay_ms / 1000, exp_base=self.multiplier),
            retry=retry_if_result(self.should_retry),
            before_sleep=_on_retry,
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(operation)


def _on_retry(retry_state: RetryCallState) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    log = retry_state.outcome.result() if retry_state.outcome else None
    reason = log.result.error.code if log is not None and log.result.error else "unknown"
    logger.debug(f"Tool {log.call.name if log else '?'} failed ({reason}). Retrying in {wait:.3f}s (attempt {attempt})")
