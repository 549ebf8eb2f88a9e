import asyncio
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult


def tool_context(cwd: str = ".") -> ToolContext:
    return ToolContext(request_id="req-1", session_id="sess-1", session_key="chat:1", cwd=cwd)


class ScriptedTool:
    """Tool whose behaviour is driven by a list of outcomes, one per call."""

    def __init__(
        self,
        name: str,
        outcomes: list[Any] | None = None,
        *,
        delay: float = 0.0,
        schema: dict | None = None,
    ):
        self._name = name
        self._outcomes = list(outcomes or [])
        self._delay = delay
        self._schema = schema or {"type": "object", "properties": {}}
        self.calls: list[dict] = []
        self.active = 0
        self.peak = 0
        self.started: list[Any] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"scripted {self._name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._schema

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        self.calls.append(args)
        self.started.append(args.get("n"))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            outcome = self._outcomes.pop(0) if self._outcomes else ToolResult.success("ok")
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1
