from datetime import UTC, datetime
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult


class TimeNowTool:
    @property
    def name(self) -> str:
        return "time.now"

    @property
    def description(self) -> str:
        return "Return the current Unix timestamp (ms) and ISO-8601 time."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        now = datetime.now(UTC)
        timestamp = int(now.timestamp() * 1000)
        iso = now.isoformat(timespec="milliseconds")
        return ToolResult.success(f"timestamp={timestamp}, iso={iso}", {"timestamp": timestamp, "iso": iso})
