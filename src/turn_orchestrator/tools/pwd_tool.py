import os
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult


class PwdTool:
    @property
    def name(self) -> str:
        return "shell.pwd"

    @property
    def description(self) -> str:
        return "Return the current working directory."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        cwd = context.cwd or os.getcwd()
        return ToolResult.success(cwd, {"cwd": cwd})
