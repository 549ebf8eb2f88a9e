from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult


class EchoTool:
    @property
    def name(self) -> str:
        return "tools.echo"

    @property
    def description(self) -> str:
        return "Echo the given message back."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {
                    "type": "string",
                    "description": "The message to echo",
                },
            },
            "required": ["message"],
        }

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        message = args.get("message", "")
        return ToolResult.success(message, {"message": message})
