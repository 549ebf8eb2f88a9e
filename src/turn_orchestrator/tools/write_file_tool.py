import asyncio
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult
from turn_orchestrator.tools.paths import resolve_path


class WriteFileTool:
    @property
    def name(self) -> str:
        return "fs.write_file"

    @property
    def description(self) -> str:
        return "Write content to a file, overwriting it if it exists."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute path, or path relative to the working directory",
                },
                "content": {
                    "type": "string",
                    "description": "The content to write to the file",
                },
                "createDir": {
                    "type": "boolean",
                    "description": "Create missing parent directories",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        if not args["path"].strip():
            return ToolResult.failure(self.name, "path is required", "invalid_args")
        target = resolve_path(context, args["path"])
        try:
            if args.get("createDir") is True:
                target.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(target.write_text, args["content"], encoding="utf-8")
        except OSError as ex:
            return ToolResult.failure(self.name, str(ex))
        return ToolResult.success(f"wrote {target}", {"path": str(target)})
