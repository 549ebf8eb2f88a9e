import asyncio
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult
from turn_orchestrator.tools.paths import resolve_path


class EditFileTool:
    @property
    def name(self) -> str:
        return "fs.edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit a file by replacing an exact text fragment. "
            "Only the first match is replaced unless all is true."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute path, or path relative to the working directory",
                },
                "search": {
                    "type": "string",
                    "description": "Exact text to replace",
                },
                "replace": {
                    "type": "string",
                    "description": "Replacement text",
                },
                "all": {
                    "type": "boolean",
                    "description": "Replace every match instead of the first one",
                },
            },
            "required": ["path", "search", "replace"],
        }

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        if not args["path"].strip():
            return ToolResult.failure(self.name, "path is required", "invalid_args")
        search = args["search"]
        if not search:
            return ToolResult.failure(self.name, "search must be a non-empty string", "invalid_args")

        target = resolve_path(context, args["path"])
        try:
            raw = await asyncio.to_thread(target.read_text, encoding="utf-8")
            count = -1 if args.get("all") is True else 1
            updated = raw.replace(search, args["replace"], count)
            if updated == raw:
                return ToolResult.failure(self.name, "search text not found")
            await asyncio.to_thread(target.write_text, updated, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as ex:
            return ToolResult.failure(self.name, str(ex))
        return ToolResult.success(f"edited {target}", {"path": str(target)})
