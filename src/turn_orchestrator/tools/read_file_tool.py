import asyncio
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult
from turn_orchestrator.tools.paths import resolve_path

_DEFAULT_MAX_BYTES = 204_800


class ReadFileTool:
    @property
    def name(self) -> str:
        return "fs.read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a text file, refusing files larger than maxBytes."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Absolute path, or path relative to the working directory",
                },
                "maxBytes": {
                    "type": "number",
                    "description": f"Maximum file size to read, default {_DEFAULT_MAX_BYTES}",
                },
            },
            "required": ["path"],
        }

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        raw_max = args.get("maxBytes")
        max_bytes = int(raw_max) if isinstance(raw_max, (int, float)) and raw_max > 0 else _DEFAULT_MAX_BYTES
        target = resolve_path(context, args["path"])
        try:
            if not target.is_file():
                return ToolResult.failure(self.name, "target path is not a file")
            size = target.stat().st_size
            if size > max_bytes:
                return ToolResult.failure(self.name, f"file size exceeds maxBytes ({size} > {max_bytes})")
            content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as ex:
            return ToolResult.failure(self.name, str(ex))
        return ToolResult.success(content, {"path": str(target), "size": size, "maxBytes": max_bytes})
