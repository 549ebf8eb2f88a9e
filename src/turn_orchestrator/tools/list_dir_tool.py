import asyncio
from pathlib import Path
from typing import Any

from turn_orchestrator.contracts import ToolContext, ToolResult
from turn_orchestrator.tools.paths import resolve_path


def _walk(target: Path, recursive: bool, max_depth: int, depth: int = 0) -> list[dict]:
    node: dict[str, Any] = {"depth": depth, "path": str(target), "children": []}
    nodes = [node]
    if depth >= max_depth:
        return nodes

    for entry in sorted(target.iterdir(), key=lambda p: p.name):
        if entry.is_dir() and recursive:
            nodes.extend(_walk(entry, True, max_depth, depth + 1))
            node["children"].append({"type": "directory", "name": entry.name, "path": str(entry)})
            continue
        kind = "directory" if entry.is_dir() else "file"
        node["children"].append({"type": kind, "name": entry.name, "path": str(entry)})
    return nodes


class ListDirTool:
    @property
    def name(self) -> str:
        return "fs.list_dir"

    @property
    def description(self) -> str:
        return "List directory contents, optionally recursing up to maxDepth levels."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory to list",
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Recurse into subdirectories",
                },
                "maxDepth": {
                    "type": "number",
                    "description": "Maximum recursion depth, default 4",
                },
            },
            "required": ["path"],
        }

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult:
        target = resolve_path(context, args["path"].strip() or ".")
        recursive = args.get("recursive") is True
        max_depth = max(1, int(args.get("maxDepth", 4)))
        try:
            nodes = await asyncio.to_thread(_walk, target, recursive, max_depth)
        except OSError as ex:
            return ToolResult.failure(self.name, str(ex))
        return ToolResult.success(
            f"listed {len(nodes)} paths under {target}",
            {"target": str(target), "recursive": recursive, "maxDepth": max_depth, "nodes": nodes},
        )
