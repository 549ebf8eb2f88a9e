from typing import Any, Protocol, runtime_checkable

from turn_orchestrator.contracts import ToolContext, ToolResult


@runtime_checkable
class Tool(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    async def execute(self, context: ToolContext, args: dict[str, Any]) -> ToolResult: ...
