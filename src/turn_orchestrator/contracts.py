from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

ToolErrorCode = Literal["tool_not_found", "invalid_args", "execution_error"]
MessageRole = Literal["user", "assistant", "system"]

TOOL_ERROR_CODES: tuple[str, ...] = ("tool_not_found", "invalid_args", "execution_error")


# === Session data ===


@dataclass(frozen=True)
class SessionRecord:
    session_key: str
    session_id: str
    created_at: str
    updated_at: str
    is_new_session: bool
    memory_enabled: bool
    compacted_message_count: int


@dataclass(frozen=True)
class HistoryMessage:
    id: str
    role: MessageRole
    timestamp: str
    content: str


@dataclass(frozen=True)
class SessionTurnResult:
    route: str
    stage: str
    result: str
    provider: str
    profile_id: str


@dataclass(frozen=True)
class CompactionSnapshot:
    session_key: str
    session_id: str
    memory_enabled: bool
    compacted_message_count: int


# === Tool data ===


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class ToolCall:
    id: str
    name: str
    args: Any = None
    source: str | None = None


@dataclass(frozen=True)
class ToolError:
    code: str
    tool: str
    message: str


@dataclass
class ToolMeta:
    tool: str
    duration_ms: int = 0


@dataclass
class ToolResult:
    ok: bool
    content: str | None = None
    data: Any = None
    error: ToolError | None = None
    meta: ToolMeta | None = None

    @classmethod
    def success(cls, content: str, data: Any = None) -> ToolResult:
        return cls(ok=True, content=content, data=data)

    @classmethod
    def failure(cls, tool: str, message: str, code: str = "execution_error") -> ToolResult:
        return cls(ok=False, error=ToolError(code=code, tool=tool, message=message))


@dataclass
class ToolExecutionLog:
    call: ToolCall
    result: ToolResult


@dataclass(frozen=True)
class ToolContext:
    request_id: str
    session_id: str
    session_key: str
    cwd: str


# === Runtime data ===


@dataclass(frozen=True)
class TextReply:
    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ToolCallReply:
    text: str
    tool_calls: tuple[ToolCall, ...]
    kind: Literal["tool_calls"] = "tool_calls"


AssistantMessage = TextReply | ToolCallReply


@dataclass(frozen=True)
class TurnContext:
    memory_snippet: str
    prior_messages: list[HistoryMessage]
    tools: list[ToolSpec]


@dataclass
class RuntimeInput:
    request_id: str
    created_at: str
    input: str
    session_key: str
    session_id: str
    prior_messages: list[HistoryMessage]
    memory_snippet: str
    provider: str
    profile_id: str
    with_tools: bool
    tool_allow: list[str]
    tools: list[ToolSpec] = field(default_factory=list)
    memory_enabled: bool = False
    cwd: str | None = None
    system_prompt: str | None = None


@dataclass
class RuntimeResult:
    route: str
    stage: str
    result: str
    provider: str
    profile_id: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolExecutionLog] = field(default_factory=list)
    stop_reason: str | None = None
    assistant_message: AssistantMessage | None = None


# === Coordinator surface ===


@dataclass(frozen=True)
class RunAgentOptions:
    provider: str
    profile_id: str
    session_key: str
    new_session: bool = False
    memory: bool | None = None
    with_tools: bool = True
    tool_allow: tuple[str, ...] = ()
    cwd: str | None = None


@dataclass(frozen=True)
class CoreOutcome:
    request_id: str
    session_key: str
    session_id: str
    text: str
    is_new_session: bool = False


# === Ports ===


@runtime_checkable
class SessionPort(Protocol):
    async def resolve_session(
        self,
        session_key: str,
        provider: str,
        profile_id: str,
        *,
        force_new: bool = False,
        memory: bool | None = None,
    ) -> SessionRecord: ...

    async def load_history(self, session_id: str) -> list[HistoryMessage]: ...

    async def load_memory_snippet(self, session_key: str) -> str: ...

    async def append_turn_messages(
        self,
        session_id: str,
        user_input: str,
        turn_result: SessionTurnResult,
    ) -> None: ...

    async def append_tool_summary(
        self,
        session_id: str,
        calls: list[ToolCall],
        results: list[ToolExecutionLog],
        route: str,
        stage: str,
        provider: str,
        profile_id: str,
    ) -> None: ...

    async def mark_route_usage(self, session_key: str, route: str, profile_id: str, provider: str) -> None: ...

    async def compact_if_needed(self, snapshot: CompactionSnapshot) -> bool: ...

    def resolve_memory_path(self, session_key: str) -> str: ...


@runtime_checkable
class ToolsPort(Protocol):
    def list_tools(self, allow_list: list[str] | None = None) -> list[ToolSpec]: ...

    async def execute_tool(self, call: ToolCall, context: ToolContext) -> ToolExecutionLog: ...

    def first_tool_error_from_logs(self, logs: list[ToolExecutionLog] | None) -> ToolError | None: ...


@runtime_checkable
class RuntimePort(Protocol):
    async def run(self, runtime_input: RuntimeInput) -> RuntimeResult: ...
