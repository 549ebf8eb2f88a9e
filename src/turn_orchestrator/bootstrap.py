from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from turn_orchestrator.app_config import AppConfig, RuntimeEnv
from turn_orchestrator.coordinator import Coordinator, build_coordinator
from turn_orchestrator.errors import CoreError
from turn_orchestrator.events import EventSink, FanoutEventSink, LoggingEventSink
from turn_orchestrator.logging_config import setup_logging
from turn_orchestrator.memory import AsyncEventSink, SessionService, SessionStore, SessionStoreDb, prune_store
from turn_orchestrator.provider import ProviderRouter
from turn_orchestrator.providers.stub_runtime import StubRuntime
from turn_orchestrator.tool_executor import ToolExecutor
from turn_orchestrator.tool_registry import ToolRegistry
from turn_orchestrator.tool_sandbox import ToolSandbox, ToolSandboxOptions
from turn_orchestrator.tools_service import ToolsService


@dataclass
class AppRuntime:
    coordinator: Coordinator
    store: SessionStoreDb
    event_sink: AsyncEventSink | None
    registry: ToolRegistry
    sandbox: ToolSandbox
    router: ProviderRouter
    log_descriptions: list[str]

    async def close(self) -> None:
        if self.event_sink is not None:
            await self.event_sink.close()
        self.store.close()


def _resolve_path(raw: str) -> Path:
    path = Path(raw)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def build_router(app: AppConfig, env: RuntimeEnv, tools: ToolsService) -> ProviderRouter:
    def anthropic_factory():
        if not env.anthropic_api_key:
            raise CoreError("ANTHROPIC_API_KEY environment variable is required", "MISSING_PROVIDER")

        from turn_orchestrator.providers.anthropic_runtime import AnthropicRuntime

        return AnthropicRuntime(
            tools,
            api_key=env.anthropic_api_key,
            model=app.model,
            max_tokens=app.max_tokens,
            temperature=app.temperature,
            max_steps=app.tool_max_steps,
        )

    return ProviderRouter(
        {
            "stub": lambda: StubRuntime(tools),
            "anthropic": anthropic_factory,
        }
    )


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    store = SessionStoreDb(str(_resolve_path(app.store_db_path)))
    prune_store(
        store,
        max_sessions=app.store_max_sessions,
        max_messages_per_session=app.store_max_messages_per_session,
        retention_days=app.store_retention_days,
    )

    sinks: list[EventSink] = [LoggingEventSink()]
    event_sink: AsyncEventSink | None = None
    if app.persist_trace_events:
        event_sink = AsyncEventSink(store)
        await event_sink.start()
        sinks.append(event_sink)

    session_store = SessionStore(
        store,
        str(_resolve_path(app.memory_directory)),
        history_limit=app.history_limit,
        memory_snippet_chars=app.memory_snippet_chars,
    )
    session_service = SessionService(session_store)

    registry = ToolRegistry()
    sandbox = ToolSandbox(
        ToolExecutor(registry),
        ToolSandboxOptions(
            allow_list=app.tool_allow,
            timeout_ms=app.tool_timeout_ms,
            max_concurrent_tools=app.max_concurrent_tools,
            retry_attempts=app.tool_retry_attempts,
            retry_delay_ms=app.tool_retry_delay_ms,
        ),
    )
    tools_service = ToolsService(registry, sandbox, default_cwd=app.working_directory)
    router = build_router(app, env, tools_service)

    coordinator = build_coordinator(
        session_service,
        tools_service,
        router,
        FanoutEventSink(sinks),
    )

    return AppRuntime(
        coordinator=coordinator,
        store=store,
        event_sink=event_sink,
        registry=registry,
        sandbox=sandbox,
        router=router,
        log_descriptions=log_descriptions,
    )
