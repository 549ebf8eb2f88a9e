from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class RuntimeEnv:
    anthropic_api_key: str | None


@dataclass
class AppConfig:
    provider: str = "stub"
    profile_id: str = "default"
    model: str = "claude-sonnet-4-5"
    max_tokens: int = 4096
    temperature: float = 0.2
    working_directory: str | None = None
    session_key: str = "cli:local"
    memory_enabled: bool = True
    store_db_path: str = ".turn_orchestrator/sessions.db"
    memory_directory: str = ".turn_orchestrator/memory"
    memory_snippet_chars: int = 4000
    history_limit: int = 12
    with_tools: bool = True
    tool_allow: list[str] = field(default_factory=list)
    tool_timeout_ms: int = 60_000
    max_concurrent_tools: int = 2
    tool_retry_attempts: int = 1
    tool_retry_delay_ms: int = 250
    tool_max_steps: int = 8
    persist_trace_events: bool = True
    store_max_sessions: int = 200
    store_max_messages_per_session: int = 5000
    store_retention_days: int = 30
    log_level: str = "INFO"
    log_consumers: list | None = None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part).strip() for part in value if str(part).strip()]


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider=str(config.get("Provider", "stub")).strip().lower(),
        profile_id=str(config.get("ProfileId", "default")).strip() or "default",
        model=config.get("Model", "claude-sonnet-4-5"),
        max_tokens=int(config.get("MaxTokens", 4096)),
        temperature=float(config.get("Temperature", 0.2)),
        working_directory=config.get("WorkingDirectory"),
        session_key=str(config.get("SessionKey", "cli:local")).strip() or "cli:local",
        memory_enabled=_to_bool(config.get("MemoryEnabled", True), default=True),
        store_db_path=str(config.get("StoreDbPath", ".turn_orchestrator/sessions.db")),
        memory_directory=str(config.get("MemoryDirectory", ".turn_orchestrator/memory")),
        memory_snippet_chars=int(config.get("MemorySnippetChars", 4000)),
        history_limit=int(config.get("HistoryLimit", 12)),
        with_tools=_to_bool(config.get("WithTools", True), default=True),
        tool_allow=_to_list(config.get("ToolAllow")),
        tool_timeout_ms=int(config.get("ToolTimeoutMs", 60_000)),
        max_concurrent_tools=int(config.get("MaxConcurrentTools", 2)),
        tool_retry_attempts=int(config.get("ToolRetryAttempts", 1)),
        tool_retry_delay_ms=int(config.get("ToolRetryDelayMs", 250)),
        tool_max_steps=int(config.get("ToolMaxSteps", 8)),
        persist_trace_events=_to_bool(config.get("PersistTraceEvents", True), default=True),
        store_max_sessions=int(config.get("StoreMaxSessions", 200)),
        store_max_messages_per_session=int(config.get("StoreMaxMessagesPerSession", 5000)),
        store_retention_days=int(config.get("StoreRetentionDays", 30)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
    )
