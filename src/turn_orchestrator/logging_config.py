import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level:<8}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


@runtime_checkable
class LogConsumer(Protocol):
    level: str

    def register(self) -> None: ...
    def describe(self) -> str: ...


@dataclass
class ConsoleLogConsumer:
    level: str = "WARNING"

    def register(self) -> None:
        logger.add(sys.stderr, level=self.level, format=_CONSOLE_FORMAT)

    def describe(self) -> str:
        return f"console (stderr, {self.level})"


@dataclass
class FileLogConsumer:
    level: str = "INFO"
    path: str = ".turn_orchestrator/orchestrator.log"
    rotation: str = "10 MB"
    retention: int = 3

    def register(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level=self.level,
            format=_FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
            encoding="utf-8",
        )

    def describe(self) -> str:
        return f"file ({self.path}, {self.level})"


def _is_trace_record(record: dict) -> bool:
    return "trace_event" in record["extra"]


@dataclass
class TraceLogConsumer:
    """JSON lines of trace events only; each record carries the event under extra.trace_event."""

    level: str = "DEBUG"
    path: str = ".turn_orchestrator/trace.jsonl"
    rotation: str = "10 MB"
    retention: int = 3

    def register(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level="DEBUG",
            filter=_is_trace_record,
            serialize=True,
            rotation=self.rotation,
            retention=self.retention,
            encoding="utf-8",
        )

    def describe(self) -> str:
        return f"trace ({self.path})"


_CONSUMERS: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "trace": TraceLogConsumer,
}

_DEFAULT_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


def build_consumer(config: dict[str, Any], default_level: str) -> LogConsumer | None:
    """Turn one ``LogConsumers`` entry into a consumer; unknown types give None."""
    consumer_type = _CONSUMERS.get(str(config.get("type", "")).strip().lower())
    if consumer_type is None:
        return None
    options = {k: v for k, v in config.items() if k != "type"}
    options.setdefault("level", default_level)
    return consumer_type(**options)


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace every loguru sink with the configured consumers and describe each one."""
    logger.remove()

    descriptions: list[str] = []
    for config in consumers if consumers is not None else _DEFAULT_CONSUMERS:
        consumer = build_consumer(config, level)
        if consumer is None:
            logger.warning(f"Unknown log consumer type: {config.get('type')!r}")
            continue
        consumer.register()
        descriptions.append(consumer.describe())

    return descriptions
