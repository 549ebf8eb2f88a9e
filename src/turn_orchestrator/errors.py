from __future__ import annotations

from typing import Literal

CoreErrorCode = Literal[
    "VALIDATION_ERROR",
    "MISSING_PROVIDER",
    "SESSION_FAILURE",
    "RUNTIME_FAILURE",
    "TOOL_FAILURE",
    "INTERNAL_ERROR",
]

CORE_ERROR_CODES: frozenset[str] = frozenset(
    {
        "VALIDATION_ERROR",
        "MISSING_PROVIDER",
        "SESSION_FAILURE",
        "RUNTIME_FAILURE",
        "TOOL_FAILURE",
        "INTERNAL_ERROR",
    }
)

_FAILURE_HINTS: dict[str, str] = {
    "VALIDATION_ERROR": "The request was not valid. Check the input and options.",
    "MISSING_PROVIDER": "No model provider is configured for this request.",
    "SESSION_FAILURE": "The conversation state could not be loaded or saved.",
    "RUNTIME_FAILURE": "The model backend failed to produce a reply.",
    "TOOL_FAILURE": "The tool catalog could not be loaded.",
    "INTERNAL_ERROR": "Something went wrong while handling the request.",
}


class CoreError(Exception):
    """Error carrying one of the shared orchestrator error codes."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"CoreError(code={self.code!r}, message={self.message!r})"


def is_core_error_code(value: object) -> bool:
    return isinstance(value, str) and value in CORE_ERROR_CODES


def to_core_error(error: BaseException, fallback: str) -> CoreError:
    if isinstance(error, CoreError):
        if is_core_error_code(error.code):
            return error
        normalized = CoreError(error.message, fallback)
    else:
        message = str(error).strip()
        normalized = CoreError(message or "agent request failed", fallback)
    normalized.__cause__ = error
    return normalized


def failure_hint(error: CoreError) -> str:
    """User-safe text for an error; internal messages never leak through."""
    return _FAILURE_HINTS.get(error.code, _FAILURE_HINTS["INTERNAL_ERROR"])
