import os
from pathlib import Path

from turn_orchestrator.contracts import ToolContext


def resolve_path(context: ToolContext, raw_path: str) -> Path:
    path = Path(raw_path)
    if not path.is_absolute():
        path = Path(context.cwd or os.getcwd()) / path
    return path.resolve()
