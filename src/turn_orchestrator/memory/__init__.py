from turn_orchestrator.memory.event_sink import AsyncEventSink
from turn_orchestrator.memory.pruning import prune_store
from turn_orchestrator.memory.session_service import SessionService
from turn_orchestrator.memory.session_store import SessionStore
from turn_orchestrator.memory.store import SessionStoreDb

__all__ = [
    "AsyncEventSink",
    "SessionService",
    "SessionStore",
    "SessionStoreDb",
    "prune_store",
]
