"""Client-side chat core: local state, device storage and sync with the API."""

from .coordinator import SyncCoordinator
from .debounce import DebouncedTask
from .facade import ChatFacade, Responder
from .storage import LocalStorage
from .store import ChatStore, ReconcilePolicy

__all__ = [
    "ChatFacade",
    "ChatStore",
    "DebouncedTask",
    "LocalStorage",
    "ReconcilePolicy",
    "Responder",
    "SyncCoordinator",
]
