"""
Debounced, throttled autosave with an offline fallback.
"""

from tutor_portal.autosave.changes import has_changed
from tutor_portal.autosave.connectivity import ConnectivityMonitor, ConnectivitySignal
from tutor_portal.autosave.fallback import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    LocalFallbackStore,
    PersistedDraft,
    RedisKeyValueStore,
    fallback_key,
)
from tutor_portal.autosave.orchestrator import AutosaveOrchestrator, SaveStatus
from tutor_portal.autosave.remote import (
    DbPersistenceClient,
    HttpPersistenceClient,
    PersistenceError,
    RemotePersistenceClient,
)
from tutor_portal.autosave.scheduling import (
    Debouncer,
    LoopScheduler,
    SaveThrottle,
    Scheduler,
)

__all__ = [
    "AutosaveOrchestrator",
    "ConnectivityMonitor",
    "ConnectivitySignal",
    "DbPersistenceClient",
    "Debouncer",
    "FileKeyValueStore",
    "HttpPersistenceClient",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LocalFallbackStore",
    "LoopScheduler",
    "PersistedDraft",
    "PersistenceError",
    "RedisKeyValueStore",
    "RemotePersistenceClient",
    "SaveStatus",
    "SaveThrottle",
    "Scheduler",
    "fallback_key",
    "has_changed",
]
