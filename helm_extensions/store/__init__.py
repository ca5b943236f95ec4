"""
The store module holds the declarative Chart records shared by the extensions
synchronizer, which writes their spec, and the chart reconciler, which writes
their status and finalizers.

- Uses NamedResource as the key for all records.
- Writes use optimistic concurrency on the record resource version.
- Listeners receive ADDED, UPDATED and DELETED notifications.

This abstract interface allows for various implementations (in-memory, API server, etc.).
"""

from .store import Store, StoreEvent, WatchEvent
from .in_memory import InMemoryStore
from .predicate import Predicate, generation_changed, in_namespace, all_of

__all__ = [
    "Store",
    "StoreEvent",
    "WatchEvent",
    "InMemoryStore",
    "Predicate",
    "generation_changed",
    "in_namespace",
    "all_of",
]
