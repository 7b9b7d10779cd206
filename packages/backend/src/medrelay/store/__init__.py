"""Document store capability.

Learn: The relay treats the document store as a "live-queryable,
filterable collection store". Sessions only ever talk to the
DocumentStore interface in store.base; the backend is chosen at startup
(MEDRELAY_STORE_BACKEND).
"""

from medrelay.store.base import CancelHandle, DocumentStore, SnapshotCallback
from medrelay.store.memory import MemoryDocumentStore

__all__ = [
    "CancelHandle",
    "DocumentStore",
    "MemoryDocumentStore",
    "SnapshotCallback",
]
