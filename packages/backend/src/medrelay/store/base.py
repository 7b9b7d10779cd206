"""DocumentStore interface and path helpers.

Learn: Documents are addressed by slash-separated paths, alternating
collection and document ids:

    users                      → collection
    users/U1                   → document
    chats/C1/messages          → sub-collection
    chats/C1/messages/M1       → document in a sub-collection

An odd number of segments names a collection, an even number a document.

Collection reads return lists of {"id": doc_id, **fields}. A watch
delivers the FULL current result on every change (never a diff);
clients reconcile by replacing what they hold.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Sequence

Filter = tuple[str, Any]  # (field, value), equality only
Snapshot = Any  # list[dict] for collections, dict | None for documents
SnapshotCallback = Callable[[Snapshot], None]
CancelHandle = Callable[[], None]


def split_path(path: str) -> list[str]:
    """Split a store path into segments, rejecting empty ones."""
    segments = path.strip("/").split("/")
    if not path or any(not s for s in segments):
        raise ValueError(f"Invalid store path: {path!r}")
    return segments


def is_document_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 0


def parent_and_id(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    segments = split_path(path)
    if len(segments) % 2:
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def matches(data: dict, filters: Iterable[Filter]) -> bool:
    return all(data.get(field) == value for field, value in filters)


def sort_documents(docs: list[dict], order_by: Optional[str]) -> list[dict]:
    """Order documents by a field; documents missing it sort first."""
    if not order_by:
        return docs
    return sorted(
        docs,
        key=lambda d: (d.get(order_by) is not None, str(d.get(order_by) or "")),
    )


class DocumentStore(ABC):
    """Path-addressed document store with live queries."""

    name = "abstract"

    @abstractmethod
    async def get(self, path: str) -> Snapshot:
        """Read one document (dict or None) or a whole collection (list)."""

    @abstractmethod
    async def query(
        self,
        path: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
    ) -> list[dict]:
        """Read the documents of a collection matching every filter."""

    @abstractmethod
    async def watch(
        self,
        path: str,
        callback: SnapshotCallback,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
    ) -> CancelHandle:
        """Start a live query.

        The callback receives the current snapshot once the watch is
        established (never synchronously inside this call) and again after
        every change. Calling the returned handle stops delivery; the
        callback is never invoked after the handle returns.
        """

    @abstractmethod
    async def set(self, path: str, fields: dict, merge: bool = False) -> None:
        """Create or replace a document; merge=True updates top-level fields."""

    @abstractmethod
    async def update(self, path: str, fields: dict) -> None:
        """Merge top-level fields into an existing document.

        Raises DocumentNotFound if the document does not exist.
        """

    @abstractmethod
    async def add(self, path: str, fields: dict) -> str:
        """Insert a document with a generated id into a collection."""

    async def close(self) -> None:
        """Release backend resources."""
