"""In-process document store.

Learn: Everything lives in dicts on the event loop thread. Writes fan
out synchronously to matching watches, so a push is queued before the
write call returns, handy for deterministic tests. Initial snapshots
are scheduled with loop.call_soon so they never arrive before the
caller has registered the watch handle.

Not thread-safe: use it from a single event loop.
"""

import asyncio
import copy
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from medrelay.errors import DocumentNotFound
from medrelay.store.base import (
    CancelHandle,
    DocumentStore,
    Filter,
    Snapshot,
    SnapshotCallback,
    is_document_path,
    matches,
    parent_and_id,
    sort_documents,
    split_path,
)

logger = structlog.get_logger()


@dataclass
class _Watch:
    path: str
    callback: SnapshotCallback
    filters: tuple
    order_by: Optional[str]
    active: bool = True


class MemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore with synchronous change fan-out."""

    name = "memory"

    def __init__(self, initial: Optional[dict[str, dict]] = None):
        # collection path → {doc id → fields}
        self._collections: dict[str, dict[str, dict]] = {}
        self._watches: list[_Watch] = []
        for path, fields in (initial or {}).items():
            collection, doc_id = parent_and_id(path)
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(fields)

    # ─── Reads ────────────────────────────────────────────

    def _read_document(self, path: str) -> Optional[dict]:
        collection, doc_id = parent_and_id(path)
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _read_collection(
        self, path: str, filters: Sequence[Filter] = (), order_by: Optional[str] = None
    ) -> list[dict]:
        split_path(path)
        docs = [
            {"id": doc_id, **copy.deepcopy(fields)}
            for doc_id, fields in self._collections.get(path.strip("/"), {}).items()
            if matches(fields, filters)
        ]
        return sort_documents(docs, order_by)

    def _snapshot(self, watch: _Watch) -> Snapshot:
        if is_document_path(watch.path):
            return self._read_document(watch.path)
        return self._read_collection(watch.path, watch.filters, watch.order_by)

    async def get(self, path: str) -> Snapshot:
        if is_document_path(path):
            return self._read_document(path)
        return self._read_collection(path)

    async def query(self, path, filters=(), order_by=None) -> list[dict]:
        return self._read_collection(path, filters, order_by)

    # ─── Live queries ─────────────────────────────────────

    async def watch(self, path, callback, filters=(), order_by=None) -> CancelHandle:
        split_path(path)
        watch = _Watch(path.strip("/"), callback, tuple(filters), order_by)
        self._watches.append(watch)
        asyncio.get_running_loop().call_soon(self._deliver, watch)

        def cancel() -> None:
            watch.active = False
            if watch in self._watches:
                self._watches.remove(watch)

        return cancel

    def _deliver(self, watch: _Watch) -> None:
        if not watch.active:
            return
        try:
            watch.callback(self._snapshot(watch))
        except Exception:
            logger.exception("store.watch_callback_failed", path=watch.path)

    def _notify(self, collection: str, doc_id: str) -> None:
        doc_path = f"{collection}/{doc_id}"
        for watch in list(self._watches):
            if watch.path in (collection, doc_path):
                self._deliver(watch)

    # ─── Writes ───────────────────────────────────────────

    async def set(self, path: str, fields: dict, merge: bool = False) -> None:
        collection, doc_id = parent_and_id(path)
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(fields))
        else:
            docs[doc_id] = copy.deepcopy(fields)
        self._notify(collection, doc_id)

    async def update(self, path: str, fields: dict) -> None:
        collection, doc_id = parent_and_id(path)
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFound()
        docs[doc_id].update(copy.deepcopy(fields))
        self._notify(collection, doc_id)

    async def add(self, path: str, fields: dict) -> str:
        if is_document_path(path):
            raise ValueError(f"Not a collection path: {path!r}")
        collection = path.strip("/")
        doc_id = uuid.uuid4().hex
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(fields)
        self._notify(collection, doc_id)
        return doc_id

    async def close(self) -> None:
        for watch in self._watches:
            watch.active = False
        self._watches.clear()
