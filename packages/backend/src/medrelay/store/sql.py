"""PostgreSQL document store with Redis-driven live queries.

Learn: Documents are rows in one JSONB table (see db.models.Document).
Every write commits, then PUBLISHes "collection X, doc Y changed" on
Redis. A watch SUBSCRIBEs to its collection's channel and, on each
notification, re-runs its query and hands the full snapshot to the
callback. Two concurrent tasks never share a pubsub connection: each
live query owns one, released when its handle is called.
"""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional, Sequence

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medrelay.db.models import Document
from medrelay.errors import DocumentNotFound, StoreError
from medrelay.realtime.pubsub import change_channel, publish_change
from medrelay.store.base import (
    CancelHandle,
    DocumentStore,
    Filter,
    Snapshot,
    is_document_path,
    parent_and_id,
    split_path,
)

logger = structlog.get_logger()


def _filter_clause(field: str, value: Any):
    """Equality on a JSON field, typed so PostgreSQL compares like with like."""
    element = Document.data[field]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


class SqlDocumentStore(DocumentStore):
    """DocumentStore over SQLAlchemy async + Redis pub/sub notifications."""

    name = "sql"

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        redis: Optional[aioredis.Redis] = None,
    ):
        self._sessions = sessions
        self._redis = redis
        self._watch_tasks: set[asyncio.Task] = set()

    @asynccontextmanager
    async def _session(self):
        """Yield a DB session; database failures become StoreError."""
        try:
            async with self._sessions() as db:
                yield db
        except SQLAlchemyError as e:
            logger.error("store.sql_failed", error=str(e))
            raise StoreError() from e

    async def _publish(self, collection: str, doc_id: str) -> None:
        if self._redis is None:
            return
        try:
            await publish_change(self._redis, collection, doc_id)
        except RedisError as e:
            # Watches will catch up on the next write to the collection
            logger.warning("store.publish_failed", collection=collection, error=str(e))

    # ─── Reads ────────────────────────────────────────────

    async def get(self, path: str) -> Snapshot:
        if is_document_path(path):
            collection, doc_id = parent_and_id(path)
            async with self._session() as db:
                row = await db.get(Document, (collection, doc_id))
                return dict(row.data) if row is not None else None
        return await self.query(path)

    async def query(
        self,
        path: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
    ) -> list[dict]:
        split_path(path)
        stmt = select(Document).where(Document.collection == path.strip("/"))
        for field, value in filters:
            stmt = stmt.where(_filter_clause(field, value))
        if order_by:
            stmt = stmt.order_by(Document.data[order_by].as_string().nulls_first())
        async with self._session() as db:
            result = await db.execute(stmt)
            return [{"id": row.id, **row.data} for row in result.scalars().all()]

    # ─── Live queries ─────────────────────────────────────

    async def watch(self, path, callback, filters=(), order_by=None) -> CancelHandle:
        if self._redis is None:
            raise StoreError("Live queries unavailable")
        if is_document_path(path):
            collection, doc_id = parent_and_id(path)
        else:
            collection, doc_id = path.strip("/"), None

        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(change_channel(collection))
        except RedisError as e:
            await pubsub.aclose()
            raise StoreError("Live queries unavailable") from e
        except BaseException:
            # Cancelled mid-subscribe: no listener task owns the connection yet
            await pubsub.aclose()
            raise

        active = True

        async def deliver() -> None:
            if doc_id is not None:
                snapshot = await self.get(path)
            else:
                snapshot = await self.query(path, filters, order_by)
            if active:
                callback(snapshot)

        async def listen() -> None:
            """Deliver the initial snapshot, then one per notification."""
            try:
                await deliver()
                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    if doc_id is not None and json.loads(message["data"]).get("id") != doc_id:
                        continue
                    await deliver()
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("store.watch_failed", path=path)
            finally:
                try:
                    await pubsub.unsubscribe()
                except RedisError as e:
                    logger.warning("store.unsubscribe_failed", path=path, error=str(e))
                await pubsub.aclose()

        task = asyncio.create_task(listen())
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)

        def cancel() -> None:
            nonlocal active
            active = False
            task.cancel()

        return cancel

    # ─── Writes ───────────────────────────────────────────

    async def set(self, path: str, fields: dict, merge: bool = False) -> None:
        collection, doc_id = parent_and_id(path)
        async with self._session() as db:
            row = await db.get(Document, (collection, doc_id))
            if row is None:
                db.add(Document(collection=collection, id=doc_id, data=dict(fields)))
            elif merge:
                row.data = {**row.data, **fields}
            else:
                row.data = dict(fields)
            await db.commit()
        await self._publish(collection, doc_id)

    async def update(self, path: str, fields: dict) -> None:
        collection, doc_id = parent_and_id(path)
        async with self._session() as db:
            row = await db.get(Document, (collection, doc_id))
            if row is None:
                raise DocumentNotFound()
            row.data = {**row.data, **fields}
            await db.commit()
        await self._publish(collection, doc_id)

    async def add(self, path: str, fields: dict) -> str:
        if is_document_path(path):
            raise ValueError(f"Not a collection path: {path!r}")
        collection = path.strip("/")
        doc_id = uuid.uuid4().hex
        async with self._session() as db:
            db.add(Document(collection=collection, id=doc_id, data=dict(fields)))
            await db.commit()
        await self._publish(collection, doc_id)
        return doc_id

    async def close(self) -> None:
        for task in list(self._watch_tasks):
            task.cancel()
        if self._watch_tasks:
            await asyncio.gather(*self._watch_tasks, return_exceptions=True)
