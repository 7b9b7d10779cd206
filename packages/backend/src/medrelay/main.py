"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown: it opens the document
store, creates the process-wide connection pool, and on shutdown closes
every open session before releasing the store.

Tests pass their own store/verifier to create_app() instead of patching
globals.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from redis.exceptions import RedisError

from medrelay import __version__
from medrelay.api import api_router
from medrelay.auth.verifier import IdentityVerifier, JwtIdentityVerifier
from medrelay.config import settings
from medrelay.realtime.pool import ConnectionPool
from medrelay.realtime.session import SessionConfig
from medrelay.store.base import DocumentStore
from medrelay.store.memory import MemoryDocumentStore

logger = structlog.get_logger()


async def open_store() -> DocumentStore:
    """Build the configured document store backend."""
    if settings.store_backend != "sql":
        return MemoryDocumentStore()

    from medrelay.db.engine import session_factory
    from medrelay.realtime.pubsub import init_redis
    from medrelay.store.sql import SqlDocumentStore

    redis = None
    try:
        redis = await init_redis()
        logger.info("medrelay.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        # Reads and writes still work; live queries are refused
        logger.warning("medrelay.redis_unavailable", error=str(e))
    return SqlDocumentStore(session_factory(), redis)


async def close_store(store: DocumentStore) -> None:
    await store.close()
    if store.name == "sql":
        from medrelay.db.engine import dispose_engine
        from medrelay.realtime.pubsub import close_redis

        await close_redis()
        await dispose_engine()


def create_app(
    store: Optional[DocumentStore] = None,
    verifier: Optional[IdentityVerifier] = None,
    session_config: Optional[SessionConfig] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info(
            "medrelay.starting",
            version=__version__,
            environment=settings.environment,
            store=settings.store_backend if store is None else store.name,
        )
        app.state.store = store if store is not None else await open_store()
        app.state.verifier = verifier or JwtIdentityVerifier()
        app.state.session_config = session_config or SessionConfig.from_settings()
        app.state.pool = ConnectionPool()

        yield

        # Shutdown
        logger.info("medrelay.shutdown", open_sessions=len(app.state.pool))
        await app.state.pool.close_all()
        if store is None:
            await close_store(app.state.store)

    app = FastAPI(
        title="medrelay",
        description="Real-time relay between telemedicine clients and the document store",
        version=__version__,
        lifespan=lifespan,
    )

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket route (session protocol)
    from medrelay.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: medrelay.main:app)
app = create_app()
