"""Health check endpoint.

Learn: Reports the store backend, how many sessions are open, and,
for the sql backend, whether Postgres and Redis are reachable.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from medrelay import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    state = request.app.state
    checks = {"server": "ok", "version": __version__, "store": state.store.name}

    if state.store.name == "sql":
        # Check Postgres
        try:
            from medrelay.db.engine import get_engine

            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["postgres"] = "ok"
        except Exception as e:
            checks["postgres"] = f"error: {e}"

        # Check Redis
        try:
            from medrelay.realtime.pubsub import get_redis

            await get_redis().ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k in ("server", "postgres", "redis")
    ) else "degraded"

    return {"status": status, **checks, "connections": len(state.pool)}
