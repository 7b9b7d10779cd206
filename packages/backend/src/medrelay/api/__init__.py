"""HTTP route aggregation.

The relay's protocol lives on the websocket; HTTP only carries
operational endpoints, all open (no auth required).
"""

from fastapi import APIRouter

from medrelay.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
