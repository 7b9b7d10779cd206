"""Health endpoint tests."""

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from medrelay.main import create_app


def test_health_returns_ok(store):
    """Health endpoint should return server status, version and store backend."""
    with TestClient(create_app(store=store)) as client:
        resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["store"] == "memory"
    assert data["connections"] == 0
    assert "version" in data


@pytest.mark.asyncio
async def test_health_over_asgi_transport(store):
    """The memory backend reports no redis section."""
    app = create_app(store=store)
    # ASGITransport does not drive lifespan events
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/api/v1/health")
    assert resp.status_code == 200
    assert "redis" not in resp.json()
