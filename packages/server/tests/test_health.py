"""
Health check endpoint tests.
"""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient, ASGITransport

from app.main import app, run, settings


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client: AsyncClient):
    """Ready endpoint pings the database and Redis."""
    redis_client = AsyncMock()
    with patch("app.main.get_redis", AsyncMock(return_value=redis_client)):
        response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}
    redis_client.ping.assert_awaited_once()


def test_run_serves_on_configured_host_and_port():
    with patch("app.main.uvicorn.run") as serve:
        run()
    serve.assert_called_once()
    assert serve.call_args.args == ("app.main:app",)
    assert serve.call_args.kwargs["host"] == settings.host
    assert serve.call_args.kwargs["port"] == settings.port
