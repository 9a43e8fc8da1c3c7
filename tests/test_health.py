"""Health endpoint tests."""

import pytest
from httpx import AsyncClient

from shortlink.enums import HealthStatus


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == HealthStatus.HEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.HEALTHY.value


@pytest.mark.asyncio
async def test_health_reports_cache_outage(client: AsyncClient, fake_redis) -> None:
    fake_redis.unavailable = True

    data = (await client.get("/health")).json()
    assert data["status"] == HealthStatus.UNHEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.UNHEALTHY.value


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient) -> None:
    await client.post("/shortener", json={"url": "https://www.google.com"})

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "shortlink_creation_requests_total" in response.text
