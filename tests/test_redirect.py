"""Redirect endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_redirect_valid_key(client: AsyncClient) -> None:
    create_resp = await client.post("/shortener", json={"url": "https://www.google.com"})
    short_key = create_resp.json()["short_key"]

    response = await client.get(f"/{short_key}", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.google.com"


@pytest.mark.asyncio
async def test_redirect_unknown_key(client: AsyncClient) -> None:
    response = await client.get("/nonexistent", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"


@pytest.mark.asyncio
async def test_redirect_invalid_key(client: AsyncClient) -> None:
    response = await client.get("/not-valid!", follow_redirects=False)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid Input"


@pytest.mark.asyncio
async def test_redirect_increments_clicks(client: AsyncClient) -> None:
    create_resp = await client.post("/shortener", json={"url": "https://www.python.org"})
    short_key = create_resp.json()["short_key"]

    for _ in range(3):
        await client.get(f"/{short_key}", follow_redirects=False)

    stats_resp = await client.get(f"/stats/{short_key}")
    assert stats_resp.status_code == 200
    assert stats_resp.json()["totalClicks"] == 3


@pytest.mark.asyncio
async def test_redirect_is_not_rate_limited(client: AsyncClient) -> None:
    create_resp = await client.post("/shortener", json={"url": "https://www.python.org"})
    short_key = create_resp.json()["short_key"]

    for _ in range(15):
        response = await client.get(f"/{short_key}", follow_redirects=False)
        assert response.status_code == 307


@pytest.mark.asyncio
async def test_redirect_with_redis_down(client: AsyncClient, fake_redis) -> None:
    create_resp = await client.post("/shortener", json={"url": "https://www.github.com"})
    short_key = create_resp.json()["short_key"]
    fake_redis.unavailable = True

    response = await client.get(f"/{short_key}", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.github.com"

    stats = (await client.get(f"/stats/{short_key}")).json()
    assert stats["totalClicks"] == 1
    assert stats["dataSource"] == "db-only"
