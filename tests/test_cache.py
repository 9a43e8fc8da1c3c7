"""CacheGateway result and health tracking tests."""

import asyncio

import pytest

from shortlink.cache import CacheGateway, CacheResult
from shortlink.enums import CacheHealth


class SlowRedis:
    async def get(self, key):
        await asyncio.sleep(1)
        return "late"


@pytest.mark.asyncio
async def test_successful_operations_return_values(cache, fake_redis):
    assert (await cache.incr("n")).value == 1
    assert (await cache.incr("n")).value == 2
    assert (await cache.set("k", "v", ttl=10)).value is True
    assert (await cache.get("k")).value == "v"
    assert (await cache.ttl("k")).value == 10
    assert (await cache.ping()).ok
    assert cache.health is CacheHealth.HEALTHY


@pytest.mark.asyncio
async def test_set_nx_reports_false_when_key_exists(cache):
    assert (await cache.set("k", 1, nx=True)).value is True
    result = await cache.set("k", 2, nx=True)
    assert result.ok
    assert result.value is False
    assert (await cache.get("k")).value == "1"


@pytest.mark.asyncio
async def test_outage_becomes_unavailable_result(cache, fake_redis):
    fake_redis.unavailable = True

    result = await cache.incr("n")

    assert result.unavailable
    assert not result.ok
    assert result.value is None
    assert cache.health is CacheHealth.DEGRADED


@pytest.mark.asyncio
async def test_health_recovers_on_next_successful_call(cache, fake_redis):
    fake_redis.unavailable = True
    await cache.get("k")
    fake_redis.unavailable = False

    result = await cache.get("k")

    assert result.ok
    assert cache.health is CacheHealth.HEALTHY


@pytest.mark.asyncio
async def test_timeout_counts_as_unavailable():
    gateway = CacheGateway(SlowRedis(), timeout=0.01)

    result = await gateway.get("k")

    assert result.unavailable
    assert isinstance(result.error, asyncio.TimeoutError)


def test_cache_result_constructors():
    assert CacheResult.success(None).ok
    assert CacheResult.failure(RuntimeError("x")).unavailable
