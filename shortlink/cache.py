"""Redis client management and result-typed cache operations.

Every cache call made by the service goes through ``CacheGateway``, which
never raises for a Redis failure. Instead each operation returns a
``CacheResult`` that is either a value or "unavailable", and the calling
component decides what that means (fail-open, fall back to the database,
report degraded data).

Flow Diagram — CacheGateway call
================================
::
    ┌─────────────┐
    │ component   │
    │ gateway.incr│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ wait_for(   │
    │  redis op,  │
    │  timeout)   │
    └──────┬──────┘
    OK?   │
    ┌─────┴──────────┐
    │ YES             │ NO (RedisError / OSError / timeout)
    ▼                 ▼
┌──────────┐   ┌─────────────────┐
│ Result   │   │ Result          │
│ .success │   │ .unavailable    │
└──────────┘   └─────────────────┘

How to Use
===========
**Step 1 — Build a gateway**::
    client = create_redis_client(settings)
    gateway = CacheGateway(client, timeout=settings.REDIS_TIMEOUT_SECONDS)

**Step 2 — Branch on the result**::
    result = await gateway.incr("id")
    if result.ok:
        sequence_id = result.value
    else:
        ...  # component-specific degradation

Key Behaviours
===============
- A timeout is indistinguishable from an unreachable Redis.
- Degradation is per call: the gateway only remembers the last outcome for
  logging and health reporting, every call hits Redis again.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortlink.config import Settings
from shortlink.enums import CacheHealth

__all__ = ["CacheResult", "CacheGateway", "create_redis_client", "close_redis_client"]

T = TypeVar("T")

logger = logging.getLogger("shortlink.cache")

_UNAVAILABLE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    """Outcome of a single cache operation."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def unavailable(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, value: Optional[T]) -> "CacheResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "CacheResult[T]":
        return cls(error=error)


def create_redis_client(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_TIMEOUT_SECONDS,
    )


async def close_redis_client(client: Optional[redis.Redis]) -> None:
    if client is not None:
        await client.aclose()


class CacheGateway:
    """Thin wrapper around an async Redis client that converts failures to results."""

    def __init__(self, client: redis.Redis, timeout: float = 0.5):
        self._client = client
        self._timeout = timeout
        self.health = CacheHealth.HEALTHY

    @property
    def client(self) -> redis.Redis:
        return self._client

    async def _call(self, operation: str, key: str, coro: Any) -> CacheResult:
        try:
            value = await asyncio.wait_for(coro, timeout=self._timeout)
        except _UNAVAILABLE_ERRORS as exc:
            if self.health is CacheHealth.HEALTHY:
                logger.warning(f"Redis {operation} failed for {key!r}, cache degraded: {exc!r}")
            else:
                logger.debug(f"Redis {operation} failed for {key!r}: {exc!r}")
            self.health = CacheHealth.DEGRADED
            return CacheResult.failure(exc)

        if self.health is CacheHealth.DEGRADED:
            logger.info(f"Redis {operation} succeeded again, cache healthy")
        self.health = CacheHealth.HEALTHY
        return CacheResult.success(value)

    async def incr(self, key: str) -> CacheResult[int]:
        return await self._call("INCR", key, self._client.incr(key))

    async def get(self, key: str) -> CacheResult[str]:
        return await self._call("GET", key, self._client.get(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, nx: bool = False) -> CacheResult[bool]:
        result = await self._call("SET", key, self._client.set(key, value, ex=ttl, nx=nx))
        if result.ok:
            return CacheResult.success(bool(result.value))
        return result

    async def expire(self, key: str, ttl: int) -> CacheResult[bool]:
        return await self._call("EXPIRE", key, self._client.expire(key, ttl))

    async def ttl(self, key: str) -> CacheResult[int]:
        return await self._call("TTL", key, self._client.ttl(key))

    async def ping(self) -> CacheResult[bool]:
        return await self._call("PING", "-", self._client.ping())
