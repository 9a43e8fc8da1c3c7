"""Fixed window rate limiting backed by Redis counters.

Only URL creation is rate limited; redirects and stats are not.

Flow Diagram — allow(identifier)
================================
::
    ┌──────────────────────┐
    │ SET ratelimit:{id} 1  │
    │ NX EX window          │
    └──────┬───────────────┘
    CREATED?│
    ┌───────┴────────┐
    │ YES             │ NO
    ▼                 ▼
┌─────────┐    ┌──────────────┐
│ count=1 │    │ INCR key     │
│ ttl=win │    │ TTL key      │
└────┬────┘    └──────┬───────┘
     └──────┬─────────┘
            ▼
    ┌──────────────────┐   any Redis failure
    │ decide_window()   │ ───────────────────▶ allow (fail-open)
    └──────┬───────────┘
           ▼
    count <= max ? allow : deny

Key Behaviours
===============
- The window TTL is set once, when the window is created. Increments never
  extend it, so a burst at the edge of a window does not push the reset out.
- A denied request still consumes a slot.
- If Redis cannot answer any step the request is allowed and the decision
  reports the full budget; the limiter never causes an outage on its own.
- Nothing is latched: the next call tries Redis again.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from prometheus_client import Counter

from shortlink.cache import CacheGateway, CacheResult
from shortlink.enums import CacheHealth
from shortlink.exceptions import RateLimitExceeded

__all__ = ["RateLimitDecision", "RateLimiter", "decide_window", "fail_open_decision"]


RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "shortlink_rate_limit_decisions_total",
    "Rate limiter decisions by outcome",
    ["outcome"],
)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_seconds: int
    limit: int
    window_seconds: int
    degraded: bool = False


def fail_open_decision(max_requests: int, window_seconds: int) -> RateLimitDecision:
    return RateLimitDecision(
        allowed=True,
        remaining=max_requests,
        reset_seconds=window_seconds,
        limit=max_requests,
        window_seconds=window_seconds,
        degraded=True,
    )


def decide_window(
    count: CacheResult[int],
    ttl: CacheResult[int],
    max_requests: int,
    window_seconds: int,
) -> RateLimitDecision:
    """Turn the counter and TTL readings of a window into a decision."""
    if count.unavailable or ttl.unavailable or count.value is None:
        return fail_open_decision(max_requests, window_seconds)

    current = int(count.value)
    reset = int(ttl.value) if ttl.value is not None and int(ttl.value) > 0 else window_seconds
    return RateLimitDecision(
        allowed=current <= max_requests,
        remaining=max(0, max_requests - current),
        reset_seconds=reset,
        limit=max_requests,
        window_seconds=window_seconds,
    )


class RateLimiter:
    """Per-identifier fixed window counter with fail-open degradation."""

    def __init__(
        self,
        cache: CacheGateway,
        max_requests: int = 10,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit:",
        logger: Optional[logging.Logger] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self._cache = cache
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._key_prefix = key_prefix
        self._logger = logger or logging.getLogger("shortlink.rate_limiter")
        self.state = CacheHealth.HEALTHY

    def _key(self, identifier: str) -> str:
        return f"{self._key_prefix}{identifier}"

    async def _read_window(self, key: str) -> tuple[CacheResult[int], CacheResult[int]]:
        created = await self._cache.set(key, 1, ttl=self.window_seconds, nx=True)
        if created.unavailable:
            return CacheResult.failure(created.error), created
        if created.value:
            return CacheResult.success(1), CacheResult.success(self.window_seconds)

        count = await self._cache.incr(key)
        if count.unavailable:
            return count, count
        if count.value == 1:
            # The window expired between SET NX and INCR; INCR made a key without TTL.
            await self._cache.expire(key, self.window_seconds)
            return count, CacheResult.success(self.window_seconds)

        ttl = await self._cache.ttl(key)
        if ttl.ok and ttl.value is not None and int(ttl.value) == -1:
            await self._cache.expire(key, self.window_seconds)
            ttl = CacheResult.success(self.window_seconds)
        return count, ttl

    def _note_outcome(self, decision: RateLimitDecision) -> None:
        new_state = CacheHealth.DEGRADED if decision.degraded else CacheHealth.HEALTHY
        if new_state is not self.state:
            if new_state is CacheHealth.DEGRADED:
                self._logger.warning("RateLimiter: Redis unavailable, rate limiting disabled (fail-open)")
            else:
                self._logger.info("RateLimiter: Redis reachable again, rate limiting restored")
        self.state = new_state

    async def allow(self, identifier: str) -> RateLimitDecision:
        key = self._key(identifier)
        count, ttl = await self._read_window(key)
        decision = decide_window(count, ttl, self.max_requests, self.window_seconds)
        self._note_outcome(decision)

        if decision.degraded:
            RATE_LIMIT_DECISIONS_TOTAL.labels(outcome="fail_open").inc()
            self._logger.warning(f"Redis down, allowing request for {identifier} (degraded mode)")
        elif decision.allowed:
            RATE_LIMIT_DECISIONS_TOTAL.labels(outcome="allowed").inc()
            self._logger.debug(
                f"Rate limit check for {identifier}: {self.max_requests - decision.remaining}/{self.max_requests} requests"
            )
        else:
            RATE_LIMIT_DECISIONS_TOTAL.labels(outcome="denied").inc()
            self._logger.warning(
                f"Rate limit exceeded for {identifier}: retry in {decision.reset_seconds}s"
            )
        return decision

    async def enforce(self, identifier: str) -> RateLimitDecision:
        """Like ``allow`` but raises ``RateLimitExceeded`` on denial."""
        decision = await self.allow(identifier)
        if not decision.allowed:
            raise RateLimitExceeded(self.max_requests, self.window_seconds, decision.reset_seconds)
        return decision
