"""Cache-aside orchestration for creating and resolving short links.

Architecture Overview
=====================
::
    ┌───────────────────────────────────────────────┐
    │                ShortLinkStore                  │
    │  create(long_url)          resolve(short_key)  │
    └──────┬───────────────────────────┬────────────┘
           │                           │
           ▼                           ▼
    ┌─────────────┐             ┌──────────────┐
    │ CacheGateway│  (Redis)    │ LinkRepository│ (PostgreSQL)
    │ hash:{fp}   │             │ short_links   │
    │ url:{seq}   │             │ source of     │
    │ id counter  │             │ truth         │
    └─────────────┘             └──────────────┘

URL Creation Flow
-----------------
::
    fingerprint = sha256(long_url)
           │
           ▼
    GET hash:{fp} ── HIT ──▶ return short_key
           │ MISS / Redis down
           ▼
    DB by fingerprint ── HIT ──▶ repopulate hash:{fp}, url:{seq} ─▶ return
           │ MISS
           ▼
    INCR id ── Redis down ──▶ DB assigns sequence (degraded, this request only)
           │
           ▼
    INSERT link (unique fingerprint; race loser re-reads the winner)
           │ sequence taken ──▶ DB assigns sequence (bounded retries)
           ▼
    on_created(short_key) hook
           │
           ▼
    best-effort SET hash:{fp}, url:{seq} ─▶ return short_key

URL Resolution Flow
-------------------
::
    decode(short_key) ── bad symbol ──▶ InvalidShortKey
           │
           ▼
    GET url:{seq} ── HIT ──▶ return long_url
           │ MISS / Redis down
           ▼
    DB by short_key ── MISS ──▶ UnknownShortKey
           │ HIT
           ▼
    SET url:{seq} (fresh TTL) ─▶ return long_url

Key Behaviours
===============
- Only the database write is load-bearing; cache writes never fail a request.
- The same long URL always maps to the same short key once persisted, across
  cache evictions and concurrent creators.
- Both cache tables expire 24 hours after their last write; reads never
  refresh them.
- ``on_created`` runs only on the insert path, never on a hit in either tier.
  A race loser also runs it for the winner's key, so hooks must be idempotent.
"""

import hashlib
import logging
import time
from typing import Awaitable, Callable, Optional

from prometheus_client import Counter, Histogram

from shortlink.cache import CacheGateway
from shortlink.codec import Base62Codec, codec as default_codec
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.exceptions import InvalidShortKey, InvalidSymbol, SequenceCollision, ShortLinkError, UnknownShortKey
from shortlink.models import LinkRecord
from shortlink.repository import LinkRepository

__all__ = ["ShortLinkStore", "fingerprint_url"]

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total short link creation requests",
    ["status", "cache"],
)
LINK_RESOLVE_REQUESTS_TOTAL = Counter(
    "shortlink_resolve_requests_total",
    "Total short link resolution requests",
    ["status", "cache"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
LINK_RESOLVE_DURATION = Histogram(
    "shortlink_resolve_duration_seconds",
    "Time taken to resolve short links",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
SEQUENCE_FALLBACK_TOTAL = Counter(
    "shortlink_sequence_fallback_total",
    "Short links whose sequence number was assigned by the database",
)


def fingerprint_url(long_url: str) -> str:
    return hashlib.sha256(long_url.encode("utf-8")).hexdigest()


class ShortLinkStore:
    """Creates and resolves short links with Redis in front of the database.

    Example:
        >>> store = ShortLinkStore(cache, repository)
        >>> key = await store.create("https://example.com/a")
        >>> await store.resolve(key)
        'https://example.com/a'
    """

    def __init__(
        self,
        cache: CacheGateway,
        repository: LinkRepository,
        cache_ttl_seconds: int = 86400,
        id_counter_key: str = "id",
        url_prefix: str = "url:",
        hash_prefix: str = "hash:",
        codec: Optional[Base62Codec] = None,
        logger: Optional[logging.Logger] = None,
        on_created: Optional[Callable[[str], Awaitable[None]]] = None,
        database_sequence_attempts: int = 3,
    ):
        if database_sequence_attempts < 1:
            raise ValueError("database_sequence_attempts must be at least 1")
        self._cache = cache
        self._repository = repository
        self._ttl = cache_ttl_seconds
        self._id_counter_key = id_counter_key
        self._url_prefix = url_prefix
        self._hash_prefix = hash_prefix
        self._codec = codec or default_codec
        self._logger = logger or logging.getLogger("shortlink.link_store")
        self._on_created = on_created
        self._database_sequence_attempts = database_sequence_attempts

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def create(self, long_url: str) -> str:
        """Return the short key for ``long_url``, creating the link if needed.

        Raises:
            StoreUnavailable: the database could not be reached on a cache miss.
            SequenceCollision: every database-generated sequence attempt collided.
        """
        start_time = time.perf_counter()
        fingerprint = fingerprint_url(long_url)
        cache_status = CacheStatus.MISS
        status = RequestStatus.SUCCESS

        try:
            cached = await self._cache.get(self._hash_key(fingerprint))
            if cached.ok and cached.value:
                self._logger.info(f"[CACHE HIT] URL already exists with short key: {cached.value}")
                cache_status = CacheStatus.HIT
                return cached.value
            if cached.unavailable:
                cache_status = CacheStatus.UNAVAILABLE

            self._logger.info(f"[CACHE MISS] Checking database for fingerprint: {fingerprint[:12]}")
            existing = await self._repository.find_by_fingerprint(fingerprint)
            if existing is not None:
                self._logger.info(f"[DB HIT] Found in database, repopulating cache: {existing.short_key}")
                await self._populate_cache(existing)
                return existing.short_key

            self._logger.info("[DB MISS] Creating new short link")
            link = await self._insert_new_link(fingerprint, long_url)
            await self._notify_created(link.short_key)
            await self._populate_cache(link)
            self._logger.info(f"[DB WRITE] Saved {link.short_key} (sequence {link.sequence_id})")
            return link.short_key

        except Exception:
            status = RequestStatus.ERROR
            raise
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=status, cache=cache_status).inc()

    async def resolve(self, short_key: str) -> str:
        """Return the long URL behind ``short_key``.

        Raises:
            InvalidShortKey: the key is not a canonical base62 string.
            UnknownShortKey: no link with this key exists.
            StoreUnavailable: the database could not be reached on a cache miss.
        """
        start_time = time.perf_counter()
        cache_status = CacheStatus.MISS
        status = RequestStatus.SUCCESS

        try:
            sequence_id = self._decode(short_key)

            cached = await self._cache.get(self._url_key(sequence_id))
            if cached.ok and cached.value:
                self._logger.debug(f"[CACHE HIT] Retrieved {short_key} from cache")
                cache_status = CacheStatus.HIT
                return cached.value
            if cached.unavailable:
                cache_status = CacheStatus.UNAVAILABLE

            self._logger.info(f"[CACHE MISS] Querying database for short key: {short_key}")
            link = await self._repository.find_by_short_key(short_key)
            if link is None:
                self._logger.warning(f"[DB MISS] Link not found for short key: {short_key}")
                raise UnknownShortKey(short_key)

            self._logger.info(f"[CACHE WRITE] Repopulating cache for {short_key}")
            await self._cache_long_url(link.sequence_id, link.long_url)
            return link.long_url

        except InvalidShortKey:
            status = RequestStatus.VALIDATION_ERROR
            raise
        except UnknownShortKey:
            status = RequestStatus.NOT_FOUND
            raise
        except Exception:
            status = RequestStatus.ERROR
            raise
        finally:
            LINK_RESOLVE_DURATION.observe(time.perf_counter() - start_time)
            LINK_RESOLVE_REQUESTS_TOTAL.labels(status=status, cache=cache_status).inc()

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    def _hash_key(self, fingerprint: str) -> str:
        return f"{self._hash_prefix}{fingerprint}"

    def _url_key(self, sequence_id: int) -> str:
        return f"{self._url_prefix}{sequence_id}"

    def _decode(self, short_key: str) -> int:
        try:
            sequence_id = self._codec.decode(short_key)
        except InvalidSymbol as exc:
            raise InvalidShortKey(short_key, "Short key contains invalid symbols") from exc
        if self._codec.encode(sequence_id) != short_key:
            raise InvalidShortKey(short_key, "Short key is not in canonical form")
        return sequence_id

    async def _next_sequence_id(self) -> Optional[int]:
        counter = await self._cache.incr(self._id_counter_key)
        if counter.unavailable:
            return None
        return int(counter.value)

    async def _insert_new_link(self, fingerprint: str, long_url: str) -> LinkRecord:
        sequence_id = await self._next_sequence_id()
        if sequence_id is None:
            self._logger.warning("[DEGRADED MODE] Redis down, using database-generated sequence")
            return await self._insert_with_database_sequence(fingerprint, long_url)

        try:
            return await self._repository.insert_link_if_absent(fingerprint, long_url, sequence_id)
        except SequenceCollision:
            # Redis counter is behind the table, e.g. after a Redis restart.
            self._logger.warning(
                f"[DEGRADED MODE] Sequence {sequence_id} already taken, using database-generated sequence"
            )
            return await self._insert_with_database_sequence(fingerprint, long_url)

    async def _insert_with_database_sequence(self, fingerprint: str, long_url: str) -> LinkRecord:
        SEQUENCE_FALLBACK_TOTAL.inc()
        for attempt in range(1, self._database_sequence_attempts):
            try:
                return await self._repository.insert_link_if_absent(fingerprint, long_url)
            except SequenceCollision:
                # The database sequence handed out a number Redis already issued.
                self._logger.warning(
                    f"[DEGRADED MODE] Database-generated sequence taken, "
                    f"retrying ({attempt}/{self._database_sequence_attempts})"
                )
        return await self._repository.insert_link_if_absent(fingerprint, long_url)

    async def _notify_created(self, short_key: str) -> None:
        if self._on_created is None:
            return
        try:
            await self._on_created(short_key)
        except ShortLinkError as exc:
            # The link is stored; consumers treat missing companion rows as zeroed.
            self._logger.error(f"Post-create hook failed for {short_key}: {exc}")

    async def _cache_long_url(self, sequence_id: int, long_url: str) -> None:
        result = await self._cache.set(self._url_key(sequence_id), long_url, ttl=self._ttl)
        if result.unavailable:
            self._logger.warning(f"Redis unavailable, skipping cache write for sequence {sequence_id}")

    async def _populate_cache(self, link: LinkRecord) -> None:
        result = await self._cache.set(self._hash_key(link.fingerprint), link.short_key, ttl=self._ttl)
        if result.unavailable:
            self._logger.warning(f"Redis unavailable, skipping hash cache write for {link.short_key}")
        await self._cache_long_url(link.sequence_id, link.long_url)
