"""Click analytics: Redis counters on the hot path, the database for durability.

Click Tracking Flow
-------------------
::
    ┌──────────────┐
    │ redirect     │
    │ (background) │
    └──────┬───────┘
           ▼
    ┌──────────────────────────┐
    │ INCR analytics:{k}:clicks │
    └──────┬───────────────────┘
    OK?    │
    ┌──────┴──────┐
    │ YES          │ NO
    ▼              ▼
┌──────────────┐  ┌──────────────────────────┐
│ SET          │  │ DB read-modify-write      │
│ :lastAccess  │  │ total+1, last access, day │
└──────────────┘  └──────────────────────────┘

Stats Flow (lazy sync)
----------------------
::
    DB baseline (zeroed, unsaved, if missing)
           │
           ▼
    GET :clicks, :lastAccess ── Redis down ──▶ db-only snapshot
           │
           ▼
    reconcile() ── nothing newer ──▶ redis+db snapshot
           │ newer values
           ▼
    persist reconciled record ─▶ redis+db snapshot

Key Behaviours
===============
- The Redis counter and last-access key are independent; a crash between
  the two writes may leave them inconsistent.
- The database fallback is a plain read-modify-write and may lose
  increments under concurrent fallbacks.
- Sync happens only when stats are read, never on a schedule.
- Returned totals never go below what is already persisted.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from prometheus_client import Counter

from shortlink.cache import CacheGateway, CacheResult
from shortlink.enums import DataSource
from shortlink.exceptions import ShortLinkError
from shortlink.models import AnalyticsRecord, as_utc, utcnow
from shortlink.repository import LinkRepository

__all__ = ["ClickTracker", "StatsSnapshot", "Reconciliation", "reconcile", "roll_daily"]

CLICKS_RECORDED_TOTAL = Counter(
    "shortlink_clicks_recorded_total",
    "Clicks recorded by storage path",
    ["path"],
)
ANALYTICS_SYNCS_TOTAL = Counter(
    "shortlink_analytics_syncs_total",
    "Stats reads that persisted newer Redis counters to the database",
)


@dataclass(frozen=True)
class StatsSnapshot:
    short_key: str
    total_clicks: int
    last_accessed_at: Optional[datetime.datetime]
    created_at: datetime.datetime
    clicks_today: int
    data_source: DataSource


@dataclass(frozen=True)
class Reconciliation:
    total_clicks: int
    last_accessed_at: Optional[datetime.datetime]
    clicks_today: int
    last_aggregation_date: datetime.date
    changed: bool


def roll_daily(
    clicks_today: int,
    last_aggregation_date: Optional[datetime.date],
    today: datetime.date,
    delta: int = 1,
) -> tuple[int, datetime.date]:
    """Apply ``delta`` clicks to the daily counter, restarting it on a new day."""
    if last_aggregation_date != today:
        return delta, today
    return clicks_today + delta, last_aggregation_date


def reconcile(
    record: AnalyticsRecord,
    cached_clicks: Optional[int],
    cached_last_access: Optional[datetime.datetime],
    today: datetime.date,
) -> Reconciliation:
    """Merge Redis readings into a durable record without touching it.

    Idempotent: reconciling an already reconciled record yields
    ``changed=False``.
    """
    total = record.total_clicks or 0
    clicks_today = record.clicks_today or 0
    aggregation_date = record.last_aggregation_date
    last_access = as_utc(record.last_accessed_at)
    changed = False

    if cached_clicks is not None and cached_clicks > total:
        clicks_today, aggregation_date = roll_daily(clicks_today, aggregation_date, today, cached_clicks - total)
        total = cached_clicks
        changed = True

    if cached_last_access is not None and (last_access is None or cached_last_access > last_access):
        last_access = cached_last_access
        changed = True

    return Reconciliation(
        total_clicks=total,
        last_accessed_at=last_access,
        clicks_today=clicks_today,
        last_aggregation_date=aggregation_date or today,
        changed=changed,
    )


class ClickTracker:
    """Hybrid Redis + database click counter."""

    def __init__(
        self,
        cache: CacheGateway,
        repository: LinkRepository,
        key_prefix: str = "analytics:",
        clock: Callable[[], datetime.datetime] = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self._cache = cache
        self._repository = repository
        self._key_prefix = key_prefix
        self._clock = clock
        self._logger = logger or logging.getLogger("shortlink.click_tracker")

    def _clicks_key(self, short_key: str) -> str:
        return f"{self._key_prefix}{short_key}:clicks"

    def _last_access_key(self, short_key: str) -> str:
        return f"{self._key_prefix}{short_key}:lastAccess"

    async def initialize(self, short_key: str) -> None:
        """Create zeroed analytics for a new link. Existing records are left alone."""
        inserted = await self._repository.insert_analytics_if_absent(AnalyticsRecord.zeroed(short_key, self._clock()))
        if inserted:
            self._logger.info(f"[ANALYTICS] Initialized analytics for {short_key}")

    async def record_click(self, short_key: str) -> None:
        """Count one click. Never raises; meant to run after the redirect is sent."""
        now = self._clock()

        counter = await self._cache.incr(self._clicks_key(short_key))
        if counter.ok:
            CLICKS_RECORDED_TOTAL.labels(path="redis").inc()
            stamp = await self._cache.set(self._last_access_key(short_key), int(now.timestamp() * 1000))
            if stamp.unavailable:
                self._logger.warning(f"[ANALYTICS] Click counted but last access not stored for {short_key}")
            self._logger.debug(f"[ANALYTICS] Recorded click for {short_key} in Redis: count={counter.value}")
            return

        self._logger.info(f"[ANALYTICS] Redis unavailable, recording click in DB for {short_key}")
        try:
            await self._record_click_in_db(short_key, now)
        except ShortLinkError as exc:
            self._logger.error(f"Failed to record click in DB for {short_key}: {exc}")

    async def _record_click_in_db(self, short_key: str, now: datetime.datetime) -> None:
        record = await self._repository.find_analytics(short_key)
        if record is None:
            record = AnalyticsRecord.zeroed(short_key, now)

        record.total_clicks = (record.total_clicks or 0) + 1
        record.last_accessed_at = now
        record.clicks_today, record.last_aggregation_date = roll_daily(
            record.clicks_today or 0, record.last_aggregation_date, now.date()
        )
        await self._repository.upsert_analytics(record)
        CLICKS_RECORDED_TOTAL.labels(path="database").inc()
        self._logger.info(f"[ANALYTICS] Recorded click in DB for {short_key}: total={record.total_clicks}")

    def _parse_clicks(self, short_key: str, result: CacheResult[str]) -> Optional[int]:
        if result.value is None:
            return None
        try:
            return int(result.value)
        except (TypeError, ValueError):
            self._logger.error(f"[ANALYTICS] Ignoring malformed click counter for {short_key}: {result.value!r}")
            return None

    def _parse_last_access(self, short_key: str, result: CacheResult[str]) -> Optional[datetime.datetime]:
        if result.value is None:
            return None
        try:
            millis = int(result.value)
        except (TypeError, ValueError):
            self._logger.error(f"[ANALYTICS] Ignoring malformed last access for {short_key}: {result.value!r}")
            return None
        return datetime.datetime.fromtimestamp(millis / 1000, tz=datetime.timezone.utc)

    async def get_stats(self, short_key: str) -> StatsSnapshot:
        """Return click stats, syncing newer Redis counters into the database first.

        Raises:
            StoreUnavailable: the baseline could not be read from the database.
        """
        now = self._clock()
        record = await self._repository.find_analytics(short_key)
        if record is None:
            record = AnalyticsRecord.zeroed(short_key, now)

        clicks = await self._cache.get(self._clicks_key(short_key))
        last_access = await self._cache.get(self._last_access_key(short_key))
        source = DataSource.REDIS_AND_DB if clicks.ok and last_access.ok else DataSource.DB_ONLY

        result = reconcile(
            record,
            self._parse_clicks(short_key, clicks) if clicks.ok else None,
            self._parse_last_access(short_key, last_access) if last_access.ok else None,
            now.date(),
        )

        if result.changed:
            record.total_clicks = result.total_clicks
            record.last_accessed_at = result.last_accessed_at
            record.clicks_today = result.clicks_today
            record.last_aggregation_date = result.last_aggregation_date
            self._logger.info(f"[ANALYTICS] Syncing Redis to DB for {short_key}: {result.total_clicks} clicks")
            try:
                await self._repository.upsert_analytics(record)
                ANALYTICS_SYNCS_TOTAL.inc()
            except ShortLinkError as exc:
                self._logger.error(f"Failed to sync Redis analytics for {short_key}: {exc}")

        self._logger.info(f"[ANALYTICS] Stats for {short_key}: totalClicks={result.total_clicks}, source={source}")
        return StatsSnapshot(
            short_key=short_key,
            total_clicks=result.total_clicks,
            last_accessed_at=result.last_accessed_at,
            created_at=as_utc(record.created_at),
            clicks_today=result.clicks_today,
            data_source=source,
        )
