"""ClickTracker tests: Redis hot path, database fallback and lazy sync on stats reads."""

import datetime

import pytest

from shortlink.click_tracker import ClickTracker, reconcile, roll_daily
from shortlink.enums import DataSource
from shortlink.exceptions import StoreUnavailable
from shortlink.models import AnalyticsRecord

DAY_ONE = datetime.date(2026, 3, 14)
DAY_TWO = datetime.date(2026, 3, 15)
NOON = datetime.datetime(2026, 3, 14, 12, 0, tzinfo=datetime.timezone.utc)


# ============================================================================
# PURE HELPERS
# ============================================================================


def test_roll_daily_same_day_accumulates():
    assert roll_daily(4, DAY_ONE, DAY_ONE) == (5, DAY_ONE)


def test_roll_daily_new_day_restarts():
    assert roll_daily(4, DAY_ONE, DAY_TWO) == (1, DAY_TWO)
    assert roll_daily(4, DAY_ONE, DAY_TWO, delta=3) == (3, DAY_TWO)


def test_reconcile_takes_newer_redis_values():
    record = AnalyticsRecord.zeroed("b", NOON)
    later = NOON + datetime.timedelta(minutes=5)

    result = reconcile(record, 7, later, DAY_ONE)

    assert result.changed
    assert result.total_clicks == 7
    assert result.clicks_today == 7
    assert result.last_accessed_at == later


def test_reconcile_never_lowers_persisted_total():
    record = AnalyticsRecord.zeroed("b", NOON)
    record.total_clicks = 9
    record.clicks_today = 9
    record.last_accessed_at = NOON

    result = reconcile(record, 4, NOON - datetime.timedelta(hours=1), DAY_ONE)

    assert not result.changed
    assert result.total_clicks == 9
    assert result.last_accessed_at == NOON


def test_reconcile_is_idempotent():
    record = AnalyticsRecord.zeroed("b", NOON)
    first = reconcile(record, 3, NOON, DAY_ONE)
    record.total_clicks = first.total_clicks
    record.clicks_today = first.clicks_today
    record.last_accessed_at = first.last_accessed_at
    record.last_aggregation_date = first.last_aggregation_date

    second = reconcile(record, 3, NOON, DAY_ONE)

    assert not second.changed
    assert second.total_clicks == 3


def test_reconcile_without_redis_values_keeps_record():
    record = AnalyticsRecord.zeroed("b", NOON)
    result = reconcile(record, None, None, DAY_ONE)
    assert not result.changed
    assert result.total_clicks == 0
    assert result.last_accessed_at is None


# ============================================================================
# RECORD AND READ
# ============================================================================


@pytest.mark.asyncio
async def test_five_clicks_reported(click_tracker, clock):
    await click_tracker.initialize("b")
    for _ in range(5):
        await click_tracker.record_click("b")

    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 5
    assert stats.clicks_today == 5
    assert stats.last_accessed_at == clock()
    assert stats.data_source is DataSource.REDIS_AND_DB


@pytest.mark.asyncio
async def test_clicks_go_to_redis_keys(click_tracker, fake_redis, clock):
    await click_tracker.record_click("b")
    await click_tracker.record_click("b")

    assert fake_redis.data["analytics:b:clicks"] == "2"
    assert fake_redis.data["analytics:b:lastAccess"] == str(int(clock().timestamp() * 1000))


@pytest.mark.asyncio
async def test_stats_read_persists_newer_counts(click_tracker, repository):
    await click_tracker.initialize("b")
    for _ in range(3):
        await click_tracker.record_click("b")

    await click_tracker.get_stats("b")

    record = await repository.find_analytics("b")
    assert record.total_clicks == 3
    assert record.clicks_today == 3
    assert record.last_accessed_at is not None


@pytest.mark.asyncio
async def test_stats_survive_redis_flush(click_tracker, fake_redis):
    await click_tracker.initialize("b")
    for _ in range(4):
        await click_tracker.record_click("b")
    await click_tracker.get_stats("b")
    await fake_redis.flushdb()

    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 4


@pytest.mark.asyncio
async def test_repeated_stats_reads_are_monotonic(click_tracker):
    await click_tracker.initialize("b")
    totals = []
    for _ in range(3):
        await click_tracker.record_click("b")
        totals.append((await click_tracker.get_stats("b")).total_clicks)
    totals.append((await click_tracker.get_stats("b")).total_clicks)

    assert totals == [1, 2, 3, 3]


@pytest.mark.asyncio
async def test_clicks_recorded_in_database_when_redis_down(click_tracker, fake_redis, repository):
    await click_tracker.initialize("b")
    fake_redis.unavailable = True

    for _ in range(3):
        await click_tracker.record_click("b")
    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 3
    assert stats.clicks_today == 3
    assert stats.data_source is DataSource.DB_ONLY
    assert (await repository.find_analytics("b")).total_clicks == 3


@pytest.mark.asyncio
async def test_database_fallback_without_initialized_record(click_tracker, fake_redis, repository):
    fake_redis.unavailable = True

    await click_tracker.record_click("b")

    record = await repository.find_analytics("b")
    assert record.total_clicks == 1
    assert record.clicks_today == 1


@pytest.mark.asyncio
async def test_record_click_never_raises_when_everything_is_down(cache, fake_redis, clock):
    class DownRepository:
        async def find_analytics(self, short_key):
            raise StoreUnavailable(ConnectionRefusedError("db down"))

    tracker = ClickTracker(cache, DownRepository(), clock=clock)
    fake_redis.unavailable = True

    await tracker.record_click("b")


@pytest.mark.asyncio
async def test_clicks_today_restarts_on_new_day(click_tracker, clock):
    await click_tracker.initialize("b")
    await click_tracker.record_click("b")
    await click_tracker.record_click("b")
    assert (await click_tracker.get_stats("b")).clicks_today == 2

    clock.advance(days=1)
    for _ in range(3):
        await click_tracker.record_click("b")
    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 5
    assert stats.clicks_today == 3


@pytest.mark.asyncio
async def test_database_fallback_restarts_daily_count(click_tracker, fake_redis, clock):
    await click_tracker.initialize("b")
    fake_redis.unavailable = True
    await click_tracker.record_click("b")
    await click_tracker.record_click("b")

    clock.advance(days=1)
    await click_tracker.record_click("b")
    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 3
    assert stats.clicks_today == 1


@pytest.mark.asyncio
async def test_initialize_is_idempotent(click_tracker, repository):
    await click_tracker.initialize("b")
    for _ in range(2):
        await click_tracker.record_click("b")
    await click_tracker.get_stats("b")

    await click_tracker.initialize("b")

    assert (await repository.find_analytics("b")).total_clicks == 2


@pytest.mark.asyncio
async def test_stats_for_unknown_key_are_zeroed_and_not_stored(click_tracker, repository, clock):
    stats = await click_tracker.get_stats("zz")

    assert stats.total_clicks == 0
    assert stats.clicks_today == 0
    assert stats.last_accessed_at is None
    assert stats.created_at == clock()
    assert await repository.find_analytics("zz") is None


@pytest.mark.asyncio
async def test_malformed_counter_ignored(click_tracker, fake_redis):
    await click_tracker.initialize("b")
    fake_redis.data["analytics:b:clicks"] = "not-a-number"

    stats = await click_tracker.get_stats("b")

    assert stats.total_clicks == 0
