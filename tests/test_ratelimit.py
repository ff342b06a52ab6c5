"""
Tests for the fixed-window rate limiter.
"""
import datetime

from sqlalchemy import func, select

from fishing_insights.models import RateLimitWindow
from fishing_insights.ratelimit import RateLimiter, retry_after, window_start


def test_window_start_truncates():
    now = datetime.datetime(2026, 1, 15, 10, 17, 42, tzinfo=datetime.timezone.utc)
    assert window_start(now, 60) == now.replace(second=0)
    assert window_start(now, 3600) == now.replace(minute=0, second=0)


def test_retry_after_counts_to_window_end():
    now = datetime.datetime(2026, 1, 15, 10, 17, 42, tzinfo=datetime.timezone.utc)
    assert retry_after(now, 60) == 18
    assert retry_after(now, 3600) == 3600 - (17 * 60 + 42)


async def test_minute_limit_blocks_next_request(sessionmaker, clock):
    limiter = RateLimiter(sessionmaker, per_minute=3, per_hour=100, clock=clock)

    for _ in range(3):
        assert (await limiter.check_limit("1.2.3.4", "forecast")).allowed

    result = await limiter.check_limit("1.2.3.4", "forecast")
    assert result.allowed is False
    assert result.retry_after == 30  # clock sits at hh:mm:30


async def test_new_minute_resets_minute_window(sessionmaker, clock):
    limiter = RateLimiter(sessionmaker, per_minute=2, per_hour=100, clock=clock)
    for _ in range(2):
        await limiter.check_limit("c", "forecast")
    assert not (await limiter.check_limit("c", "forecast")).allowed

    clock.advance(30)
    assert (await limiter.check_limit("c", "forecast")).allowed


async def test_hour_limit_applies_after_minute(sessionmaker, clock):
    limiter = RateLimiter(sessionmaker, per_minute=100, per_hour=2, clock=clock)
    assert (await limiter.check_limit("c", "forecast")).allowed
    assert (await limiter.check_limit("c", "forecast")).allowed

    result = await limiter.check_limit("c", "forecast")
    assert result.allowed is False
    assert result.retry_after == 3600 - 30


async def test_clients_and_endpoints_counted_separately(sessionmaker, clock):
    limiter = RateLimiter(sessionmaker, per_minute=1, per_hour=100, clock=clock)
    assert (await limiter.check_limit("a", "forecast")).allowed
    assert (await limiter.check_limit("b", "forecast")).allowed
    assert (await limiter.check_limit("a", "tides")).allowed
    assert not (await limiter.check_limit("a", "forecast")).allowed


async def test_minute_and_hour_windows_do_not_share_rows(sessionmaker, clock):
    """On the hour both windows start at the same instant but count apart."""
    clock.now = datetime.datetime(2026, 1, 15, 10, 0, 0, tzinfo=datetime.timezone.utc)
    limiter = RateLimiter(sessionmaker, per_minute=2, per_hour=100, clock=clock)

    assert (await limiter.check_limit("c", "forecast")).allowed
    assert (await limiter.check_limit("c", "forecast")).allowed
    assert not (await limiter.check_limit("c", "forecast")).allowed


async def test_cleanup_prunes_day_old_windows(sessionmaker, clock):
    limiter = RateLimiter(sessionmaker, per_minute=5, per_hour=100, clock=clock)
    await limiter.check_limit("c", "forecast")

    clock.advance(2 * 24 * 3600)
    await limiter.check_limit("c", "forecast")

    assert await limiter.cleanup() == 2
    async with sessionmaker() as session:
        remaining = (await session.execute(select(func.count(RateLimitWindow.id)))).scalar_one()
    assert remaining == 2
