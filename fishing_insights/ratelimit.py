"""
Per-client, per-endpoint fixed-window rate limiting.

Two windows are checked in order: the current minute, then the current hour.
Each check is one conditional upsert, so concurrent requests cannot lose
increments. Being a fixed window, a client can burst up to twice the
per-minute limit across a minute boundary.
"""
import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .cache import Clock, utcnow
from .db import upsert
from .models import RateLimitWindow

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 3600
RETENTION = datetime.timedelta(days=1)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after: Optional[int] = None


def window_start(now: datetime.datetime, window_seconds: int) -> datetime.datetime:
    """Truncate ``now`` to the start of its fixed window."""
    epoch = int(now.timestamp())
    return datetime.datetime.fromtimestamp(
        epoch - epoch % window_seconds, tz=datetime.timezone.utc
    )


def retry_after(now: datetime.datetime, window_seconds: int) -> int:
    return window_seconds - int(now.timestamp()) % window_seconds


class RateLimiter:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        per_minute: int = 60,
        per_hour: int = 1000,
        clock: Clock = utcnow,
    ):
        self._sessionmaker = sessionmaker
        self.limits = ((MINUTE, per_minute), (HOUR, per_hour))
        self._clock = clock

    async def check_limit(self, client_id: str, endpoint: str) -> RateLimitResult:
        """Count one request; deny with a retry-after once a window is full."""
        now = self._clock()
        for window_seconds, limit in self.limits:
            try:
                counted = await self._increment(client_id, endpoint, now, window_seconds, limit)
            except SQLAlchemyError:
                logger.warning("Rate limit store unavailable; allowing %s", client_id, exc_info=True)
                return RateLimitResult(allowed=True)
            if not counted:
                wait = retry_after(now, window_seconds)
                logger.info(
                    "Rate limit hit for %s on %s (%ss window), retry in %ss",
                    client_id, endpoint, window_seconds, wait,
                )
                return RateLimitResult(allowed=False, retry_after=wait)
        return RateLimitResult(allowed=True)

    async def _increment(
        self,
        client_id: str,
        endpoint: str,
        now: datetime.datetime,
        window_seconds: int,
        limit: int,
    ) -> bool:
        """Insert at 1 or increment below ``limit``. False means the window is full."""
        async with self._sessionmaker() as session:
            stmt = upsert(session, RateLimitWindow).values(
                client_id=client_id,
                endpoint=endpoint,
                window_seconds=window_seconds,
                window_start=window_start(now, window_seconds),
                request_count=1,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["client_id", "endpoint", "window_seconds", "window_start"],
                set_={"request_count": RateLimitWindow.request_count + 1},
                where=RateLimitWindow.request_count < limit,
            ).returning(RateLimitWindow.request_count)
            row = (await session.execute(stmt)).first()
            await session.commit()
        return row is not None

    async def cleanup(self) -> int:
        """Prune windows older than a day. Best-effort."""
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    delete(RateLimitWindow).where(
                        RateLimitWindow.window_start < self._clock() - RETENTION
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Rate limit cleanup failed", exc_info=True)
            return 0
        return result.rowcount or 0
