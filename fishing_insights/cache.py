"""
Keyed TTL cache for provider payloads and assembled forecasts.

Rows live in the ``api_cache`` table. Caching is an optimisation only:
read failures behave like a miss and write failures are logged and dropped.
"""
import datetime
import json
import logging
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import upsert
from .models import ApiCache

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def encode_key(key: Sequence[Any]) -> str:
    """Encode a structured key; JSON quoting keeps parts from colliding."""
    return json.dumps([str(part) for part in key], separators=(",", ":"))


class Cache:
    """Read-through store for JSON payloads keyed by (provider, key)."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._sessionmaker = sessionmaker
        self._clock = clock

    async def get(self, provider: str, key: Sequence[Any]) -> Optional[Any]:
        """Return the cached payload, or None if missing or expired."""
        try:
            async with self._sessionmaker() as session:
                row = (
                    await session.execute(
                        select(ApiCache.payload).where(
                            ApiCache.provider == provider,
                            ApiCache.cache_key == encode_key(key),
                            ApiCache.expires_at > self._clock(),
                        )
                    )
                ).first()
        except SQLAlchemyError:
            logger.warning("Cache read failed for %s; treating as miss", provider, exc_info=True)
            return None

        if row is None:
            logger.debug("Cache miss: %s %s", provider, key)
            return None
        logger.debug("Cache hit: %s %s", provider, key)
        return row.payload

    async def set(self, provider: str, key: Sequence[Any], payload: Any, ttl_seconds: int) -> None:
        """Upsert a payload that expires ``ttl_seconds`` from now."""
        now = self._clock()
        values = {
            "provider": provider,
            "cache_key": encode_key(key),
            "payload": payload,
            "fetched_at": now,
            "expires_at": now + datetime.timedelta(seconds=ttl_seconds),
        }
        try:
            async with self._sessionmaker() as session:
                stmt = upsert(session, ApiCache).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["provider", "cache_key"],
                    set_={
                        "payload": stmt.excluded.payload,
                        "fetched_at": stmt.excluded.fetched_at,
                        "expires_at": stmt.excluded.expires_at,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Cache write failed for %s; continuing uncached", provider, exc_info=True)

    async def clear_expired(self) -> int:
        """Delete expired rows. Best-effort; returns the number removed."""
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(
                    delete(ApiCache).where(ApiCache.expires_at < self._clock())
                )
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Cache sweep failed", exc_info=True)
            return 0
        removed = result.rowcount or 0
        if removed:
            logger.info("Cache sweep removed %d expired rows", removed)
        return removed
