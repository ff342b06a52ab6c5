"""
Read-only access to reference tables: saved locations, species rules, tackle.
"""
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .insights import TackleLink
from .models import Location, SpeciesRule, SpeciesTackle, TackleItem

MAX_RANKED_LOCATIONS = 200


def in_season(month: int):
    """SQL filter for rules whose season covers ``month``, wrapping at year end."""
    start, end = SpeciesRule.season_start_month, SpeciesRule.season_end_month
    return or_(
        and_(start <= month, end >= month),
        and_(start > end, or_(start <= month, end >= month)),
    )


class ReferenceData:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def active_species_rules(self, month: int) -> List[SpeciesRule]:
        async with self._sessionmaker() as session:
            rows = (
                await session.execute(
                    select(SpeciesRule).where(in_season(month)).order_by(SpeciesRule.species_id)
                )
            ).scalars().all()
        return list(rows)

    async def locations(self) -> List[Location]:
        async with self._sessionmaker() as session:
            rows = (await session.execute(select(Location))).scalars().all()
        return list(rows)

    async def locations_in(
        self, state: str, region: Optional[str] = None, limit: int = MAX_RANKED_LOCATIONS
    ) -> List[Location]:
        """Saved locations in ``state`` (and ``region`` if given), by name."""
        query = select(Location).where(Location.state == state)
        if region:
            query = query.where(Location.region == region)
        async with self._sessionmaker() as session:
            rows = (
                await session.execute(query.order_by(Location.name).limit(limit))
            ).scalars().all()
        return list(rows)

    async def tackle_for(self, species_ids: Sequence[str]) -> List[TackleLink]:
        if not species_ids:
            return []
        async with self._sessionmaker() as session:
            rows = (
                await session.execute(
                    select(
                        SpeciesTackle.species_id,
                        SpeciesTackle.priority,
                        TackleItem.name,
                        TackleItem.category,
                        TackleItem.notes,
                    )
                    .join(TackleItem, TackleItem.id == SpeciesTackle.tackle_item_id)
                    .where(SpeciesTackle.species_id.in_(list(species_ids)))
                    .order_by(SpeciesTackle.species_id, SpeciesTackle.priority, TackleItem.name)
                )
            ).all()
        return [
            TackleLink(
                species_id=r.species_id,
                name=r.name,
                category=r.category,
                priority=r.priority,
                notes=r.notes,
            )
            for r in rows
        ]
