"""
Forecast aggregation: joins weather, sun and tides per day and scores it.

Whole responses are cached briefly under the ``forecast`` provider, keyed
by the request plus a rules version (the number of active species rules),
so reference-data changes bust the cache. Provider-level caches outlive
several forecast-level expirations.
"""
import asyncio
import datetime
import logging
import random
from typing import Any, Dict, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import scoring, tides
from .cache import Cache
from .config import Settings
from .errors import UpstreamUnavailable
from .insights import (
    DayScores,
    TackleLink,
    best_bite_windows,
    build_gear,
    build_reasons,
    recommend_species,
)
from .location import Coordinate, nearest
from .ratelimit import RateLimiter
from .reference import ReferenceData
from .schemas import ForecastDay, SunTimes, TideDay, WeatherDay
from .validation import ForecastRequest
from .weather import ForecastData

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"
NO_LOCATION_WARNING = "No nearby saved location; using coordinates only"

DEFAULT_BEST_LIMIT = 5
MAX_BEST_LIMIT = 20


def summarize(scores: DayScores) -> str:
    """Short comma-joined blurb for a ranked location."""
    parts = []
    if scores.weather >= 70:
        parts.append("excellent weather")
    elif scores.weather >= 50:
        parts.append("good weather")
    if scores.tide >= 70:
        parts.append("favorable tides")
    if scores.dawn_dusk >= 50:
        parts.append("good bite windows")
    if scores.seasonality >= 60:
        parts.append("species in season")
    return ", ".join(parts) or "decent conditions"


def forecast_cache_key(request: ForecastRequest, rules_version: int) -> tuple:
    return (
        request.lat,
        request.lng,
        request.start.isoformat(),
        request.days,
        request.timezone,
        rules_version,
    )


class ForecastService:
    """Builds forecast responses; one instance is shared by all requests."""

    def __init__(
        self,
        settings: Settings,
        cache: Cache,
        data: ForecastData,
        reference: ReferenceData,
        rate_limiter: RateLimiter,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.data = data
        self.reference = reference
        self.rate_limiter = rate_limiter
        self.rng = rng or random.Random()

    def sweep_due(self) -> bool:
        """Roll for an opportunistic sweep of expired cache and rate-limit rows."""
        return self.rng.random() < self.settings.CACHE_SWEEP_PROBABILITY

    async def sweep(self) -> None:
        await self.cache.clear_expired()
        await self.rate_limiter.cleanup()

    async def get_forecast(self, request: ForecastRequest) -> Dict[str, Any]:
        """
        Assemble (or serve from cache) the forecast for a validated request.

        Raises:
            UpstreamUnavailable: weather or sun data could not be fetched
        """
        zone = request.zone
        month = datetime.datetime.now(zone).month
        rules = await self.reference.active_species_rules(month)
        key = forecast_cache_key(request, rules_version=len(rules))

        if not request.refresh:
            cached = await self.cache.get("forecast", key)
            if cached is not None:
                return {**cached, "cached": True}

        coord = request.coordinate
        match = nearest(
            await self.reference.locations(), coord, self.settings.NEAREST_LOCATION_MAX_KM
        )

        # Both fetches finish before any failure is raised
        weather, sun = await asyncio.gather(
            self.data.fetch_weather(coord, request.start, request.days, request.timezone),
            self.data.fetch_sun(coord, request.start, request.days, request.timezone),
            return_exceptions=True,
        )
        for outcome in (weather, sun):
            if isinstance(outcome, BaseException):
                raise outcome
        tide_batch = await self.data.fetch_tides(
            coord, request.start, request.days, request.timezone
        )

        rules_by_id = {r.species_id: r for r in rules}
        tackle = await self.reference.tackle_for(
            list(dict.fromkeys([*request.target_species, *rules_by_id]))
        )

        weather_by_date = {d.date: d for d in weather}
        sun_by_date = {d.date: d for d in sun}
        tides_by_date = {d.date: d for d in tide_batch.days}
        seasonality = scoring.seasonality_score(rules)

        forecast: List[Dict[str, Any]] = []
        for offset in range(request.days):
            day = request.start + datetime.timedelta(days=offset)
            if day not in weather_by_date or day not in sun_by_date:
                logger.warning("Skipping %s: weather or sun data missing", day)
                continue
            try:
                built = self._build_day(
                    request,
                    day,
                    weather_by_date[day],
                    sun_by_date[day],
                    tides_by_date.get(day),
                    tide_batch.mock,
                    seasonality,
                    rules,
                    rules_by_id,
                    tackle,
                )
            except (ValueError, TypeError, KeyError):
                logger.warning("Skipping %s: could not derive forecast day", day, exc_info=True)
                continue
            forecast.append(built.model_dump(mode="json"))

        result: Dict[str, Any] = {
            "location": {
                "lat": request.lat,
                "lng": request.lng,
                "name": match.candidate.name if match else UNKNOWN_LOCATION,
                "region": match.candidate.region if match else None,
            },
            "timezone": request.timezone,
            "forecast": forecast,
            "cached": False,
            "cached_at": datetime.datetime.now(zone).isoformat(timespec="seconds"),
        }
        if match is None:
            result["warning"] = NO_LOCATION_WARNING

        await self.cache.set("forecast", key, result, self.settings.CACHE_TTL_FORECAST)
        return result

    async def todays_best(
        self,
        state: str = "VIC",
        region: Optional[str] = None,
        limit: int = DEFAULT_BEST_LIMIT,
        species_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Rank saved locations in a state (optionally a region) by today's score.

        "Today" is the date in the default timezone. Each location is scored
        in its own timezone; locations whose weather or sun data cannot be
        fetched are left out. ``species_id`` narrows seasonality to that one
        species. An out-of-range ``limit`` falls back to the default.
        """
        state = state.strip().upper()
        region = region.strip() if region else None
        species_id = species_id.strip() if species_id else None
        if not 1 <= limit <= MAX_BEST_LIMIT:
            limit = DEFAULT_BEST_LIMIT

        default_tz = self.settings.DEFAULT_TIMEZONE
        now = datetime.datetime.now(ZoneInfo(default_tz))
        today = now.date()
        key = (today.isoformat(), state, region or "", species_id or "")

        # The full ranking is cached so any limit can be served from it
        cached = await self.cache.get("todays_best", key)
        if cached is not None:
            return {**cached, "locations": cached["locations"][:limit], "cached": True}

        result: Dict[str, Any] = {
            "date": today.isoformat(),
            "timezone": default_tz,
            "locations": [],
            "cached": False,
        }
        locations = await self.reference.locations_in(state, region)
        if not locations:
            return result

        rules = await self.reference.active_species_rules(now.month)
        if species_id:
            rules = [r for r in rules if r.species_id == species_id]
        seasonality = scoring.seasonality_score(rules)

        ranked = []
        for location in locations:
            entry = await self._score_location(location, today, seasonality)
            if entry is not None:
                ranked.append(entry)
        ranked.sort(key=lambda e: e["score"], reverse=True)

        result["locations"] = ranked
        result["cached_at"] = now.isoformat(timespec="seconds")
        if ranked:
            await self.cache.set("todays_best", key, result, self.settings.CACHE_TTL_TODAYS_BEST)
        return {**result, "locations": ranked[:limit]}

    async def _score_location(
        self, location, today: datetime.date, seasonality: int
    ) -> Optional[Dict[str, Any]]:
        tz = location.timezone or self.settings.DEFAULT_TIMEZONE
        try:
            zone = ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            logger.warning("Skipping %s: unknown timezone %r", location.name, tz)
            return None

        coord = Coordinate(location.latitude, location.longitude)
        try:
            weather = await self.data.fetch_weather(coord, today, 1, tz)
            sun = await self.data.fetch_sun(coord, today, 1, tz)
        except UpstreamUnavailable as e:
            logger.warning("Skipping %s: %s", location.name, e)
            return None
        if not weather or not sun:
            return None

        batch = await self.data.fetch_tides(coord, today, 1, tz)
        tide_day = batch.days[0] if batch.days else None
        if tide_day is None or not tide_day.events:
            tide_day = tides.generate_synthetic_tides(coord, zone, today, 1, self.data.rng)[0]

        scores = DayScores(
            weather=scoring.weather_score(weather[0]),
            tide=scoring.tide_score(tide_day),
            dawn_dusk=scoring.dawn_dusk_score(sun[0], tide_day),
            seasonality=seasonality,
        )
        return {
            "id": location.id,
            "name": location.name,
            "region": location.region,
            "lat": location.latitude,
            "lng": location.longitude,
            "score": scoring.composite_score(
                scores.weather, scores.tide, scores.dawn_dusk, scores.seasonality
            ),
            "why": summarize(scores),
        }

    def _build_day(
        self,
        request: ForecastRequest,
        day: datetime.date,
        weather: WeatherDay,
        sun: SunTimes,
        tide_day: Optional[TideDay],
        batch_is_mock: bool,
        seasonality: int,
        rules: Sequence,
        rules_by_id: Mapping[str, Any],
        tackle: Sequence[TackleLink],
    ) -> ForecastDay:
        estimated = batch_is_mock
        if tide_day is None or not tide_day.events:
            logger.info("No tide events for %s; generating one synthetic day", day)
            tide_day = tides.generate_synthetic_tides(
                request.coordinate, request.zone, day, 1, self.data.rng
            )[0]
            estimated = True

        scores = DayScores(
            weather=scoring.weather_score(weather),
            tide=scoring.tide_score(tide_day),
            dawn_dusk=scoring.dawn_dusk_score(sun, tide_day),
            seasonality=seasonality,
        )
        species = recommend_species(rules, weather, tide_day)
        gear_ids = request.target_species or ([species[0].id] if species else [])

        return ForecastDay(
            date=day,
            score=scoring.composite_score(
                scores.weather, scores.tide, scores.dawn_dusk, scores.seasonality
            ),
            weather=weather,
            sun=sun,
            tides=tide_day,
            best_bite_windows=best_bite_windows(sun, tide_day),
            recommended_species=species,
            gear_suggestions=build_gear(gear_ids, rules_by_id, tackle),
            reasons=build_reasons(scores, weather, tide_day, estimated),
        )
