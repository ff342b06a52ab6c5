"""
Weather, sun and tide data fetching and normalisation.

Weather and sunrise/sunset come from Open-Meteo's daily forecast API and are
required: any upstream problem raises ``UpstreamUnavailable``. Tides come
from WorldTides when a key is configured and otherwise (or on any failure)
from the synthetic model in ``tides``. Every fetch is cache-wrapped.
"""
import asyncio
import datetime
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import httpx
from pydantic import ValidationError

from . import tides
from .cache import Cache
from .config import Settings
from .errors import UpstreamUnavailable
from .location import Coordinate
from .schemas import SunTimes, TideDay, WeatherDay, shift

logger = logging.getLogger(__name__)

WEATHER_VARS: List[str] = [
    "temperature_2m_max",
    "temperature_2m_min",
    "windspeed_10m_max",
    "winddirection_10m_dominant",
    "precipitation_sum",
    "cloudcover_mean",
]
SUN_VARS: List[str] = ["sunrise", "sunset"]

# Dawn starts this long before sunrise, dusk ends this long after sunset
TWILIGHT = datetime.timedelta(minutes=30)


def conditions_label(cloud_cover: int) -> str:
    """Qualitative sky label from mean cloud cover percentage."""
    if cloud_cover > 80:
        return "overcast"
    if cloud_cover > 60:
        return "mostly_cloudy"
    if cloud_cover > 30:
        return "partly_cloudy"
    return "clear"


def _at(values: List[Any], i: int) -> Any:
    return values[i] if i < len(values) else None


def normalize_weather(payload: Dict[str, Any], days: int) -> List[WeatherDay]:
    """
    Turn Open-Meteo's parallel daily arrays into ``WeatherDay`` records.

    Missing numeric entries default to 0, matching what the scoring expects
    for a calm, dry day.
    """
    daily: Dict[str, List] = payload.get("daily", {})
    dates: List[str] = daily.get("time", [])
    temp_max = daily.get("temperature_2m_max", [])
    temp_min = daily.get("temperature_2m_min", [])
    wind = daily.get("windspeed_10m_max", [])
    wind_dir = daily.get("winddirection_10m_dominant", [])
    precip = daily.get("precipitation_sum", [])
    clouds = daily.get("cloudcover_mean", [])

    out: List[WeatherDay] = []
    for i in range(min(len(dates), days)):
        cloud = int(_at(clouds, i) or 0)
        out.append(WeatherDay(
            date=datetime.date.fromisoformat(dates[i]),
            temperature_max=float(_at(temp_max, i) or 0),
            temperature_min=float(_at(temp_min, i) or 0),
            wind_speed=float(_at(wind, i) or 0),
            wind_direction=int(_at(wind_dir, i) or 0),
            precipitation=float(_at(precip, i) or 0),
            cloud_cover=cloud,
            conditions=conditions_label(cloud),
        ))
    return out


def _localize(value: str, tz: ZoneInfo) -> datetime.datetime:
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def normalize_sun(payload: Dict[str, Any], days: int, tz: ZoneInfo) -> List[SunTimes]:
    """Build ``SunTimes`` with dawn/dusk offsets; days lacking either time are dropped."""
    daily: Dict[str, List] = payload.get("daily", {})
    dates: List[str] = daily.get("time", [])
    sunrises = daily.get("sunrise", [])
    sunsets = daily.get("sunset", [])

    out: List[SunTimes] = []
    for i in range(min(len(dates), days)):
        sunrise_raw, sunset_raw = _at(sunrises, i), _at(sunsets, i)
        if not sunrise_raw or not sunset_raw:
            continue
        sunrise = _localize(sunrise_raw, tz)
        sunset = _localize(sunset_raw, tz)
        out.append(SunTimes(
            date=datetime.date.fromisoformat(dates[i]),
            sunrise=sunrise,
            sunset=sunset,
            dawn=shift(sunrise, -TWILIGHT),
            dusk=shift(sunset, TWILIGHT),
        ))
    return out


@dataclass
class TideBatch:
    days: List[TideDay]
    mock: bool


class ForecastData:
    """Cache-wrapped upstream fetchers sharing one HTTP client."""

    def __init__(
        self,
        cache: Cache,
        client: httpx.AsyncClient,
        settings: Settings,
        rng: Optional[random.Random] = None,
    ):
        self.cache = cache
        self.client = client
        self.settings = settings
        self.rng = rng or random.Random()
        # Limits concurrent upstream requests (prevents provider rate limiting)
        self._sem = asyncio.Semaphore(settings.MAX_CONCURRENT_WEATHER_REQUESTS)

    @staticmethod
    def cache_key(coord: Coordinate, start: datetime.date, days: int, tz: str) -> tuple:
        return (coord.lat, coord.lng, start.isoformat(), days, tz)

    async def _fetch_daily(
        self,
        source: str,
        coord: Coordinate,
        start: datetime.date,
        days: int,
        tz: str,
        variables: List[str],
    ) -> Dict[str, Any]:
        params = {
            "latitude": coord.lat,
            "longitude": coord.lng,
            "daily": ",".join(variables),
            "timezone": tz,
            "start_date": start.isoformat(),
            "end_date": (start + datetime.timedelta(days=days - 1)).isoformat(),
        }
        try:
            async with self._sem:
                r = await self.client.get(
                    self.settings.WEATHER_API_URL,
                    params=params,
                    timeout=self.settings.UPSTREAM_TIMEOUT,
                )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(source, f"request failed: {e!r}") from e

        if r.status_code != 200:
            raise UpstreamUnavailable(source, f"HTTP {r.status_code}")
        try:
            payload = r.json()
        except ValueError as e:
            raise UpstreamUnavailable(source, "response is not JSON") from e
        if not isinstance(payload, dict) or not isinstance(payload.get("daily"), dict):
            raise UpstreamUnavailable(source, "response has no daily block")
        missing = [v for v in ["time"] + variables if not isinstance(payload["daily"].get(v), list)]
        if missing:
            raise UpstreamUnavailable(source, f"daily block lacks {', '.join(missing)}")
        return payload

    async def fetch_weather(
        self, coord: Coordinate, start: datetime.date, days: int, tz: str
    ) -> List[WeatherDay]:
        key = self.cache_key(coord, start, days, tz)
        cached = await self.cache.get("weather", key)
        if cached is not None:
            try:
                return [WeatherDay.model_validate(d) for d in cached]
            except (ValidationError, TypeError):
                logger.warning("Discarding unreadable weather cache entry %s", key)

        payload = await self._fetch_daily("weather", coord, start, days, tz, WEATHER_VARS)
        try:
            result = normalize_weather(payload, days)
        except (TypeError, ValueError) as e:
            raise UpstreamUnavailable("weather", f"malformed daily data: {e}") from e
        if not result:
            raise UpstreamUnavailable("weather", "no usable days in response")

        await self.cache.set(
            "weather", key,
            [d.model_dump(mode="json") for d in result],
            self.settings.CACHE_TTL_WEATHER,
        )
        return result

    async def fetch_sun(
        self, coord: Coordinate, start: datetime.date, days: int, tz: str
    ) -> List[SunTimes]:
        key = self.cache_key(coord, start, days, tz)
        cached = await self.cache.get("sun", key)
        if cached is not None:
            try:
                return [SunTimes.model_validate(d) for d in cached]
            except (ValidationError, TypeError):
                logger.warning("Discarding unreadable sun cache entry %s", key)

        payload = await self._fetch_daily("sun", coord, start, days, tz, SUN_VARS)
        try:
            result = normalize_sun(payload, days, ZoneInfo(tz))
        except (TypeError, ValueError) as e:
            raise UpstreamUnavailable("sun", f"malformed daily data: {e}") from e
        if not result:
            raise UpstreamUnavailable("sun", "no usable days in response")

        await self.cache.set(
            "sun", key,
            [d.model_dump(mode="json") for d in result],
            self.settings.CACHE_TTL_SUN,
        )
        return result

    async def fetch_tides(
        self, coord: Coordinate, start: datetime.date, days: int, tz: str
    ) -> TideBatch:
        """Never raises: provider problems degrade to synthetic tides."""
        key = self.cache_key(coord, start, days, tz)
        cached = await self.cache.get("tides", key)
        if isinstance(cached, dict) and isinstance(cached.get("days"), list):
            try:
                return TideBatch(
                    days=[TideDay.model_validate(d) for d in cached["days"]],
                    mock=bool(cached.get("mock")),
                )
            except ValidationError:
                logger.warning("Discarding unreadable tides cache entry %s", key)

        zone = ZoneInfo(tz)
        result = None
        if self.settings.WORLDTIDES_API_KEY:
            result = await self._fetch_worldtides(coord, start, days, zone)

        if result:
            batch = TideBatch(days=result, mock=False)
        else:
            logger.info("Using synthetic tides for (%s, %s)", coord.lat, coord.lng)
            batch = TideBatch(
                days=tides.generate_synthetic_tides(coord, zone, start, days, self.rng),
                mock=True,
            )

        await self.cache.set(
            "tides", key,
            {"mock": batch.mock, "days": [d.model_dump(mode="json") for d in batch.days]},
            self.settings.CACHE_TTL_TIDES,
        )
        return batch

    async def _fetch_worldtides(
        self, coord: Coordinate, start: datetime.date, days: int, tz: ZoneInfo
    ) -> Optional[List[TideDay]]:
        params = {
            "heights": "",
            "lat": coord.lat,
            "lon": coord.lng,
            "start": int(datetime.datetime.combine(start, datetime.time(), tzinfo=tz).timestamp()),
            "days": days,
            "key": self.settings.WORLDTIDES_API_KEY,
        }
        try:
            async with self._sem:
                r = await self.client.get(
                    self.settings.WORLDTIDES_API_URL,
                    params=params,
                    timeout=self.settings.UPSTREAM_TIMEOUT,
                )
            if r.status_code != 200:
                logger.warning("WorldTides returned HTTP %s; falling back", r.status_code)
                return None
            return tides.process_worldtides(r.json(), tz)
        except (httpx.HTTPError, ValueError, TypeError):
            logger.warning("WorldTides request failed; falling back", exc_info=True)
            return None
