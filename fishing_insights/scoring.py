"""
Fishability scoring.

Four sub-scores, each 0-100, combined with fixed weights into one integer
day score. Everything here is a pure function of already-normalised inputs.
"""
import datetime
import math
from typing import Optional, Sequence, Tuple

from .schemas import SunTimes, TideDay, WeatherDay, as_utc, shift

WEATHER_WEIGHT: float = 0.35
TIDE_WEIGHT: float = 0.30
DAWN_DUSK_WEIGHT: float = 0.20
SEASONALITY_WEIGHT: float = 0.15

# Missing sun data scores the same as no overlap at all
DEFAULT_DAWN_DUSK_SCORE: int = 20

Interval = Tuple[datetime.datetime, datetime.datetime]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def overlap_minutes(
    a_start: datetime.datetime,
    a_end: datetime.datetime,
    b_start: datetime.datetime,
    b_end: datetime.datetime,
) -> int:
    """Whole minutes shared by two intervals (0 when disjoint)."""
    a_start, a_end, b_start, b_end = map(as_utc, (a_start, a_end, b_start, b_end))
    seconds = (min(a_end, b_end) - max(a_start, b_start)).total_seconds()
    return max(0, int(seconds / 60))


def dawn_window(sun: SunTimes) -> Interval:
    return (
        shift(sun.sunrise, -datetime.timedelta(minutes=30)),
        shift(sun.sunrise, datetime.timedelta(hours=2)),
    )


def dusk_window(sun: SunTimes) -> Interval:
    return (
        shift(sun.sunset, -datetime.timedelta(hours=2)),
        shift(sun.sunset, datetime.timedelta(minutes=30)),
    )


def _wind_points(speed: float) -> float:
    if speed <= 10:
        return 50
    if speed <= 20:
        return 40 - (speed - 10)
    if speed <= 30:
        return 30 - (speed - 20) * 1.5
    return max(0, 15 - (speed - 30) * 0.5)


def _precip_points(mm: float) -> int:
    if mm <= 0:
        return 30
    if mm <= 2:
        return 25
    if mm <= 5:
        return 15
    return 5


def _cloud_points(pct: float) -> int:
    if pct <= 30:
        return 20
    if pct <= 60:
        return 15
    if pct <= 80:
        return 10
    return 5


def weather_score(day: WeatherDay) -> float:
    """Wind (0-50) + precipitation (0-30) + cloud cover (0-20)."""
    return (
        _wind_points(day.wind_speed)
        + _precip_points(day.precipitation)
        + _cloud_points(day.cloud_cover)
    )


def tide_score(tide_day: TideDay) -> int:
    """Change frequency (20-60) + tidal range (10-40)."""
    events = tide_day.events
    changes_per_day = len(events) / 2
    if changes_per_day >= 2:
        frequency_points = 60
    elif changes_per_day == 1:
        frequency_points = 40
    else:
        frequency_points = 20

    heights = [e.height for e in events]
    tide_range = max(heights) - min(heights) if heights else 0
    if tide_range >= 1.5:
        amplitude_points = 40
    elif tide_range >= 1.0:
        amplitude_points = 30
    elif tide_range >= 0.5:
        amplitude_points = 20
    else:
        amplitude_points = 10

    return frequency_points + amplitude_points


def dawn_dusk_minutes(sun: SunTimes, tide_day: TideDay) -> int:
    """Total minutes of tide change windows inside the dawn and dusk periods."""
    dawn = dawn_window(sun)
    dusk = dusk_window(sun)
    total = 0
    for window in tide_day.change_windows:
        total += overlap_minutes(window.start, window.end, *dawn)
        total += overlap_minutes(window.start, window.end, *dusk)
    return total


def dawn_dusk_score(sun: Optional[SunTimes], tide_day: TideDay) -> int:
    if sun is None:
        return DEFAULT_DAWN_DUSK_SCORE
    minutes = dawn_dusk_minutes(sun, tide_day)
    if minutes >= 120:
        return 100
    if minutes >= 60:
        return 80
    if minutes >= 30:
        return 60
    if minutes >= 15:
        return 40
    return DEFAULT_DAWN_DUSK_SCORE


def seasonality_score(active_rules: Sequence) -> int:
    """Species in season this month: count tier (10-60) + 8 per species up to 40."""
    count = len(active_rules)
    if count >= 5:
        species_points = 60
    elif count >= 3:
        species_points = 45
    elif count >= 2:
        species_points = 30
    elif count >= 1:
        species_points = 20
    else:
        species_points = 10
    return species_points + min(40, count * 8)


def composite_score(weather: float, tide: float, dawn_dusk: float, seasonality: float) -> int:
    return round_half_up(
        weather * WEATHER_WEIGHT
        + tide * TIDE_WEIGHT
        + dawn_dusk * DAWN_DUSK_WEIGHT
        + seasonality * SEASONALITY_WEIGHT
    )
