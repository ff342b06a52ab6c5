"""
Tide day construction: synthetic events and WorldTides height samples.

The synthetic model is a plain periodic approximation, not harmonic
analysis. Four events a day roughly 6.2 h apart (semi-diurnal spacing),
shifted 45 min per day (lunar lag), with a larger range south of 38°S.
Randomness only touches heights and comes from an injected ``random.Random``.
"""
import datetime
import random
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from .location import Coordinate
from .schemas import ChangeWindow, TideDay, TideEvent, as_utc, shift

CHANGE_WINDOW = datetime.timedelta(hours=1)

DAILY_LAG_HOURS: float = 0.75

# (hour offset, type, base height above/below amplitude, max jitter in cm)
_EVENT_PATTERN: List[Tuple[float, str, float, int]] = [
    (0.0, "low", 0.4, 20),
    (6.2, "high", -0.2, 40),
    (12.4, "low", 0.5, 20),
    (18.6, "high", -0.1, 40),
]


def amplitude_for(lat: float) -> float:
    return 1.8 if lat < -38 else 1.5


def base_hour_for(lng: float) -> float:
    return 2.0 + (lng - 144) * 0.1


def change_window(event: TideEvent) -> ChangeWindow:
    """Event ± 1 h; a low turns the tide rising, a high turns it falling."""
    return ChangeWindow(
        start=shift(event.time, -CHANGE_WINDOW),
        end=shift(event.time, CHANGE_WINDOW),
        type="rising" if event.type == "low" else "falling",
        event_time=event.time,
        event_type=event.type,
    )


def build_tide_day(day: datetime.date, events: List[TideEvent]) -> TideDay:
    events = sorted(events, key=lambda e: as_utc(e.time))
    windows = sorted((change_window(e) for e in events), key=lambda w: as_utc(w.start))
    return TideDay(date=day, events=events, change_windows=windows)


def _clock_time(day: datetime.date, hour: float, tz: ZoneInfo) -> datetime.datetime:
    hour = hour % 24
    hours = int(hour)
    minutes = int((hour - hours) * 60)
    return datetime.datetime.combine(day, datetime.time(hours, minutes), tzinfo=tz)


def generate_synthetic_tides(
    coord: Coordinate,
    tz: ZoneInfo,
    start: datetime.date,
    days: int,
    rng: Optional[random.Random] = None,
) -> List[TideDay]:
    """Generate ``days`` synthetic tide days starting at ``start``."""
    rng = rng or random.Random()
    amplitude = amplitude_for(coord.lat)
    base_hour = base_hour_for(coord.lng)

    result: List[TideDay] = []
    for day_index in range(days):
        day = start + datetime.timedelta(days=day_index)
        lag = day_index * DAILY_LAG_HOURS
        events = []
        for offset, kind, base, jitter in _EVENT_PATTERN:
            height = base if kind == "low" else amplitude + base
            height += rng.randint(0, jitter) / 100
            events.append(TideEvent(
                time=_clock_time(day, base_hour + lag + offset, tz),
                type=kind,
                height=round(height, 2),
            ))
        result.append(build_tide_day(day, events))
    return result


def process_worldtides(data: Dict[str, Any], tz: ZoneInfo) -> Optional[List[TideDay]]:
    """
    Bucket WorldTides height samples by local date.

    Samples are classified by the sign of their height (above datum = high).
    That is a coarse heuristic rather than extrema detection; the height kept
    is the magnitude.
    """
    heights = data.get("heights") if isinstance(data, dict) else None
    if not isinstance(heights, list):
        return None

    by_date: Dict[datetime.date, List[TideEvent]] = {}
    for sample in heights:
        if not isinstance(sample, dict) or sample.get("height") is None:
            continue
        if sample.get("dt") is not None:
            when = datetime.datetime.fromtimestamp(int(sample["dt"]), tz=tz)
        elif sample.get("date"):
            when = datetime.datetime.fromisoformat(sample["date"]).astimezone(tz)
        else:
            continue
        height = float(sample["height"])
        by_date.setdefault(when.date(), []).append(TideEvent(
            time=when,
            type="high" if height > 0 else "low",
            height=abs(height),
        ))

    return [build_tide_day(day, events) for day, events in sorted(by_date.items())] or None
