"""
Canonical per-day shapes shared by the fetchers, scoring and the response.

Field names are the JSON names returned to callers. Timestamps are
timezone-aware and serialise with the request timezone offset.
"""
import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

TideType = Literal["high", "low"]
Transition = Literal["rising", "falling"]


def as_utc(moment: dt.datetime) -> dt.datetime:
    return moment.astimezone(dt.timezone.utc)


def shift(moment: dt.datetime, delta: dt.timedelta) -> dt.datetime:
    """
    Move ``moment`` by an elapsed ``delta``, keeping its timezone.

    Plain ``+``/``-`` on a ZoneInfo datetime is wall-clock arithmetic and is
    off by the DST jump on transition days.
    """
    return (as_utc(moment) + delta).astimezone(moment.tzinfo)


class WeatherDay(BaseModel):
    date: dt.date
    temperature_max: float = 0.0
    temperature_min: float = 0.0
    wind_speed: float = 0.0
    wind_direction: int = 0
    precipitation: float = 0.0
    cloud_cover: int = 0
    conditions: str = "clear"


class SunTimes(BaseModel):
    date: dt.date
    sunrise: dt.datetime
    sunset: dt.datetime
    dawn: dt.datetime
    dusk: dt.datetime


class TideEvent(BaseModel):
    time: dt.datetime
    type: TideType
    height: float = Field(ge=0)


class ChangeWindow(BaseModel):
    start: dt.datetime
    end: dt.datetime
    type: Transition
    event_time: dt.datetime
    event_type: TideType


class TideDay(BaseModel):
    date: dt.date
    events: List[TideEvent] = []
    change_windows: List[ChangeWindow] = []


class BiteWindow(BaseModel):
    start: dt.datetime
    end: dt.datetime
    quality: Literal["excellent", "good", "fair"]
    reason: str


class SpeciesRecommendation(BaseModel):
    id: str
    name: str
    confidence: float
    why: str


class TackleEntry(BaseModel):
    name: str
    priority: int
    notes: Optional[str] = None


class TackleCategory(BaseModel):
    category: str
    items: List[TackleEntry]


class GearSuggestion(BaseModel):
    bait: List[str] = []
    lure: List[str] = []
    line_weight: str = "8-15lb"
    leader: str = "10-20lb"
    rig: str = "paternoster or running sinker"
    tackle: List[TackleCategory] = []


class Reason(BaseModel):
    title: str
    detail: str
    contribution_points: int
    severity: Literal["positive", "neutral", "negative"]
    category: str


class ForecastDay(BaseModel):
    date: dt.date
    score: int = Field(ge=0, le=100)
    weather: WeatherDay
    sun: SunTimes
    tides: TideDay
    best_bite_windows: List[BiteWindow]
    recommended_species: List[SpeciesRecommendation]
    gear_suggestions: GearSuggestion
    reasons: List[Reason]
