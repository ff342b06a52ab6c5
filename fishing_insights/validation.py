"""
Forecast request validation.

Everything is checked before any fetch or cache access so a rejected
request has no side effects.
"""
import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import InvalidRequest
from .location import Coordinate

MAX_DAYS = 14


class ForecastRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    start: datetime.date
    days: int = Field(default=7, ge=1, le=MAX_DAYS)
    timezone: str
    target_species: List[str] = []
    refresh: bool = False

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"unknown timezone {v!r}") from e
        return v

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def parse_target_species(raw: Optional[str]) -> List[str]:
    """Comma-separated ids, trimmed, empty entries and repeats dropped."""
    if not raw:
        return []
    seen: List[str] = []
    for part in raw.split(","):
        part = part.strip()
        if part and part not in seen:
            seen.append(part)
    return seen


def build_forecast_request(
    lat,
    lng,
    start: Optional[str],
    days=7,
    timezone: str = "UTC",
    target_species: Optional[str] = None,
    refresh: bool = False,
    allow_past: bool = False,
) -> ForecastRequest:
    """
    Validate raw query values into a ``ForecastRequest``.

    ``start`` must be YYYY-MM-DD and defaults to today in ``timezone``.
    Past dates are rejected unless ``allow_past`` is set.

    Raises:
        InvalidRequest: on any out-of-range or malformed value
    """
    if lat is None or lng is None:
        raise InvalidRequest("Invalid latitude or longitude. Both are required.")
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidRequest(f"Unknown timezone: {timezone}") from e

    today = datetime.datetime.now(zone).date()
    if start:
        try:
            if len(start) != 10:
                raise ValueError(start)
            start_date = datetime.date.fromisoformat(start)
        except (TypeError, ValueError) as e:
            raise InvalidRequest("Invalid date format. Use YYYY-MM-DD (e.g., 2025-12-26).") from e
        if start_date < today and not allow_past:
            raise InvalidRequest("Start date must be today or later.")
    else:
        start_date = today

    try:
        return ForecastRequest(
            lat=lat,
            lng=lng,
            start=start_date,
            days=days,
            timezone=timezone,
            target_species=parse_target_species(target_species),
            refresh=refresh,
        )
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors())
        if "days" in fields:
            raise InvalidRequest(f"Invalid days parameter. Must be between 1 and {MAX_DAYS}.") from e
        raise InvalidRequest(f"Invalid parameters: {fields}") from e
