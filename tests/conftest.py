"""
Test configuration and fixtures.
"""
import datetime
import random

import httpx
import pytest
import pytest_asyncio

from fishing_insights.cache import Cache
from fishing_insights.config import Settings
from fishing_insights.db import create_engine, create_sessionmaker, init_db
from fishing_insights.forecast import ForecastService
from fishing_insights.ratelimit import RateLimiter
from fishing_insights.reference import ReferenceData
from fishing_insights.weather import ForecastData

TZ = "Australia/Melbourne"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


def open_meteo_payload(params, skip_dates=(), wind=12.0, precip=0.0, cloud=20):
    """Daily Open-Meteo-shaped body for the requested date range."""
    start = datetime.date.fromisoformat(params["start_date"])
    end = datetime.date.fromisoformat(params["end_date"])
    dates = []
    day = start
    while day <= end:
        if day.isoformat() not in skip_dates:
            dates.append(day.isoformat())
        day += datetime.timedelta(days=1)

    n = len(dates)
    daily = {"time": dates}
    if "sunrise" in params["daily"]:
        daily["sunrise"] = [f"{d}T06:30" for d in dates]
        daily["sunset"] = [f"{d}T19:45" for d in dates]
    else:
        daily.update({
            "temperature_2m_max": [22.5] * n,
            "temperature_2m_min": [13.1] * n,
            "windspeed_10m_max": [wind] * n,
            "winddirection_10m_dominant": [200] * n,
            "precipitation_sum": [precip] * n,
            "cloudcover_mean": [cloud] * n,
        })
    return {"latitude": -37.8, "longitude": 144.9, "daily": daily}


class OpenMeteoStub:
    """MockTransport handler that records every request it serves."""

    def __init__(self, status=200, **payload_kwargs):
        self.status = status
        self.payload_kwargs = payload_kwargs
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": True, "reason": "boom"})
        return httpx.Response(200, json=open_meteo_payload(request.url.params, **self.payload_kwargs))


@pytest.fixture
def settings(tmp_path):
    # File-backed so concurrent sessions each get their own connection
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        DEFAULT_TIMEZONE=TZ,
        WORLDTIDES_API_KEY="",
    )


@pytest.fixture
def clock():
    return FakeClock(datetime.datetime(2026, 1, 15, 10, 0, 30, tzinfo=datetime.timezone.utc))


@pytest_asyncio.fixture
async def engine(settings):
    """Fresh database per test."""
    test_engine = create_engine(settings.DATABASE_URL)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def cache(sessionmaker):
    return Cache(sessionmaker)


@pytest.fixture
def stub():
    return OpenMeteoStub()


@pytest_asyncio.fixture
async def http_client(stub):
    async with httpx.AsyncClient(transport=httpx.MockTransport(stub)) as client:
        yield client


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def data(cache, http_client, settings, rng):
    return ForecastData(cache, http_client, settings, rng=rng)


@pytest.fixture
def service(settings, cache, data, sessionmaker, rng):
    return ForecastService(
        settings,
        cache,
        data,
        ReferenceData(sessionmaker),
        RateLimiter(sessionmaker),
        rng=rng,
    )
