import ipaddress
import logging
import random
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import httpx
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from .cache import Cache
from .config import Settings, settings as default_settings
from .db import create_engine, create_sessionmaker, init_db
from .errors import InvalidRequest, UpstreamUnavailable
from .forecast import ForecastService
from .ratelimit import RateLimiter
from .reference import ReferenceData
from .validation import build_forecast_request
from .weather import ForecastData

logger = logging.getLogger(__name__)


def _is_trusted(host: str, trusted_proxies: Sequence[str]) -> bool:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return host in trusted_proxies
    for entry in trusted_proxies:
        try:
            if addr in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def client_ip(request: Request, trusted_proxies: Sequence[str] = ()) -> str:
    """
    Address used to key rate limits.

    X-Forwarded-For is only read when the direct peer is a trusted proxy.
    It is walked from the nearest hop outwards, skipping trusted proxies;
    the first other hop is used if it is a valid public address. Anything
    else falls back to the peer address.
    """
    peer = request.client.host if request.client else "0.0.0.0"
    if not _is_trusted(peer, trusted_proxies):
        return peer
    hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",")]
    for hop in reversed([h for h in hops if h]):
        if _is_trusted(hop, trusted_proxies):
            continue
        try:
            addr = ipaddress.ip_address(hop)
        except ValueError:
            break
        if addr.is_global:
            return str(addr)
        break
    return peer


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """
    Wire the store, HTTP client and services into a FastAPI app.

    Anything not passed in is built from ``settings`` at startup. Injected
    engines and clients are left open on shutdown for the caller to close.
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(levelname)s:     %(name)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        own_engine = engine is None
        own_client = http_client is None
        db_engine = engine or create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        client = http_client or httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT)

        await init_db(db_engine)
        logger.info("Database initialised")

        sessionmaker = create_sessionmaker(db_engine)
        cache = Cache(sessionmaker)
        limiter = RateLimiter(
            sessionmaker,
            per_minute=settings.RATE_LIMIT_PER_MINUTE,
            per_hour=settings.RATE_LIMIT_PER_HOUR,
        )
        app.state.rate_limiter = limiter
        app.state.forecast = ForecastService(
            settings,
            cache,
            ForecastData(cache, client, settings, rng=rng),
            ReferenceData(sessionmaker),
            limiter,
            rng=rng,
        )
        try:
            yield
        finally:
            if own_client:
                await client.aclose()
            if own_engine:
                await db_engine.dispose()

    app = FastAPI(title="Fishing Insights Forecast", lifespan=lifespan)

    async def _enforce_limit(request: Request, endpoint: str) -> None:
        ip = client_ip(request, settings.TRUSTED_PROXIES)
        limit = await request.app.state.rate_limiter.check_limit(ip, endpoint)
        if not limit.allowed:
            raise HTTPException(
                429,
                {"code": "RATE_LIMIT_EXCEEDED", "message": "Rate limit exceeded"},
                headers={"Retry-After": str(limit.retry_after)},
            )

    @app.get("/api/forecast")
    async def get_forecast(
        request: Request,
        background_tasks: BackgroundTasks,
        lat: Optional[str] = None,
        lng: Optional[str] = None,
        start: Optional[str] = None,
        days: str = "7",
        target_species: Optional[str] = None,
        refresh: Optional[str] = None,
        tz: Optional[str] = None,
    ):
        try:
            forecast_request = build_forecast_request(
                lat,
                lng,
                start,
                days=days,
                timezone=tz or settings.DEFAULT_TIMEZONE,
                target_species=target_species,
                refresh=refresh in ("true", "1"),
                allow_past=settings.DEV_MODE,
            )
        except InvalidRequest as e:
            raise HTTPException(400, {"code": "VALIDATION_ERROR", "message": str(e)})

        await _enforce_limit(request, "forecast")

        service: ForecastService = request.app.state.forecast
        if service.sweep_due():
            background_tasks.add_task(service.sweep)

        try:
            return await service.get_forecast(forecast_request)
        except UpstreamUnavailable as e:
            logger.warning("Forecast failed: %s", e)
            raise HTTPException(503, {"code": "DATA_FETCH_ERROR", "message": str(e)})

    @app.get("/api/todays_best")
    async def get_todays_best(
        request: Request,
        background_tasks: BackgroundTasks,
        state: str = "VIC",
        region: Optional[str] = None,
        limit: str = "5",
        species_id: Optional[str] = None,
    ):
        await _enforce_limit(request, "todays_best")

        try:
            top_n = int(limit)
        except ValueError:
            top_n = 0  # out of range, so the default applies

        service: ForecastService = request.app.state.forecast
        if service.sweep_due():
            background_tasks.add_task(service.sweep)
        return await service.todays_best(state, region, top_n, species_id)

    return app


app = create_app()
