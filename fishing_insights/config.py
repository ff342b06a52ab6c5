from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    DATABASE_URL: str = "sqlite+aiosqlite:///./fishinginsights.db"

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Allows past start dates (handy when replaying a fixture day)
    DEV_MODE: bool = False

    DEFAULT_TIMEZONE: str = "Australia/Melbourne"

    WEATHER_API_URL: str = "https://api.open-meteo.com/v1/forecast"
    WORLDTIDES_API_URL: str = "https://www.worldtides.info/api"
    # Empty key means synthetic tides only
    WORLDTIDES_API_KEY: str = ""

    UPSTREAM_TIMEOUT: float = 10.0
    MAX_CONCURRENT_WEATHER_REQUESTS: int = 10

    CACHE_TTL_WEATHER: int = 3600
    CACHE_TTL_SUN: int = 604800
    CACHE_TTL_TIDES: int = 43200
    CACHE_TTL_FORECAST: int = 900
    CACHE_TTL_TODAYS_BEST: int = 2700

    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_PER_HOUR: int = 1000
    # Peers (addresses or CIDR ranges) whose X-Forwarded-For header is believed
    TRUSTED_PROXIES: List[str] = ["127.0.0.1", "::1"]

    CACHE_SWEEP_PROBABILITY: float = 0.05
    NEAREST_LOCATION_MAX_KM: float = 40.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
