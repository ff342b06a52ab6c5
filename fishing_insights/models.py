"""
SQLAlchemy database models.

Reference tables (locations, species rules, tackle) are maintained outside
this service and only read here. The cache and rate-limit tables are the
only state the service writes.
"""
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .db import Base


class Location(Base):
    """Saved fishing spot used to name a forecast point."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    region = Column(String, nullable=False)
    state = Column(String, nullable=False, default="VIC", index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    timezone = Column(String, nullable=False, default="Australia/Melbourne")
    description = Column(Text)


class SpeciesRule(Base):
    """
    Per-species season and preference rules.

    Season months wrap around the year end when start > end
    (e.g. 11 -> 3 is November through March).
    """
    __tablename__ = "species_rules"

    id = Column(Integer, primary_key=True)
    species_id = Column(String, nullable=False, unique=True)
    common_name = Column(String, nullable=False)
    scientific_name = Column(String)
    season_start_month = Column(Integer, nullable=False)
    season_end_month = Column(Integer, nullable=False)
    preferred_wind_max = Column(Float)
    preferred_tide_state = Column(String)  # any | rising | falling | high | low
    preferred_conditions = Column(String)
    # Legacy comma-separated gear text, superseded by species_tackle
    gear_bait = Column(Text)
    gear_lure = Column(Text)
    gear_line_weight = Column(String)
    gear_leader = Column(String)
    gear_rig = Column(String)
    description = Column(Text)

    __table_args__ = (
        Index("idx_species_rules_season", "season_start_month", "season_end_month"),
    )


class TackleItem(Base):
    __tablename__ = "tackle_items"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    notes = Column(Text)


class SpeciesTackle(Base):
    """Links a species to a tackle item; priority 1 = essential."""
    __tablename__ = "species_tackle"

    id = Column(Integer, primary_key=True)
    species_id = Column(String, nullable=False, index=True)
    tackle_item_id = Column(
        Integer, ForeignKey("tackle_items.id", ondelete="CASCADE"), nullable=False
    )
    priority = Column(Integer, nullable=False, default=1)


class ApiCache(Base):
    """
    Provider and forecast response cache with absolute expiry.

    Unique constraint on (provider, cache_key) makes writes an upsert.
    """
    __tablename__ = "api_cache"

    id = Column(Integer, primary_key=True)
    provider = Column(String, nullable=False)  # weather | sun | tides | forecast
    cache_key = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    fetched_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("provider", "cache_key", name="uniq_provider_key"),
    )


class RateLimitWindow(Base):
    """
    Request counter for one client, endpoint and fixed window.

    window_seconds is part of the key so the minute window starting on the
    hour never shares a row with the hour window.
    """
    __tablename__ = "rate_limit_windows"

    id = Column(Integer, primary_key=True)
    client_id = Column(String, nullable=False)
    endpoint = Column(String, nullable=False)
    window_seconds = Column(Integer, nullable=False)
    window_start = Column(DateTime(timezone=True), nullable=False, index=True)
    request_count = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "client_id", "endpoint", "window_seconds", "window_start",
            name="uniq_client_window",
        ),
    )
