"""
Per-day derived artifacts: bite windows, species picks, gear and reasons.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from . import scoring
from .schemas import (
    BiteWindow,
    GearSuggestion,
    Reason,
    SpeciesRecommendation,
    SunTimes,
    TackleCategory,
    TackleEntry,
    TideDay,
    WeatherDay,
    as_utc,
)

TOP_SPECIES: int = 3
DEFAULT_WIND_MAX: float = 30.0
LURE_CATEGORIES: List[str] = ["soft_plastics", "metal_lures", "poppers", "hardbody_lures", "squid_jigs"]


@dataclass(frozen=True)
class TackleLink:
    """A tackle item as linked to one species."""
    species_id: str
    name: str
    category: str
    priority: int
    notes: Optional[str] = None


@dataclass(frozen=True)
class DayScores:
    weather: float
    tide: int
    dawn_dusk: int
    seasonality: int


def bite_quality(minutes: int) -> str:
    if minutes >= 60:
        return "excellent"
    if minutes >= 30:
        return "good"
    return "fair"


def best_bite_windows(sun: SunTimes, tide_day: TideDay) -> List[BiteWindow]:
    """Overlaps of each tide change window with dawn and with dusk."""
    periods = (("dawn", scoring.dawn_window(sun)), ("dusk", scoring.dusk_window(sun)))
    windows: List[BiteWindow] = []
    for change in tide_day.change_windows:
        for label, (start, end) in periods:
            minutes = scoring.overlap_minutes(change.start, change.end, start, end)
            if minutes <= 0:
                continue
            windows.append(BiteWindow(
                start=max(change.start, start, key=as_utc),
                end=min(change.end, end, key=as_utc),
                quality=bite_quality(minutes),
                reason=f"{label} + {change.type} tide",
            ))
    return windows


def recommend_species(
    rules: Sequence, weather: WeatherDay, tide_day: TideDay
) -> List[SpeciesRecommendation]:
    """
    Rank in-season species for the day's conditions, best three first.

    Every rule passed in is assumed to be in season; confidence starts at
    0.60 and moves with wind, rain and tide preference.
    """
    tide_type = tide_day.change_windows[0].type if tide_day.change_windows else None

    ranked: List[SpeciesRecommendation] = []
    for rule in rules:
        wind_max = rule.preferred_wind_max if rule.preferred_wind_max else DEFAULT_WIND_MAX
        wind_ok = weather.wind_speed <= wind_max
        dry = weather.precipitation <= 2
        tide_match = tide_type is not None and rule.preferred_tide_state == tide_type

        confidence = 0.6
        confidence += 0.15 if wind_ok else -0.2
        if dry:
            confidence += 0.1
        elif weather.precipitation > 5:
            confidence -= 0.15
        if tide_type is not None:
            if rule.preferred_tide_state == "any":
                confidence += 0.05
            elif tide_match:
                confidence += 0.1
        confidence = max(0.3, min(1.0, confidence))

        why = ["In season"]
        if wind_ok:
            why.append("wind conditions suitable")
        if dry:
            why.append("minimal rain")
        if tide_match:
            why.append(f"preferred tide state ({tide_type})")

        ranked.append(SpeciesRecommendation(
            id=rule.species_id,
            name=rule.common_name,
            confidence=round(confidence, 2),
            why=", ".join(why),
        ))

    ranked.sort(key=lambda r: r.confidence, reverse=True)
    return ranked[:TOP_SPECIES]


def _split_legacy(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def build_gear(
    species_ids: Sequence[str],
    rules_by_id: Mapping[str, object],
    tackle: Iterable[TackleLink],
) -> GearSuggestion:
    """
    Gear for the given species, primary species first.

    The tackle catalogue wins; legacy free-text gear on the primary species
    rule fills any gaps, and fixed defaults cover the rest.
    """
    if not species_ids:
        return GearSuggestion()

    wanted = set(species_ids)
    order = {sid: i for i, sid in enumerate(species_ids)}
    links = sorted(
        (t for t in tackle if t.species_id in wanted),
        key=lambda t: (order[t.species_id], t.priority, t.name),
    )

    # category -> priority -> links, both in first-seen order
    grouped: Dict[str, Dict[int, List[TackleLink]]] = defaultdict(lambda: defaultdict(list))
    for link in links:
        grouped[link.category][link.priority].append(link)

    legacy = rules_by_id.get(species_ids[0])
    gear = GearSuggestion()
    if legacy is not None:
        gear.line_weight = legacy.gear_line_weight or gear.line_weight
        gear.leader = legacy.gear_leader or gear.leader
        gear.rig = legacy.gear_rig or gear.rig

    gear.bait = [t.name for t in grouped.get("bait", {}).get(1, [])]
    if not gear.bait and legacy is not None:
        gear.bait = _split_legacy(legacy.gear_bait)

    for category in LURE_CATEGORIES:
        gear.lure.extend(t.name for t in grouped.get(category, {}).get(1, []))
    if not gear.lure and legacy is not None:
        gear.lure = _split_legacy(legacy.gear_lure)

    for category, by_priority in grouped.items():
        items = [
            TackleEntry(name=t.name, priority=priority, notes=t.notes)
            for priority in sorted(by_priority)
            for t in by_priority[priority]
        ]
        gear.tackle.append(TackleCategory(category=category, items=items))
    return gear


def _weather_reason(score: float, weather: WeatherDay) -> Reason:
    points = scoring.round_half_up(score * scoring.WEATHER_WEIGHT)
    wind = round(weather.wind_speed, 1)
    rain = round(weather.precipitation, 1)
    if score >= 70:
        sky = "clear skies" if weather.cloud_cover < 30 else "partly cloudy"
        precip = "no precipitation" if weather.precipitation == 0 else "minimal rain"
        return Reason(
            title="Excellent weather conditions",
            detail=f"Light winds ({wind} km/h), {precip}, {sky}",
            contribution_points=points, severity="positive", category="weather",
        )
    if score >= 50:
        precip = f"{rain}mm rain" if weather.precipitation > 0 else "no precipitation"
        return Reason(
            title="Moderate weather conditions",
            detail=f"Wind speed {wind} km/h, {precip}",
            contribution_points=points, severity="neutral", category="weather",
        )
    heavy = f" and heavy rain ({rain}mm)" if weather.precipitation > 5 else ""
    return Reason(
        title="Poor weather conditions",
        detail=f"Strong winds ({wind} km/h){heavy} may affect fishing",
        contribution_points=points, severity="negative", category="weather",
    )


def _tide_reason(score: int, tide_day: TideDay, estimated: bool) -> Reason:
    points = scoring.round_half_up(score * scoring.TIDE_WEIGHT)
    suffix = " (estimated tides)" if estimated else ""
    count = len(tide_day.events)
    if score >= 70:
        return Reason(
            title="Strong tide activity",
            detail=f"{count} tide changes today with good range{suffix}",
            contribution_points=points, severity="positive", category="tide",
        )
    if score >= 50:
        return Reason(
            title="Moderate tide activity",
            detail=f"{count} tide changes expected{suffix}",
            contribution_points=points, severity="neutral", category="tide",
        )
    return Reason(
        title="Limited tide activity",
        detail=f"Fewer tide changes may reduce fish activity{suffix}",
        contribution_points=points, severity="negative", category="tide",
    )


def _seasonality_reason(score: int) -> Reason:
    points = scoring.round_half_up(score * scoring.SEASONALITY_WEIGHT)
    if score >= 60:
        return Reason(
            title="Peak season for multiple species",
            detail="Several target species are in their peak season this month",
            contribution_points=points, severity="positive", category="seasonality",
        )
    if score >= 40:
        return Reason(
            title="Some species in season",
            detail="A few target species are active this month",
            contribution_points=points, severity="neutral", category="seasonality",
        )
    return Reason(
        title="Off-season for most species",
        detail="Fewer species are in peak season, but fishing is still possible",
        contribution_points=points, severity="negative", category="seasonality",
    )


def build_reasons(
    scores: DayScores, weather: WeatherDay, tide_day: TideDay, estimated_tides: bool
) -> List[Reason]:
    """Weather, tide and seasonality always; dawn/dusk only when it scored 50+."""
    reasons = [
        _weather_reason(scores.weather, weather),
        _tide_reason(scores.tide, tide_day, estimated_tides),
    ]
    if scores.dawn_dusk >= 50:
        reasons.append(Reason(
            title="Dawn/dusk-tide overlap",
            detail="Optimal feeding windows during dawn or dusk periods",
            contribution_points=scoring.round_half_up(scores.dawn_dusk * scoring.DAWN_DUSK_WEIGHT),
            severity="positive",
            category="dawn_dusk",
        ))
    reasons.append(_seasonality_reason(scores.seasonality))
    return reasons
