"""
Tests for bite windows, species ranking, gear and score explanations.
"""
import datetime
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from fishing_insights.insights import (
    DayScores,
    TackleLink,
    best_bite_windows,
    build_gear,
    build_reasons,
    recommend_species,
)
from fishing_insights.schemas import SunTimes, TideDay, TideEvent, WeatherDay
from fishing_insights.tides import build_tide_day

MEL = ZoneInfo("Australia/Melbourne")
DAY = datetime.date(2026, 1, 15)


def at(hour, minute=0):
    return datetime.datetime(2026, 1, 15, hour, minute, tzinfo=MEL)


SUN = SunTimes(
    date=DAY,
    sunrise=at(6, 30),
    sunset=at(19, 45),
    dawn=at(6, 0),
    dusk=at(20, 15),
)


def tide_day(*events):
    return build_tide_day(DAY, [TideEvent(time=t, type=k, height=h) for t, k, h in events])


def rule(species_id, wind_max=None, tide="any", **gear):
    return SimpleNamespace(
        species_id=species_id,
        common_name=species_id.replace("_", " ").title(),
        preferred_wind_max=wind_max,
        preferred_tide_state=tide,
        gear_bait=gear.get("bait"),
        gear_lure=gear.get("lure"),
        gear_line_weight=gear.get("line_weight"),
        gear_leader=gear.get("leader"),
        gear_rig=gear.get("rig"),
    )


# -- bite windows ---------------------------------------------------------

def test_bite_windows_dawn_and_dusk():
    windows = best_bite_windows(SUN, tide_day((at(7), "low", 0.4), (at(20), "high", 1.6)))

    assert [w.reason for w in windows] == ["dawn + rising tide", "dusk + falling tide"]
    dawn, dusk = windows
    assert (dawn.start, dawn.end) == (at(6), at(8))
    assert dawn.quality == "excellent"
    assert (dusk.start, dusk.end) == (at(19), at(20, 15))


def test_bite_window_quality_tiers():
    good = best_bite_windows(SUN, tide_day((at(9), "high", 1.6)))
    fair = best_bite_windows(SUN, tide_day((at(9, 20), "high", 1.6)))

    assert [w.quality for w in good] == ["good"]
    assert [w.quality for w in fair] == ["fair"]


def test_no_bite_windows_midday():
    assert best_bite_windows(SUN, tide_day((at(13), "low", 0.5))) == []
    assert best_bite_windows(SUN, TideDay(date=DAY)) == []


# -- species --------------------------------------------------------------

CALM = WeatherDay(date=DAY, wind_speed=12, precipitation=0, cloud_cover=10)
RISING_FIRST = tide_day((at(3), "low", 0.4), (at(9), "high", 1.6))


def test_recommend_species_ranks_top_three():
    rules = [
        rule("snapper", wind_max=20, tide="rising"),
        rule("calamari", wind_max=10),
        rule("flathead", tide="falling"),
        rule("whiting", wind_max=5, tide="falling"),
    ]
    picks = recommend_species(rules, CALM, RISING_FIRST)

    assert [(p.id, p.confidence) for p in picks] == [
        ("snapper", 0.95),
        ("flathead", 0.85),
        ("calamari", 0.55),
    ]
    assert picks[0].name == "Snapper"
    assert picks[0].why == (
        "In season, wind conditions suitable, minimal rain, preferred tide state (rising)"
    )
    assert picks[2].why == "In season, minimal rain"


def test_recommend_species_clamps_confidence():
    stormy = WeatherDay(date=DAY, wind_speed=50, precipitation=10)
    [pick] = recommend_species([rule("snapper", wind_max=10, tide="high")], stormy, RISING_FIRST)
    assert pick.confidence == 0.3
    assert pick.why == "In season"


def test_recommend_species_without_tide_events():
    [pick] = recommend_species([rule("snapper", tide="any")], CALM, TideDay(date=DAY))
    assert pick.confidence == 0.85


def test_recommend_species_ties_keep_rule_order():
    rules = [rule("b_species"), rule("a_species"), rule("c_species")]
    picks = recommend_species(rules, CALM, RISING_FIRST)
    assert [p.id for p in picks] == ["b_species", "a_species", "c_species"]


def test_recommend_species_empty():
    assert recommend_species([], CALM, RISING_FIRST) == []


# -- gear -----------------------------------------------------------------

TACKLE = [
    TackleLink("snapper", "Paternoster rig", "rigs", 1, "2/0 circle hooks"),
    TackleLink("snapper", "Pilchards", "bait", 1),
    TackleLink("snapper", "Soft plastic 5in", "soft_plastics", 1),
    TackleLink("snapper", "Squid strips", "bait", 2),
    TackleLink("flathead", "Whitebait", "bait", 1),
]


def test_gear_defaults_without_species():
    gear = build_gear([], {}, TACKLE)
    assert gear.bait == []
    assert gear.line_weight == "8-15lb"
    assert gear.leader == "10-20lb"
    assert gear.rig == "paternoster or running sinker"


def test_gear_from_tackle_catalogue():
    gear = build_gear(["snapper"], {}, TACKLE)

    assert gear.bait == ["Pilchards"]
    assert gear.lure == ["Soft plastic 5in"]
    assert [c.category for c in gear.tackle] == ["rigs", "bait", "soft_plastics"]
    bait = gear.tackle[1]
    assert [(i.name, i.priority) for i in bait.items] == [("Pilchards", 1), ("Squid strips", 2)]
    assert gear.tackle[0].items[0].notes == "2/0 circle hooks"


def test_gear_primary_species_first():
    gear = build_gear(["flathead", "snapper"], {}, TACKLE)
    assert gear.bait == ["Whitebait", "Pilchards"]


def test_gear_falls_back_to_legacy_text():
    rules = {"bream": rule("bream", bait="prawns, , pipis", line_weight="4-6kg")}
    gear = build_gear(["bream"], rules, TACKLE)

    assert gear.bait == ["prawns", "pipis"]
    assert gear.lure == []
    assert gear.line_weight == "4-6kg"
    assert gear.leader == "10-20lb"
    assert gear.tackle == []


# -- reasons --------------------------------------------------------------

def test_reasons_include_dawn_dusk_when_strong():
    day = tide_day((at(2), "low", 0.5), (at(8), "high", 2.0))
    reasons = build_reasons(
        DayScores(weather=100, tide=100, dawn_dusk=80, seasonality=10),
        WeatherDay(date=DAY, wind_speed=5, cloud_cover=10),
        day,
        estimated_tides=False,
    )

    assert [r.category for r in reasons] == ["weather", "tide", "dawn_dusk", "seasonality"]
    assert [r.contribution_points for r in reasons] == [35, 30, 16, 2]
    assert reasons[0].detail == "Light winds (5.0 km/h), no precipitation, clear skies"
    assert reasons[3].severity == "negative"


def test_reasons_omit_weak_dawn_dusk_and_flag_estimates():
    reasons = build_reasons(
        DayScores(weather=30, tide=60, dawn_dusk=40, seasonality=100),
        WeatherDay(date=DAY, wind_speed=45, precipitation=8),
        tide_day((at(2), "low", 0.5), (at(8), "high", 1.0)),
        estimated_tides=True,
    )

    assert len(reasons) == 3
    weather, tide, season = reasons
    assert weather.severity == "negative"
    assert "heavy rain (8.0mm)" in weather.detail
    assert tide.title == "Moderate tide activity"
    assert tide.detail.endswith("(estimated tides)")
    assert season.severity == "positive"
    assert season.contribution_points == 15
