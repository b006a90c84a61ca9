import random

import pytest

from difficulty.exceptions import InvalidPreferenceError
from difficulty.models import (
    PlayerState,
    PrimaryState,
    TransparencyLogEntry,
    TransparencyPreference,
)
from difficulty.services.transparency_service import (
    MESSAGE_TEMPLATES,
    TransparencyContext,
    TransparencyFilter,
    categorize_adjustments,
    generate_report,
    parse_preference,
)

FLOW = PlayerState(primary=PrimaryState.FLOW)
FRUSTRATED = PlayerState(primary=PrimaryState.FRUSTRATED, frustration_score=0.8)
BORED = PlayerState(primary=PrimaryState.BORED, boredom_score=0.8)

ADJUSTMENTS = {
    "player_damage_resistance": 1.1,
    "critical_hit_chance": 0.18,
    "enemy_health_multiplier": 0.9,
    "spawn_rate_multiplier": 0.9,
    "enemy_damage_multiplier": 0.85,
    "enemy_ai_complexity": 0.9,
}


def test_immersive_flow_without_relief_shows_nothing() -> None:
    decision = TransparencyFilter(random.Random(1)).process(
        ADJUSTMENTS, FLOW, TransparencyPreference.IMMERSIVE
    )

    assert decision.visible == {}
    assert decision.notifications == []
    assert decision.analytics["transparency_ratio"] == 0.0


def test_immersive_frustrated_shows_only_relief() -> None:
    adjustments = {**ADJUSTMENTS, "health_boost": 1.4, "grace_period": 8000.0}

    decision = TransparencyFilter(random.Random(1)).process(
        adjustments, FRUSTRATED, TransparencyPreference.IMMERSIVE
    )

    assert decision.visible == {"health_boost": 1.4, "grace_period": 8000.0}
    assert decision.notifications[0].category == "anti_frustration"
    assert decision.notifications[0].priority == "high"


def test_full_shows_everything_but_ai_complexity() -> None:
    decision = TransparencyFilter().process(ADJUSTMENTS, FLOW, TransparencyPreference.FULL)

    assert "enemy_ai_complexity" not in decision.visible
    assert set(decision.visible) == set(ADJUSTMENTS) - {"enemy_ai_complexity"}


def test_balanced_reveals_contextual_only_when_frustrated_or_major_change() -> None:
    transparency = TransparencyFilter()

    calm = transparency.process(ADJUSTMENTS, FLOW, TransparencyPreference.BALANCED)
    frustrated = transparency.process(ADJUSTMENTS, FRUSTRATED, TransparencyPreference.BALANCED)
    major = transparency.process(
        ADJUSTMENTS, FLOW, TransparencyPreference.BALANCED, TransparencyContext(major_change=True)
    )

    assert set(calm.visible) == {"player_damage_resistance", "critical_hit_chance"}
    assert "enemy_health_multiplier" in frustrated.visible
    assert "spawn_rate_multiplier" in major.visible
    assert "enemy_damage_multiplier" not in major.visible


def test_minimal_filters_critical_noise() -> None:
    transparency = TransparencyFilter()

    noisy = transparency.process({"critical_hit_chance": 0.14}, FLOW, TransparencyPreference.MINIMAL)
    major = transparency.process({"critical_hit_chance": 0.18}, FLOW, TransparencyPreference.MINIMAL)

    assert noisy.visible == {}
    assert major.visible == {"critical_hit_chance": 0.18}


def test_category_is_deterministic_and_variant_is_seeded() -> None:
    first = TransparencyFilter(random.Random(7)).process(ADJUSTMENTS, FLOW, TransparencyPreference.BALANCED)
    second = TransparencyFilter(random.Random(7)).process(ADJUSTMENTS, FLOW, TransparencyPreference.BALANCED)

    main = first.notifications[0]
    assert main.kind == "system"
    assert main.category == "difficulty_decrease"
    assert main.style == "helpful"
    assert main.message in MESSAGE_TEMPLATES["difficulty_decrease"][1]
    assert main.message == second.notifications[0].message


def test_bored_category_requires_visible_increase() -> None:
    assert TransparencyFilter.category({"critical_hit_chance": 0.14}, BORED) == "difficulty_increase"
    assert TransparencyFilter.category({"critical_hit_chance": 0.118}, BORED) == "flow_optimization"


def test_feature_notifications_describe_visible_buffs() -> None:
    notes = TransparencyFilter.feature_notifications(
        {"health_boost": 1.3, "critical_hit_chance": 0.15, "player_damage_resistance": 1.2, "grace_period": 5000.0}
    )

    by_category = {note.category: note for note in notes}
    assert by_category["health_boost"].message == "Your maximum health has been increased by 30%"
    assert by_category["critical_hits"].message == "Critical hit chance: 15%"
    assert by_category["defense"].message == "Incoming damage reduced by 20%"
    assert by_category["grace_period"].style == "protective"
    assert all(note.kind == "feature" for note in notes)


def test_parse_preference_rejects_unknown_values() -> None:
    assert parse_preference(" Immersive ") == TransparencyPreference.IMMERSIVE
    with pytest.raises(InvalidPreferenceError):
        parse_preference("everything")
    with pytest.raises(ValueError):
        parse_preference(None)


def test_categorize_adjustments_counts_groups() -> None:
    counts = categorize_adjustments({**ADJUSTMENTS, "health_boost": 1.3, "environmental_hazards": 1.0})

    assert counts == {"player_buffs": 3, "enemy_nerfs": 3, "environmental": 2, "ai_modifications": 0}


def _entry(timestamp_ms: int, state: PrimaryState, visible: int, total: int) -> TransparencyLogEntry:
    keys = list(ADJUSTMENTS)[:total]
    return TransparencyLogEntry(
        timestamp_ms=timestamp_ms,
        preference=TransparencyPreference.BALANCED,
        player_state=state,
        all_adjustments={key: ADJUSTMENTS[key] for key in keys},
        visible_adjustments={key: ADJUSTMENTS[key] for key in keys[:visible]},
    )


def test_report_summarizes_recent_log_and_recommends() -> None:
    now = 10_000_000
    log = [
        _entry(now - 7_200_000, PrimaryState.FLOW, 4, 4),
        _entry(now - 1000, PrimaryState.FRUSTRATED, 1, 4),
        _entry(now - 500, PrimaryState.FRUSTRATED, 0, 2),
    ]

    report = generate_report(log, now)

    assert report.entries == 2
    assert report.adjustment_summary.total == 6
    assert report.adjustment_summary.visible == 1
    assert report.adjustment_summary.most_common == "player_damage_resistance"
    assert report.metrics.average_ratio == 0.125
    assert report.metrics.min_ratio == 0.0
    assert report.metrics.max_ratio == 0.25
    assert report.metrics.consistency_score == 0.75
    assert report.player_states == {"frustrated": 2}
    assert [r.type for r in report.recommendations] == ["increase_transparency", "show_support"]


def test_report_is_empty_without_recent_entries() -> None:
    report = generate_report([], 1000)

    assert report.entries == 0
    assert report.metrics is None
    assert report.recommendations == []
