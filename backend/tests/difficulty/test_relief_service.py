import random

import pytest

from difficulty.models import PlayerState, PrimaryState
from difficulty.services.relief_service import (
    HINT_TEMPLATES,
    MAX_HINTS,
    InMemoryReliefSystem,
    intervention_level,
)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _frustrated(score: float, death_streak: float = 0.0) -> PlayerState:
    return PlayerState(
        primary=PrimaryState.FRUSTRATED,
        frustration_score=score,
        indicators={"frustration": {"death_streak": death_streak}},
    )


@pytest.mark.parametrize(
    ("score", "level"),
    [(0.95, "critical"), (0.9, "critical"), (0.85, "severe"), (0.6, "moderate"), (0.45, "mild"), (0.3, None)],
)
def test_intervention_level_thresholds(score: float, level: str | None) -> None:
    assert intervention_level(score) == level


def test_low_frustration_activates_nothing() -> None:
    relief = InMemoryReliefSystem(rng=random.Random(1), clock=FakeClock())

    outcome = relief.activate("s1", _frustrated(0.2))

    assert not outcome.activated
    assert relief.active_interventions("s1") == []


def test_critical_level_includes_milder_interventions() -> None:
    relief = InMemoryReliefSystem(rng=random.Random(1), clock=FakeClock())

    outcome = relief.activate("s2", _frustrated(0.95, death_streak=3))
    by_type = {intervention.type: intervention for intervention in outcome.interventions}

    assert outcome.level == "critical"
    assert set(by_type) == {
        "grace_period",
        "enemy_weakening",
        "checkpoint_creation",
        "health_boost",
        "damage_reduction",
        "ability_cooldown_reduction",
        "hint_system",
    }
    assert by_type["grace_period"].duration_ms == 8000
    assert by_type["enemy_weakening"].magnitude == 0.4
    assert by_type["health_boost"].magnitude == 1.4
    assert len(by_type["hint_system"].hints) == MAX_HINTS


def test_moderate_grace_period_depends_on_death_streak() -> None:
    relief = InMemoryReliefSystem(rng=random.Random(2), clock=FakeClock())

    calm = relief.activate("s3", _frustrated(0.65, death_streak=1))
    dying = relief.activate("s4", _frustrated(0.65, death_streak=2))

    assert [i.type for i in calm.interventions] == ["ability_cooldown_reduction", "hint_system"]
    assert "grace_period" in {i.type for i in dying.interventions}
    grace = next(i for i in dying.interventions if i.type == "grace_period")
    assert grace.duration_ms == 3000


def test_mild_level_only_offers_combat_tips() -> None:
    relief = InMemoryReliefSystem(rng=random.Random(3), clock=FakeClock())

    outcome = relief.activate("s5", _frustrated(0.45))

    assert [i.type for i in outcome.interventions] == ["hint_system"]
    hints = outcome.interventions[0].hints
    assert len(hints) == 2
    assert set(hints) <= set(HINT_TEMPLATES["combat_tips"])


def test_active_interventions_are_not_reselected_and_expire() -> None:
    clock = FakeClock()
    relief = InMemoryReliefSystem(rng=random.Random(4), clock=clock)

    relief.activate("s6", _frustrated(0.85))
    again = relief.activate("s6", _frustrated(0.85))

    assert not again.activated
    assert again.interventions == []

    clock.now += 31
    types = {i.type for i in relief.active_interventions("s6")}
    assert "health_boost" not in types
    assert "damage_reduction" in types


def test_summary_counts_levels_and_types() -> None:
    clock = FakeClock()
    relief = InMemoryReliefSystem(rng=random.Random(5), clock=clock)

    relief.activate("s7", _frustrated(0.45))
    clock.now += 400
    relief.activate("s7", _frustrated(0.45))

    summary = relief.summary("s7")

    assert summary.total_activated == 2
    assert summary.by_level == {"mild": 2}
    assert summary.by_type == {"hint_system": 2}
    assert [i.type for i in summary.active] == ["hint_system"]
    assert summary.relief_available


def test_purge_forgets_sessions_once_relief_expires_and_ttl_passes() -> None:
    clock = FakeClock()
    relief = InMemoryReliefSystem(rng=random.Random(6), clock=clock, ttl_seconds=600)
    for index in range(200):
        relief.activate(f"player-{index}", _frustrated(0.95, death_streak=3))
    relief.active_interventions("never-activated")

    clock.now += 3500
    relief.activate("recent", _frustrated(0.45))
    assert relief.purge_expired() == 0

    clock.now += 200
    purged = relief.purge_expired()

    assert purged == 200
    assert relief.tracked_sessions() == 1
    assert relief.summary("recent").total_activated == 1
    assert relief.summary("player-0").total_activated == 0
