import random

from difficulty.models import (
    DIMENSION_BOUNDS,
    AdjustmentTrigger,
    DifficultyVector,
    Dimension,
    FlowMetrics,
    PlayerState,
    PrimaryState,
)
from difficulty.services.adjustment_service import AdjustmentEngine, adjustment_magnitude


def _random_vector(rng: random.Random) -> DifficultyVector:
    return DifficultyVector(
        **{
            dimension.value: rng.uniform(bounds.minimum, bounds.maximum)
            for dimension, bounds in DIMENSION_BOUNDS.items()
        }
    )


def test_adjusted_vectors_stay_within_bounds() -> None:
    rng = random.Random(1234)
    engine = AdjustmentEngine()
    states = list(PrimaryState)

    for _ in range(500):
        current = _random_vector(rng)
        flow = FlowMetrics(success_rate=rng.random())
        state = PlayerState(primary=rng.choice(states))

        result = engine.apply(current, engine.compute(flow, state, current))

        for dimension, bounds in DIMENSION_BOUNDS.items():
            assert bounds.minimum <= result.get(dimension) <= bounds.maximum


def test_flow_inside_band_is_a_no_op() -> None:
    engine = AdjustmentEngine()
    current = DifficultyVector(enemy_ai_complexity=1.3, spawn_rate_multiplier=0.9)

    for success_rate in (0.6, 0.65, 0.7, 0.8):
        adjustments = engine.compute(FlowMetrics(success_rate=success_rate), PlayerState(), current)
        assert adjustments.is_empty()
        assert engine.apply(current, adjustments) == current


def test_band_edges_do_not_trigger_fine_tune() -> None:
    engine = AdjustmentEngine()

    assert engine.fine_tune_factor(0.6) is None
    assert engine.fine_tune_factor(0.8) is None
    assert abs(engine.fine_tune_factor(0.59) - 0.95) < 1e-9
    assert abs(engine.fine_tune_factor(0.81) - 1.05) < 1e-9


def test_fine_tune_nudges_every_enemy_dimension_when_too_easy() -> None:
    engine = AdjustmentEngine()
    current = DifficultyVector.neutral()

    adjustments = engine.compute(FlowMetrics(success_rate=0.9), PlayerState(), current)

    assert set(adjustments.hidden) == {
        Dimension.ENEMY_AI_COMPLEXITY,
        Dimension.ENEMY_HEALTH_MULTIPLIER,
        Dimension.ENEMY_DAMAGE_MULTIPLIER,
    }
    assert adjustments.visible == {}
    for value in adjustments.hidden.values():
        assert abs(value - 1.05) < 1e-9


def test_bored_player_gets_harder_enemies_and_more_crits() -> None:
    engine = AdjustmentEngine()
    current = DifficultyVector.neutral()

    adjustments = engine.compute(
        FlowMetrics(success_rate=1.0), PlayerState(primary=PrimaryState.BORED), current
    )
    result = engine.apply(current, adjustments)

    assert result.enemy_ai_complexity > current.enemy_ai_complexity
    assert result.critical_hit_chance > current.critical_hit_chance
    assert result.spawn_rate_multiplier > current.spawn_rate_multiplier
    assert Dimension.CRITICAL_HIT_CHANCE in adjustments.visible
    assert Dimension.ENEMY_AI_COMPLEXITY in adjustments.hidden


def test_frustrated_player_gets_relief() -> None:
    engine = AdjustmentEngine()
    current = DifficultyVector(enemy_damage_multiplier=1.5, enemy_health_multiplier=1.5)

    adjustments = engine.compute(
        FlowMetrics(success_rate=0.2), PlayerState(primary=PrimaryState.FRUSTRATED), current
    )
    result = engine.apply(current, adjustments)

    assert result.player_damage_resistance > current.player_damage_resistance
    assert result.enemy_damage_multiplier < current.enemy_damage_multiplier
    assert result.enemy_health_multiplier < current.enemy_health_multiplier
    assert Dimension.PLAYER_DAMAGE_RESISTANCE in adjustments.visible
    assert engine.trigger_for(PlayerState(primary=PrimaryState.FRUSTRATED), FlowMetrics()) == (
        AdjustmentTrigger.FRUSTRATION_RELIEF
    )


def test_per_update_movement_is_capped() -> None:
    engine = AdjustmentEngine()
    rng = random.Random(99)

    for _ in range(200):
        current = _random_vector(rng)
        flow = FlowMetrics(success_rate=rng.choice([0.0, 1.0]))
        state = PlayerState(primary=rng.choice([PrimaryState.FRUSTRATED, PrimaryState.BORED]))
        for dimension, value in engine.compute(flow, state, current).merged().items():
            assert abs(value - current.get(dimension)) <= engine.max_step(dimension) + 1e-9


def test_adjustment_magnitude_is_mean_absolute_change() -> None:
    previous = DifficultyVector.neutral()
    changes = {Dimension.ENEMY_AI_COMPLEXITY: 1.2, Dimension.ENEMY_DAMAGE_MULTIPLIER: 0.9}

    assert abs(adjustment_magnitude(previous, changes) - 0.15) < 1e-9
    assert adjustment_magnitude(previous, {}) == 0.0
