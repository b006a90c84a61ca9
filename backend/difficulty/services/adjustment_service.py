"""Bounded multi-dimensional difficulty adjustment."""

from __future__ import annotations

from difficulty.config import (
    DEFAULT_ADJUSTMENT_CONFIG,
    DEFAULT_FLOW_CONFIG,
    AdjustmentConfig,
    FlowConfig,
)
from difficulty.models import (
    DIMENSION_BOUNDS,
    AdjustmentSet,
    AdjustmentTrigger,
    DifficultyVector,
    Dimension,
    FlowMetrics,
    PlayerState,
    PrimaryState,
)

CHANGE_EPSILON = 1e-9


class AdjustmentEngine:
    """Computes the next target value for every dimension that should move."""

    def __init__(
        self,
        *,
        flow_config: FlowConfig = DEFAULT_FLOW_CONFIG,
        config: AdjustmentConfig = DEFAULT_ADJUSTMENT_CONFIG,
    ) -> None:
        self._flow = flow_config
        self._config = config

    def strength(self, success_rate: float) -> float:
        deviation = abs(success_rate - self._flow.target_success_rate)
        return min(deviation * self._config.strength_gain, self._config.max_strength)

    def max_step(self, dimension: Dimension) -> float:
        return DIMENSION_BOUNDS[dimension].step * self._config.max_steps_per_update

    def fine_tune_factor(self, success_rate: float) -> float | None:
        # Strictly outside the band; the edges themselves count as in-flow.
        if success_rate < self._flow.band_min:
            return 1.0 - self._config.fine_tune_factor
        if success_rate > self._flow.band_max:
            return 1.0 + self._config.fine_tune_factor
        return None

    def compute(
        self,
        flow_metrics: FlowMetrics,
        player_state: PlayerState,
        current: DifficultyVector,
    ) -> AdjustmentSet:
        cfg = self._config
        strength = self.strength(flow_metrics.success_rate)
        targets: dict[Dimension, float] = {}

        if player_state.primary == PrimaryState.FRUSTRATED:
            targets[Dimension.PLAYER_DAMAGE_RESISTANCE] = (
                current.player_damage_resistance + cfg.frustrated_resistance_step * strength
            )
            targets[Dimension.ENEMY_DAMAGE_MULTIPLIER] = (
                current.enemy_damage_multiplier - cfg.frustrated_enemy_damage_step * strength
            )
            targets[Dimension.ENEMY_HEALTH_MULTIPLIER] = (
                current.enemy_health_multiplier - cfg.frustrated_enemy_health_step * strength
            )
        elif player_state.primary == PrimaryState.BORED:
            targets[Dimension.CRITICAL_HIT_CHANCE] = (
                current.critical_hit_chance + cfg.bored_critical_step * strength
            )
            targets[Dimension.ENEMY_AI_COMPLEXITY] = (
                current.enemy_ai_complexity + cfg.bored_ai_complexity_step * strength
            )
            targets[Dimension.SPAWN_RATE_MULTIPLIER] = (
                current.spawn_rate_multiplier + cfg.bored_spawn_rate_step * strength
            )

        targets = {dimension: DIMENSION_BOUNDS[dimension].clamp(value) for dimension, value in targets.items()}

        factor = self.fine_tune_factor(flow_metrics.success_rate)
        if factor is not None:
            for dimension in Dimension:
                if dimension.is_enemy:
                    targets[dimension] = targets.get(dimension, current.get(dimension)) * factor

        adjustments = AdjustmentSet()
        for dimension, target in targets.items():
            previous = current.get(dimension)
            value = self._limit_step(dimension, previous, target)
            value = DIMENSION_BOUNDS[dimension].clamp(value)
            if abs(value - previous) <= CHANGE_EPSILON:
                continue
            if dimension in cfg.visible_dimensions:
                adjustments.visible[dimension] = value
            else:
                adjustments.hidden[dimension] = value
        return adjustments

    def apply(self, current: DifficultyVector, adjustments: AdjustmentSet) -> DifficultyVector:
        if adjustments.is_empty():
            return current
        return current.with_values(adjustments.merged())

    def trigger_for(self, player_state: PlayerState, flow_metrics: FlowMetrics) -> AdjustmentTrigger:
        if player_state.primary == PrimaryState.FRUSTRATED:
            return AdjustmentTrigger.FRUSTRATION_RELIEF
        if player_state.primary == PrimaryState.BORED:
            return AdjustmentTrigger.BOREDOM_CHALLENGE
        return AdjustmentTrigger.FLOW_OPTIMIZATION

    def _limit_step(self, dimension: Dimension, previous: float, target: float) -> float:
        limit = self.max_step(dimension)
        return previous + max(-limit, min(limit, target - previous))


def adjustment_magnitude(previous: DifficultyVector, changes: dict[Dimension, float]) -> float:
    """Mean absolute movement across the changed dimensions."""
    if not changes:
        return 0.0
    deltas = [abs(value - previous.get(dimension)) for dimension, value in changes.items()]
    return sum(deltas) / len(deltas)
