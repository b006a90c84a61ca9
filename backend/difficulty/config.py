"""Tunable constants for state estimation, adjustment, and encounter mutation.

Every heuristic threshold used by the controller lives here so that it can be
tuned and tested independently of the control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from difficulty.models import Dimension, TemplateName


@dataclass(frozen=True)
class FlowConfig:
    target_success_rate: float = 0.7
    band_min: float = 0.6
    band_max: float = 0.8
    default_success_rate: float = 0.5
    major_change_deviation: float = 0.2
    balance_epsilon: float = 0.1

    # Flow score weights
    success_weight: float = 0.4
    balance_weight: float = 0.3
    engagement_weight: float = 0.2
    concentration_weight: float = 0.1

    challenge_min: float = 0.1
    challenge_max: float = 3.0


@dataclass(frozen=True)
class SkillWeights:
    reaction_time: float = 0.25
    accuracy: float = 0.25
    combo_length: float = 0.2
    decision_speed: float = 0.15
    adaptability: float = 0.15


@dataclass(frozen=True)
class FrustrationThresholds:
    rapid_retries: int = 3
    death_streak: int = 3
    input_variance: float = 2.5
    negative_emotion_score: float = -0.6

    rapid_retries_weight: float = 0.3
    death_streak_weight: float = 0.25
    input_variance_weight: float = 0.2
    quick_quit_weight: float = 0.15
    negative_emotion_weight: float = 0.1


@dataclass(frozen=True)
class BoredomThresholds:
    perfect_streak: int = 5
    speed_run_ratio: float = 0.7
    low_engagement: float = 0.3
    repetitive_actions: int = 10
    inactivity_ms: float = 30000.0

    perfect_streak_weight: float = 0.3
    speed_run_weight: float = 0.25
    low_engagement_weight: float = 0.2
    repetitive_actions_weight: float = 0.15
    inactivity_weight: float = 0.1


@dataclass(frozen=True)
class StateThresholds:
    frustrated: float = 0.7
    bored: float = 0.7
    suboptimal: float = 0.4


@dataclass(frozen=True)
class AdjustmentConfig:
    max_strength: float = 1.0
    strength_gain: float = 2.0

    # Frustration relief coefficients (scaled by strength)
    frustrated_resistance_step: float = 0.1
    frustrated_enemy_damage_step: float = 0.15
    frustrated_enemy_health_step: float = 0.1

    # Boredom challenge coefficients (scaled by strength)
    bored_critical_step: float = 0.03
    bored_ai_complexity_step: float = 0.2
    bored_spawn_rate_step: float = 0.1

    fine_tune_factor: float = 0.05
    max_steps_per_update: int = 3

    visible_dimensions: frozenset[Dimension] = frozenset(
        {Dimension.PLAYER_DAMAGE_RESISTANCE, Dimension.CRITICAL_HIT_CHANCE}
    )


@dataclass(frozen=True)
class EmergencyConfig:
    death_threshold: int = 3
    enemy_damage_target: float = 0.7
    resistance_target: float = 1.3
    grace_period_ms: int = 5000
    slow_kill_ratio: float = 1.5
    spawn_rate_factor: float = 0.8
    low_accuracy: float = 0.3
    ai_complexity_factor: float = 0.9


@dataclass(frozen=True)
class TemplatePreset:
    values: dict[Dimension, float]
    grace_period_ms: int | None = None
    environmental_hazards: bool = False
    boss_encounter_chance: float | None = None
    hint_system_active: bool = False
    dynamic_objectives: bool = False


COMBAT_TEMPLATES: dict[TemplateName, TemplatePreset] = {
    TemplateName.FRUSTRATION_RELIEF: TemplatePreset(
        values={
            Dimension.ENEMY_HEALTH_MULTIPLIER: 0.8,
            Dimension.ENEMY_DAMAGE_MULTIPLIER: 0.7,
            Dimension.PLAYER_DAMAGE_RESISTANCE: 1.2,
            Dimension.CRITICAL_HIT_CHANCE: 0.15,
            Dimension.SPAWN_RATE_MULTIPLIER: 0.8,
        },
        grace_period_ms=3000,
    ),
    TemplateName.BOREDOM_CHALLENGE: TemplatePreset(
        values={
            Dimension.ENEMY_HEALTH_MULTIPLIER: 1.3,
            Dimension.ENEMY_DAMAGE_MULTIPLIER: 1.2,
            Dimension.SPAWN_RATE_MULTIPLIER: 1.4,
            Dimension.ENEMY_AI_COMPLEXITY: 1.5,
        },
        environmental_hazards=True,
        boss_encounter_chance=0.3,
    ),
    TemplateName.FLOW_OPTIMAL: TemplatePreset(
        values={
            Dimension.ENEMY_HEALTH_MULTIPLIER: 1.0,
            Dimension.ENEMY_DAMAGE_MULTIPLIER: 1.0,
            Dimension.PLAYER_DAMAGE_RESISTANCE: 1.0,
            Dimension.SPAWN_RATE_MULTIPLIER: 1.0,
            Dimension.ENEMY_AI_COMPLEXITY: 1.0,
            Dimension.CRITICAL_HIT_CHANCE: 0.1,
        },
    ),
}

# Highest threshold <= complexity wins.
AI_BEHAVIOR_TIERS: tuple[tuple[float, str], ...] = (
    (0.5, "passive"),
    (0.7, "defensive"),
    (1.0, "balanced"),
    (1.3, "aggressive"),
    (1.6, "tactical"),
    (2.0, "expert"),
)


@dataclass(frozen=True)
class EncounterConfig:
    advanced_ability_complexity: float = 1.5
    cooldown_divisor_cap: float = 1.5
    ai_advantage_complexity: float = 1.3
    cover_spawn_rate: float = 1.2
    wave_intensity_complexity: float = 1.4
    wave_intensity_scale: float = 1.2
    concurrency_multiplier_cap: float = 1.5
    boss_special_multiplier: float = 1.5
    boss_combo_multiplier: float = 1.3
    minion_special_multiplier: float = 0.5
    minion_attack_multiplier: float = 0.8
    hazard: dict[str, float] = field(
        default_factory=lambda: {"frequency": 0.3, "damage": 15.0}
    )


DEFAULT_FLOW_CONFIG = FlowConfig()
DEFAULT_SKILL_WEIGHTS = SkillWeights()
DEFAULT_FRUSTRATION_THRESHOLDS = FrustrationThresholds()
DEFAULT_BOREDOM_THRESHOLDS = BoredomThresholds()
DEFAULT_STATE_THRESHOLDS = StateThresholds()
DEFAULT_ADJUSTMENT_CONFIG = AdjustmentConfig()
DEFAULT_EMERGENCY_CONFIG = EmergencyConfig()
DEFAULT_ENCOUNTER_CONFIG = EncounterConfig()
