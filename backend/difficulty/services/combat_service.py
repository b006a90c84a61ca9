"""Translates a difficulty vector into concrete encounter mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from difficulty.config import (
    AI_BEHAVIOR_TIERS,
    COMBAT_TEMPLATES,
    DEFAULT_EMERGENCY_CONFIG,
    DEFAULT_ENCOUNTER_CONFIG,
    DEFAULT_FLOW_CONFIG,
    EmergencyConfig,
    EncounterConfig,
    FlowConfig,
    TemplatePreset,
)
from difficulty.exceptions import UnknownTemplateError
from difficulty.models import (
    AIAdvantages,
    AIParameters,
    Ability,
    Cover,
    DifficultyVector,
    Dimension,
    Encounter,
    Enemy,
    Environment,
    FlowMetrics,
    Hazard,
    Intervention,
    LivePerformance,
    PlayerModifiers,
    PlayerState,
    PrimaryState,
    SpawnParameters,
    TemplateFlags,
    TemplateName,
)
from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AdaptiveTemplate:
    name: TemplateName
    vector: DifficultyVector
    grace_period_ms: int | None = None
    environmental_hazards: bool = False
    boss_encounter_chance: float | None = None
    hint_system_active: bool = False
    dynamic_objectives: bool = False

    def flags(self) -> TemplateFlags:
        return TemplateFlags(
            grace_period_ms=self.grace_period_ms,
            environmental_hazards=self.environmental_hazards,
            boss_encounter_chance=self.boss_encounter_chance,
            hint_system_active=self.hint_system_active,
            dynamic_objectives=self.dynamic_objectives,
        )


@dataclass
class EmergencyCorrection:
    changes: dict[Dimension, float] = field(default_factory=dict)
    grace_period_ms: int | None = None
    reasons: list[str] = field(default_factory=list)

    @property
    def triggered(self) -> bool:
        return bool(self.changes) or self.grace_period_ms is not None


def resolve_template(name: str | TemplateName) -> TemplateName:
    try:
        return TemplateName(name)
    except ValueError:
        raise UnknownTemplateError(name) from None


def template_flags(preset: TemplatePreset) -> TemplateFlags:
    return TemplateFlags(
        grace_period_ms=preset.grace_period_ms,
        environmental_hazards=preset.environmental_hazards,
        boss_encounter_chance=preset.boss_encounter_chance,
        hint_system_active=preset.hint_system_active,
        dynamic_objectives=preset.dynamic_objectives,
    )


class CombatApplicationService:
    """Applies difficulty vectors, templates, and emergency corrections to combat."""

    def __init__(
        self,
        *,
        config: EncounterConfig = DEFAULT_ENCOUNTER_CONFIG,
        emergency_config: EmergencyConfig = DEFAULT_EMERGENCY_CONFIG,
        flow_config: FlowConfig = DEFAULT_FLOW_CONFIG,
    ) -> None:
        self._config = config
        self._emergency = emergency_config
        self._flow = flow_config

    # -- encounter mutation ------------------------------------------------

    def apply_to_encounter(
        self,
        encounter: Encounter,
        vector: DifficultyVector,
        *,
        template: TemplateFlags | None = None,
        interventions: Iterable[Intervention] = (),
    ) -> Encounter:
        """Return a mutated copy of ``encounter``; the original on any failure."""
        try:
            return encounter.model_copy(
                update={
                    "enemies": [self.modify_enemy(enemy, vector) for enemy in encounter.enemies],
                    "environment": self.modify_environment(encounter.environment, vector, template),
                    "spawn_parameters": self.modify_spawn_parameters(
                        encounter.spawn_parameters, vector, template
                    ),
                    "player_modifiers": self.player_modifiers(vector, template, interventions),
                },
                deep=True,
            )
        except Exception:
            logger.exception("Encounter mutation failed; returning unmodified encounter")
            return encounter

    def modify_enemy(self, enemy: Enemy, vector: DifficultyVector) -> Enemy:
        health_multiplier = vector.enemy_health_multiplier
        max_health = round(enemy.max_health * health_multiplier)
        if enemy.current_health is None:
            current_health = max_health
        else:
            current_health = round(enemy.current_health * health_multiplier)

        return enemy.model_copy(
            update={
                "max_health": max_health,
                "current_health": current_health,
                "damage": round(enemy.damage * vector.enemy_damage_multiplier),
                "ai_level": self.ai_behavior(vector.enemy_ai_complexity),
                "ai_parameters": self.ai_parameters(vector.enemy_ai_complexity, enemy.type),
                "abilities": self.modify_abilities(enemy.abilities, vector),
            },
            deep=True,
        )

    @staticmethod
    def ai_behavior(complexity: float) -> str:
        behavior = AI_BEHAVIOR_TIERS[0][1]
        for threshold, name in AI_BEHAVIOR_TIERS:
            if complexity >= threshold:
                behavior = name
        return behavior

    def ai_parameters(self, complexity: float, enemy_type: str) -> AIParameters:
        cfg = self._config
        attack_frequency = min(complexity, 2.0)
        dodge = min(0.1 * complexity, 0.8)
        block = min(0.1 * complexity, 0.7)
        combo = min(0.2 * complexity, 0.9)
        special = min(0.1 * complexity, 0.6)
        reaction_time = max(500.0 / complexity, 100.0)
        prediction = min(0.3 * complexity, 0.9)

        if enemy_type == "boss":
            special *= cfg.boss_special_multiplier
            combo *= cfg.boss_combo_multiplier
        elif enemy_type == "minion":
            attack_frequency *= cfg.minion_attack_multiplier
            special *= cfg.minion_special_multiplier

        return AIParameters(
            attack_frequency=attack_frequency,
            dodge_chance=dodge,
            block_chance=block,
            combo_chance=min(combo, 1.0),
            special_ability_chance=min(special, 1.0),
            reaction_time_ms=reaction_time,
            prediction_accuracy=prediction,
        )

    def modify_abilities(self, abilities: list[Ability], vector: DifficultyVector) -> list[Ability]:
        cfg = self._config
        complexity = vector.enemy_ai_complexity
        result = [ability.model_copy(deep=True) for ability in abilities]
        present = {ability.type for ability in abilities}

        if complexity > cfg.advanced_ability_complexity:
            if "combo_attack" not in present:
                result.append(Ability(type="combo_attack", damage=1.5, cooldown_ms=8000, chance=0.3))
            if "defensive_stance" not in present:
                result.append(
                    Ability(
                        type="defensive_stance",
                        damage_reduction=0.5,
                        duration_ms=3000,
                        cooldown_ms=15000,
                        chance=0.2,
                    )
                )

        divisor = min(complexity, cfg.cooldown_divisor_cap)
        for ability in result:
            if ability.damage is not None:
                ability.damage = ability.damage * vector.enemy_damage_multiplier
            if ability.cooldown_ms is not None:
                ability.cooldown_ms = round(ability.cooldown_ms / divisor)
        return result

    def modify_environment(
        self,
        environment: Environment,
        vector: DifficultyVector,
        template: TemplateFlags | None,
    ) -> Environment:
        cfg = self._config
        modified = environment.model_copy(deep=True)

        if template is not None and template.environmental_hazards:
            modified.hazards = [
                *modified.hazards,
                Hazard(type="dynamic_obstacle", **cfg.hazard),
            ]
        if template is not None and template.dynamic_objectives:
            modified.dynamic_objectives = True

        if vector.enemy_ai_complexity > cfg.ai_advantage_complexity:
            modified.ai_advantages = AIAdvantages(
                use_high_ground=True,
                use_choke_points=True,
                coordinate_attacks=True,
            )

        if vector.spawn_rate_multiplier > cfg.cover_spawn_rate:
            modified.cover = Cover(density=0.3, destructible=True)

        return modified

    def modify_spawn_parameters(
        self,
        spawn: SpawnParameters,
        vector: DifficultyVector,
        template: TemplateFlags | None,
    ) -> SpawnParameters:
        cfg = self._config
        multiplier = vector.spawn_rate_multiplier
        modified = spawn.model_copy(
            update={
                "spawn_rate": spawn.spawn_rate * multiplier,
                "max_concurrent_enemies": round(
                    spawn.max_concurrent_enemies * min(multiplier, cfg.concurrency_multiplier_cap)
                ),
            }
        )
        if template is not None and template.boss_encounter_chance is not None:
            modified.boss_chance = template.boss_encounter_chance
        if vector.enemy_ai_complexity > cfg.wave_intensity_complexity:
            modified.wave_intensity_scale = cfg.wave_intensity_scale
        return modified

    @staticmethod
    def player_modifiers(
        vector: DifficultyVector,
        template: TemplateFlags | None = None,
        interventions: Iterable[Intervention] = (),
    ) -> PlayerModifiers:
        modifiers = PlayerModifiers(
            damage_resistance=vector.player_damage_resistance,
            critical_hit_chance=vector.critical_hit_chance,
        )
        if template is not None and template.grace_period_ms:
            modifiers.grace_period_ms = template.grace_period_ms
        if template is not None and template.hint_system_active:
            modifiers.hint_system_active = True

        for intervention in interventions:
            if intervention.type == "grace_period" and intervention.duration_ms:
                modifiers.grace_period_ms = max(modifiers.grace_period_ms or 0, intervention.duration_ms)
            elif intervention.type == "health_boost":
                modifiers.health_boost = intervention.magnitude or 1.2
            elif intervention.type == "hint_system":
                modifiers.hint_system_active = True
        return modifiers

    # -- templates ---------------------------------------------------------

    @staticmethod
    def template_preset(name: str | TemplateName) -> TemplatePreset:
        return COMBAT_TEMPLATES[resolve_template(name)]

    def template_vector(self, name: str | TemplateName) -> DifficultyVector:
        base = COMBAT_TEMPLATES[TemplateName.FLOW_OPTIMAL].values
        preset = self.template_preset(name)
        return DifficultyVector.clamped({**base, **preset.values})

    def calculate_adaptive_template(self, player_state: PlayerState, flow_metrics: FlowMetrics) -> AdaptiveTemplate:
        name = TemplateName.FLOW_OPTIMAL
        if player_state.primary == PrimaryState.FRUSTRATED:
            name = TemplateName.FRUSTRATION_RELIEF
        elif player_state.primary == PrimaryState.BORED:
            name = TemplateName.BOREDOM_CHALLENGE

        preset = COMBAT_TEMPLATES[name]
        values = {**COMBAT_TEMPLATES[TemplateName.FLOW_OPTIMAL].values, **preset.values}
        result = AdaptiveTemplate(
            name=name,
            vector=DifficultyVector.neutral(),
            grace_period_ms=preset.grace_period_ms,
            environmental_hazards=preset.environmental_hazards,
            boss_encounter_chance=preset.boss_encounter_chance,
            hint_system_active=preset.hint_system_active,
            dynamic_objectives=preset.dynamic_objectives,
        )

        if name == TemplateName.FRUSTRATION_RELIEF and player_state.frustration_score > 0.8:
            values[Dimension.ENEMY_HEALTH_MULTIPLIER] *= 0.8
            result.grace_period_ms = 5000
            result.hint_system_active = True
        elif name == TemplateName.BOREDOM_CHALLENGE and player_state.boredom_score > 0.8:
            values[Dimension.ENEMY_AI_COMPLEXITY] = 1.8
            result.environmental_hazards = True
            result.dynamic_objectives = True

        if flow_metrics.success_rate < self._flow.band_min:
            values[Dimension.ENEMY_HEALTH_MULTIPLIER] *= 0.9
            values[Dimension.PLAYER_DAMAGE_RESISTANCE] *= 1.1
        elif flow_metrics.success_rate > self._flow.band_max:
            values[Dimension.ENEMY_HEALTH_MULTIPLIER] *= 1.1
            values[Dimension.ENEMY_AI_COMPLEXITY] *= 1.1

        result.vector = DifficultyVector.clamped(values)
        return result

    # -- real-time correction ----------------------------------------------

    def emergency_correction(
        self,
        current: DifficultyVector,
        performance: LivePerformance,
    ) -> EmergencyCorrection:
        """Out-of-band correction; not subject to the per-update step limit."""
        cfg = self._emergency
        correction = EmergencyCorrection()

        if performance.consecutive_deaths >= cfg.death_threshold:
            correction.changes[Dimension.ENEMY_DAMAGE_MULTIPLIER] = min(
                current.enemy_damage_multiplier, cfg.enemy_damage_target
            )
            correction.changes[Dimension.PLAYER_DAMAGE_RESISTANCE] = max(
                current.player_damage_resistance, cfg.resistance_target
            )
            correction.grace_period_ms = cfg.grace_period_ms
            correction.reasons.append("consecutive_deaths")

        if (
            performance.avg_time_per_kill_ms is not None
            and performance.expected_time_per_kill_ms
            and performance.avg_time_per_kill_ms > performance.expected_time_per_kill_ms * cfg.slow_kill_ratio
        ):
            correction.changes[Dimension.SPAWN_RATE_MULTIPLIER] = max(
                current.spawn_rate_multiplier * cfg.spawn_rate_factor, 0.5
            )
            correction.reasons.append("slow_kills")

        if performance.accuracy is not None and performance.accuracy < cfg.low_accuracy:
            correction.changes[Dimension.ENEMY_AI_COMPLEXITY] = max(
                current.enemy_ai_complexity * cfg.ai_complexity_factor, 0.5
            )
            correction.reasons.append("low_accuracy")

        correction.changes = {
            dimension: value
            for dimension, value in correction.changes.items()
            if abs(value - current.get(dimension)) > 1e-9
        }
        return correction


def difficulty_level(vector: DifficultyVector) -> str:
    average = (
        vector.enemy_health_multiplier
        + vector.enemy_damage_multiplier
        + vector.enemy_ai_complexity
        + vector.spawn_rate_multiplier
    ) / 4.0
    if average < 0.8:
        return "Very Easy"
    if average < 0.9:
        return "Easy"
    if average < 1.1:
        return "Normal"
    if average < 1.3:
        return "Hard"
    if average < 1.6:
        return "Very Hard"
    return "Extreme"


def vector_difficulty(vector: DifficultyVector) -> float:
    return (vector.enemy_health_multiplier + vector.enemy_damage_multiplier + vector.enemy_ai_complexity) / 3.0
