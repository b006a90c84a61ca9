"""Pydantic models and records for the adaptive combat difficulty controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Dimension(str, Enum):
    ENEMY_AI_COMPLEXITY = "enemy_ai_complexity"
    ENEMY_HEALTH_MULTIPLIER = "enemy_health_multiplier"
    ENEMY_DAMAGE_MULTIPLIER = "enemy_damage_multiplier"
    SPAWN_RATE_MULTIPLIER = "spawn_rate_multiplier"
    PLAYER_DAMAGE_RESISTANCE = "player_damage_resistance"
    CRITICAL_HIT_CHANCE = "critical_hit_chance"

    @property
    def is_enemy(self) -> bool:
        return self.value.startswith("enemy_")


@dataclass(frozen=True)
class DimensionBounds:
    minimum: float
    maximum: float
    step: float
    neutral: float

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


DIMENSION_BOUNDS: dict[Dimension, DimensionBounds] = {
    Dimension.ENEMY_AI_COMPLEXITY: DimensionBounds(0.5, 2.0, 0.1, 1.0),
    Dimension.ENEMY_HEALTH_MULTIPLIER: DimensionBounds(0.6, 2.5, 0.1, 1.0),
    Dimension.ENEMY_DAMAGE_MULTIPLIER: DimensionBounds(0.7, 2.0, 0.1, 1.0),
    Dimension.SPAWN_RATE_MULTIPLIER: DimensionBounds(0.5, 1.8, 0.1, 1.0),
    Dimension.PLAYER_DAMAGE_RESISTANCE: DimensionBounds(0.8, 1.3, 0.05, 1.0),
    Dimension.CRITICAL_HIT_CHANCE: DimensionBounds(0.05, 0.25, 0.02, 0.1),
}


def _dimension_field(dimension: Dimension):
    bounds = DIMENSION_BOUNDS[dimension]
    return Field(default=bounds.neutral, ge=bounds.minimum, le=bounds.maximum)


class DifficultyVector(BaseModel):
    """Six independent, individually bounded difficulty dimensions."""

    model_config = ConfigDict(frozen=True)

    enemy_ai_complexity: float = _dimension_field(Dimension.ENEMY_AI_COMPLEXITY)
    enemy_health_multiplier: float = _dimension_field(Dimension.ENEMY_HEALTH_MULTIPLIER)
    enemy_damage_multiplier: float = _dimension_field(Dimension.ENEMY_DAMAGE_MULTIPLIER)
    spawn_rate_multiplier: float = _dimension_field(Dimension.SPAWN_RATE_MULTIPLIER)
    player_damage_resistance: float = _dimension_field(Dimension.PLAYER_DAMAGE_RESISTANCE)
    critical_hit_chance: float = _dimension_field(Dimension.CRITICAL_HIT_CHANCE)

    @classmethod
    def neutral(cls) -> DifficultyVector:
        return cls()

    @classmethod
    def clamped(cls, values: Mapping[Dimension, float]) -> DifficultyVector:
        return cls.neutral().with_values(values)

    def get(self, dimension: Dimension) -> float:
        return getattr(self, dimension.value)

    def with_values(self, values: Mapping[Dimension, float]) -> DifficultyVector:
        """Return a copy with ``values`` applied, each clamped to its range."""
        data = self.model_dump()
        for dimension, value in values.items():
            data[dimension.value] = DIMENSION_BOUNDS[dimension].clamp(float(value))
        return DifficultyVector(**data)

    def as_mapping(self) -> dict[Dimension, float]:
        return {dimension: self.get(dimension) for dimension in Dimension}


class CombatResult(str, Enum):
    VICTORY = "victory"
    DEFEAT = "defeat"
    ESCAPE = "escape"


class PrimaryState(str, Enum):
    FLOW = "flow"
    FRUSTRATED = "frustrated"
    BORED = "bored"
    SUBOPTIMAL = "suboptimal"


class TransparencyPreference(str, Enum):
    FULL = "full"
    BALANCED = "balanced"
    MINIMAL = "minimal"
    IMMERSIVE = "immersive"


PREFERENCE_DESCRIPTIONS: dict[TransparencyPreference, str] = {
    TransparencyPreference.FULL: "Show all difficulty adjustments",
    TransparencyPreference.BALANCED: "Show helpful adjustments only",
    TransparencyPreference.MINIMAL: "Show only major changes",
    TransparencyPreference.IMMERSIVE: "Hide most adjustments for immersion",
}


class AdjustmentKey(str, Enum):
    """Everything the transparency layer can decide to surface."""

    ENEMY_AI_COMPLEXITY = "enemy_ai_complexity"
    ENEMY_HEALTH_MULTIPLIER = "enemy_health_multiplier"
    ENEMY_DAMAGE_MULTIPLIER = "enemy_damage_multiplier"
    SPAWN_RATE_MULTIPLIER = "spawn_rate_multiplier"
    PLAYER_DAMAGE_RESISTANCE = "player_damage_resistance"
    CRITICAL_HIT_CHANCE = "critical_hit_chance"
    HEALTH_BOOST = "health_boost"
    ABILITY_COOLDOWN_REDUCTION = "ability_cooldown_reduction"
    GRACE_PERIOD = "grace_period"
    CHECKPOINT_CREATION = "checkpoint_creation"
    HINT_SYSTEM = "hint_system"
    ENEMY_WEAKENING = "enemy_weakening"
    ENVIRONMENTAL_HAZARDS = "environmental_hazards"


class TemplateName(str, Enum):
    FRUSTRATION_RELIEF = "frustration_relief"
    BOREDOM_CHALLENGE = "boredom_challenge"
    FLOW_OPTIMAL = "flow_optimal"


class AdjustmentTrigger(str, Enum):
    FRUSTRATION_RELIEF = "frustration_relief"
    BOREDOM_CHALLENGE = "boredom_challenge"
    FLOW_OPTIMIZATION = "flow_optimization"
    EMERGENCY_CORRECTION = "emergency_correction"
    TEMPLATE_RESET = "template_reset"


# ---------------------------------------------------------------------------
# Combat telemetry
# ---------------------------------------------------------------------------


class PlayerPerformance(BaseModel):
    accuracy: float | None = Field(default=None, ge=0.0, le=1.0)
    reaction_time_ms: float | None = Field(default=None, ge=0.0)
    combo_length: float | None = Field(default=None, ge=0.0)
    decision_time_ms: float | None = Field(default=None, ge=0.0)
    adaptability: float | None = Field(default=None, ge=0.0, le=1.0)


class CombatOutcome(BaseModel):
    result: CombatResult
    duration_ms: float | None = Field(default=None, ge=0.0)
    expected_duration_ms: float | None = Field(default=None, gt=0.0)
    enemy_count: int | None = Field(default=None, ge=0)
    damage_taken: float | None = Field(default=None, ge=0.0)
    damage_dealt: float | None = Field(default=None, ge=0.0)
    player_performance: PlayerPerformance = Field(default_factory=PlayerPerformance)


class InputEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    timestamp_ms: int | None = Field(default=None, ge=0)
    response_time_ms: float | None = Field(default=None, ge=0.0)
    delta_x: float | None = None
    delta_y: float | None = None


class PlayerAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    timestamp_ms: int | None = Field(default=None, ge=0)
    target: str | None = None
    risk_level: float | None = Field(default=None, ge=0.0, le=1.0)


class LivePerformance(BaseModel):
    """In-encounter performance used by the emergency correction path."""

    consecutive_deaths: int = Field(default=0, ge=0)
    avg_time_per_kill_ms: float | None = Field(default=None, ge=0.0)
    expected_time_per_kill_ms: float | None = Field(default=None, gt=0.0)
    accuracy: float | None = Field(default=None, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Encounter data
# ---------------------------------------------------------------------------


class Ability(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)
    damage: float | None = None
    cooldown_ms: int | None = Field(default=None, ge=0)
    chance: float | None = Field(default=None, ge=0.0, le=1.0)
    damage_reduction: float | None = None
    duration_ms: int | None = None


class AIParameters(BaseModel):
    attack_frequency: float
    dodge_chance: float
    block_chance: float
    combo_chance: float
    special_ability_chance: float
    reaction_time_ms: float
    prediction_accuracy: float


class Enemy(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str = "standard"
    max_health: int = Field(ge=0)
    current_health: int | None = Field(default=None, ge=0)
    damage: int = Field(ge=0)
    abilities: list[Ability] = Field(default_factory=list)
    ai_level: str | None = None
    ai_parameters: AIParameters | None = None


class Hazard(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    frequency: float | None = None
    damage: float | None = None


class AIAdvantages(BaseModel):
    use_high_ground: bool = False
    use_choke_points: bool = False
    coordinate_attacks: bool = False


class Cover(BaseModel):
    density: float
    destructible: bool


class Environment(BaseModel):
    model_config = ConfigDict(extra="allow")

    hazards: list[Hazard] = Field(default_factory=list)
    ai_advantages: AIAdvantages | None = None
    cover: Cover | None = None
    dynamic_objectives: bool = False


class SpawnParameters(BaseModel):
    model_config = ConfigDict(extra="allow")

    spawn_rate: float = Field(default=1.0, ge=0.0)
    max_concurrent_enemies: int = Field(default=3, ge=0)
    boss_chance: float | None = Field(default=None, ge=0.0, le=1.0)
    wave_intensity_scale: float | None = None


class PlayerModifiers(BaseModel):
    damage_resistance: float = 1.0
    critical_hit_chance: float = 0.1
    movement_speed: float = 1.0
    attack_speed: float = 1.0
    mana_regeneration: float = 1.0
    grace_period_ms: int | None = None
    health_boost: float | None = None
    hint_system_active: bool = False


class Encounter(BaseModel):
    model_config = ConfigDict(extra="allow")

    enemies: list[Enemy] = Field(default_factory=list)
    environment: Environment = Field(default_factory=Environment)
    spawn_parameters: SpawnParameters = Field(default_factory=SpawnParameters)
    player_modifiers: PlayerModifiers | None = None


# ---------------------------------------------------------------------------
# Derived per-update records
# ---------------------------------------------------------------------------


@dataclass
class FlowMetrics:
    success_rate: float = 0.5
    skill_level: float = 0.5
    challenge_level: float = 1.0
    balance_ratio: float = 2.0
    time_in_flow: float = 0.0
    engagement_score: float = 0.5
    concentration_level: float = 0.5
    flow_score: float = 0.0


@dataclass
class PlayerState:
    primary: PrimaryState = PrimaryState.FLOW
    frustration_score: float = 0.0
    boredom_score: float = 0.0
    confidence: float = 0.0
    indicators: dict[str, dict[str, float]] = field(default_factory=dict)


@dataclass
class AdjustmentSet:
    """Target values (not deltas) for dimensions changed this cycle."""

    visible: dict[Dimension, float] = field(default_factory=dict)
    hidden: dict[Dimension, float] = field(default_factory=dict)

    def merged(self) -> dict[Dimension, float]:
        return {**self.hidden, **self.visible}

    def is_empty(self) -> bool:
        return not self.visible and not self.hidden


# ---------------------------------------------------------------------------
# Persisted session aggregate
# ---------------------------------------------------------------------------


class AdjustmentEvent(BaseModel):
    timestamp_ms: int = Field(ge=0)
    trigger: AdjustmentTrigger
    magnitude: float = Field(ge=0.0)
    player_state: PrimaryState | None = None
    changes: dict[str, float] = Field(default_factory=dict)
    difficulty: float = 1.0


class TransparencyLogEntry(BaseModel):
    timestamp_ms: int = Field(ge=0)
    preference: TransparencyPreference
    player_state: PrimaryState
    all_adjustments: dict[str, float] = Field(default_factory=dict)
    visible_adjustments: dict[str, float] = Field(default_factory=dict)
    notification_count: int = Field(default=0, ge=0)

    @property
    def transparency_ratio(self) -> float:
        total = len(self.all_adjustments)
        return len(self.visible_adjustments) / total if total else 0.0


class TemplateFlags(BaseModel):
    """Non-vector extras of the active template, applied on encounter mutation."""

    grace_period_ms: int | None = Field(default=None, ge=0)
    environmental_hazards: bool = False
    boss_encounter_chance: float | None = Field(default=None, ge=0.0, le=1.0)
    hint_system_active: bool = False
    dynamic_objectives: bool = False


class SessionDifficultyState(BaseModel):
    session_id: str = Field(min_length=1)
    version: int = Field(default=0, ge=0)
    vector: DifficultyVector = Field(default_factory=DifficultyVector.neutral)
    active_template: TemplateName | None = None
    template_flags: TemplateFlags | None = None
    history: list[AdjustmentEvent] = Field(default_factory=list)
    transparency_log: list[TransparencyLogEntry] = Field(default_factory=list)
    transparency_preference: TransparencyPreference = TransparencyPreference.BALANCED
    total_updates: int = Field(default=0, ge=0)
    encounters_applied: int = Field(default=0, ge=0)
    interventions_activated: int = Field(default=0, ge=0)
    created_at_ms: int = Field(default=0, ge=0)
    updated_at_ms: int = Field(default=0, ge=0)

    def record_event(self, event: AdjustmentEvent, limit: int) -> None:
        self.history.append(event)
        if len(self.history) > limit:
            del self.history[: len(self.history) - limit]

    def record_transparency(self, entry: TransparencyLogEntry, limit: int) -> None:
        self.transparency_log.append(entry)
        if len(self.transparency_log) > limit:
            del self.transparency_log[: len(self.transparency_log) - limit]


# ---------------------------------------------------------------------------
# Relief / notifications
# ---------------------------------------------------------------------------


class Intervention(BaseModel):
    type: str
    magnitude: float | None = None
    duration_ms: int | None = None
    description: str = ""
    hints: list[str] = Field(default_factory=list)


class ReliefOutcome(BaseModel):
    activated: bool
    level: str | None = None
    interventions: list[Intervention] = Field(default_factory=list)


class Notification(BaseModel):
    kind: Literal["system", "feature"]
    category: str
    title: str
    message: str
    priority: Literal["high", "medium", "low"] = "medium"
    style: str = "neutral"
    duration_ms: int = Field(default=3000, ge=0)


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class AdjustmentSummary(BaseModel):
    total: int = 0
    visible: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    most_common: str | None = None


class TransparencyMetrics(BaseModel):
    average_ratio: float
    min_ratio: float
    max_ratio: float
    consistency_score: float


class Recommendation(BaseModel):
    type: str
    message: str
    priority: Literal["high", "medium", "low"] = "medium"


class TransparencyReport(BaseModel):
    entries: int = 0
    adjustment_summary: AdjustmentSummary = Field(default_factory=AdjustmentSummary)
    metrics: TransparencyMetrics | None = None
    player_states: dict[str, int] = Field(default_factory=dict)
    recommendations: list[Recommendation] = Field(default_factory=list)


class CombatAnalytics(BaseModel):
    total_updates: int = 0
    encounters_applied: int = 0
    average_difficulty: float = 1.0
    difficulty_level: str = "Normal"
    flow_state_ratio: float = 0.0
    recent_adjustments: list[AdjustmentEvent] = Field(default_factory=list)
    current_vector: DifficultyVector = Field(default_factory=DifficultyVector.neutral)


class InterventionSummary(BaseModel):
    total_activated: int = 0
    by_level: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    active: list[Intervention] = Field(default_factory=list)
    relief_available: bool = True


class AnalyticsSummary(BaseModel):
    difficulty_level: str
    transparency_preference: TransparencyPreference
    flow_state_ratio: float
    interventions_activated: int


# ---------------------------------------------------------------------------
# HTTP / websocket contracts
# ---------------------------------------------------------------------------


class UpdateDifficultyRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    combat_outcome: CombatOutcome


class UpdateDifficultyResponse(BaseModel):
    session_id: str
    difficulty_vector: DifficultyVector
    player_state: PlayerState
    flow_metrics: FlowMetrics
    visible_adjustments: dict[str, float]
    notifications: list[Notification] = Field(default_factory=list)
    interventions: list[Intervention] = Field(default_factory=list)
    degraded: bool = False


class ApplyEncounterRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    encounter: Encounter


class ApplyEncounterResponse(BaseModel):
    encounter: Encounter
    difficulty_level: str
    active_interventions: list[Intervention] = Field(default_factory=list)
    degraded: bool = False


class RecordInputRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    input: InputEvent


class RecordActionRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    action: PlayerAction


class TransparencyPreferenceRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    preference: str

    @field_validator("preference")
    @classmethod
    def normalize_preference(cls, value: str) -> str:
        return value.strip().lower()


class TransparencyPreferenceResponse(BaseModel):
    set: bool
    preference: TransparencyPreference
    description: str
    degraded: bool = False


class EmergencyRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    performance: LivePerformance


class EmergencyResponse(BaseModel):
    session_id: str
    difficulty_vector: DifficultyVector
    applied: dict[str, float]
    grace_period_ms: int | None = None
    reasons: list[str] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    degraded: bool = False


class TemplateRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=128)
    template: str


class TemplateResponse(BaseModel):
    session_id: str
    template: TemplateName
    difficulty_vector: DifficultyVector
    degraded: bool = False


class PlayerStateResponse(BaseModel):
    session_id: str
    difficulty_vector: DifficultyVector
    player_state: PlayerState
    flow_metrics: FlowMetrics
    transparency_preference: TransparencyPreference
    degraded: bool = False


class AnalyticsResponse(BaseModel):
    session_id: str
    combat: CombatAnalytics
    transparency: TransparencyReport
    interventions: InterventionSummary
    summary: AnalyticsSummary
    degraded: bool = False


class SystemStatusResponse(BaseModel):
    status: Literal["ok", "degraded"]
    active_sessions: int
    store_timeout_ms: int
    default_transparency: TransparencyPreference
    templates: list[TemplateName]
    dimensions: list[Dimension]


class LivePerformanceFrame(BaseModel):
    type: Literal["live_performance"]
    frame_id: str = Field(min_length=1)
    performance: LivePerformance
    timestamp_ms: int = Field(ge=0)


class LiveCorrectionUpdate(BaseModel):
    type: Literal["correction_update"] = "correction_update"
    frame_id: str
    emergency: bool
    correction: EmergencyResponse | None = None
    timestamp_ms: int = Field(ge=0)


class DifficultyStreamError(BaseModel):
    type: Literal["error"] = "error"
    code: Literal["INVALID_FRAME", "STORE_UNAVAILABLE", "INTERNAL_ERROR"]
    message: str
    recoverable: bool
