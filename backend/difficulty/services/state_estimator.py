"""Flow metrics and player-state classification from rolling session telemetry."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from difficulty.config import (
    DEFAULT_BOREDOM_THRESHOLDS,
    DEFAULT_FLOW_CONFIG,
    DEFAULT_FRUSTRATION_THRESHOLDS,
    DEFAULT_SKILL_WEIGHTS,
    DEFAULT_STATE_THRESHOLDS,
    BoredomThresholds,
    FlowConfig,
    FrustrationThresholds,
    SkillWeights,
    StateThresholds,
)
from difficulty.exceptions import TelemetryUnavailableError
from difficulty.models import CombatOutcome, FlowMetrics, PlayerState, PrimaryState
from difficulty.services.telemetry_service import (
    BoredomIndicators,
    EncounterRecord,
    FrustrationIndicators,
    PlayerMetricsSnapshot,
    TelemetryAggregator,
)
from shared.config.logging import get_logger

logger = get_logger(__name__)

SCORE_PRECISION = 4
FLOW_ROLLING_WINDOW = 5
FLOW_ENGAGEMENT_MIN = 0.7


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


@dataclass
class StateEstimate:
    flow_metrics: FlowMetrics
    player_state: PlayerState
    degraded: bool = False


class StateEstimator:
    """Reduces a session's telemetry into ``FlowMetrics`` and a ``PlayerState``."""

    def __init__(
        self,
        telemetry: TelemetryAggregator,
        *,
        flow_config: FlowConfig = DEFAULT_FLOW_CONFIG,
        skill_weights: SkillWeights = DEFAULT_SKILL_WEIGHTS,
        frustration_thresholds: FrustrationThresholds = DEFAULT_FRUSTRATION_THRESHOLDS,
        boredom_thresholds: BoredomThresholds = DEFAULT_BOREDOM_THRESHOLDS,
        state_thresholds: StateThresholds = DEFAULT_STATE_THRESHOLDS,
    ) -> None:
        self._telemetry = telemetry
        self._flow = flow_config
        self._skill = skill_weights
        self._frustration = frustration_thresholds
        self._boredom = boredom_thresholds
        self._states = state_thresholds

    def estimate(self, session_id: str, outcome: CombatOutcome | None) -> StateEstimate:
        try:
            metrics = self._telemetry.get_player_metrics(session_id)
            frustration = self._telemetry.get_frustration_indicators(session_id, outcome, metrics)
            boredom = self._telemetry.get_boredom_indicators(session_id, outcome, metrics)
        except (TelemetryUnavailableError, ConnectionError, TimeoutError) as exc:
            logger.warning(
                "data_quality session=%s telemetry unavailable, holding flow state: %s",
                session_id,
                exc,
            )
            return StateEstimate(
                flow_metrics=FlowMetrics(success_rate=self._flow.target_success_rate),
                player_state=PlayerState(),
                degraded=True,
            )

        return StateEstimate(
            flow_metrics=self.compute_flow_metrics(outcome, metrics),
            player_state=self.classify(frustration, boredom),
        )

    # -- flow metrics ------------------------------------------------------

    def compute_flow_metrics(
        self,
        outcome: CombatOutcome | None,
        metrics: PlayerMetricsSnapshot,
    ) -> FlowMetrics:
        encounters = metrics.recent_encounters
        success_rate = self.success_rate(encounters)
        skill_level = self.skill_level(metrics)
        challenge_level = self.challenge_level(outcome)
        balance_ratio = challenge_level / max(skill_level, self._flow.balance_epsilon)
        engagement = self.engagement_score(metrics)
        concentration = self.concentration_level(metrics)

        return FlowMetrics(
            success_rate=success_rate,
            skill_level=skill_level,
            challenge_level=challenge_level,
            balance_ratio=balance_ratio,
            time_in_flow=self.time_in_flow(encounters),
            engagement_score=engagement,
            concentration_level=concentration,
            flow_score=self.flow_score(success_rate, balance_ratio, engagement, concentration),
        )

    def success_rate(self, encounters: list[EncounterRecord]) -> float:
        if not encounters:
            return self._flow.default_success_rate
        return sum(1 for encounter in encounters if encounter.success) / len(encounters)

    def skill_level(self, metrics: PlayerMetricsSnapshot) -> float:
        weights = self._skill
        return (
            normalize_reaction_time(metrics.average_reaction_time_ms) * weights.reaction_time
            + clamp01(metrics.accuracy_rate) * weights.accuracy
            + normalize_combo_length(metrics.average_combo_length) * weights.combo_length
            + normalize_decision_time(metrics.average_decision_time_ms) * weights.decision_speed
            + clamp01(metrics.adaptability_score) * weights.adaptability
        )

    def challenge_level(self, outcome: CombatOutcome | None) -> float:
        if outcome is None:
            return 1.0

        challenge = 1.0
        if outcome.enemy_count:
            challenge *= min(outcome.enemy_count / 3.0, 2.0)

        if outcome.damage_taken and outcome.damage_dealt:
            damage_ratio = outcome.damage_taken / max(outcome.damage_dealt, 1.0)
            challenge *= 1.0 + damage_ratio * 0.5

        if outcome.duration_ms and outcome.expected_duration_ms:
            duration_ratio = outcome.duration_ms / outcome.expected_duration_ms
            if duration_ratio > 1.5:
                challenge *= 1.3
            elif duration_ratio < 0.7:
                challenge *= 0.8

        return clamp(challenge, self._flow.challenge_min, self._flow.challenge_max)

    def time_in_flow(self, encounters: list[EncounterRecord]) -> float:
        total = sum(encounter.duration_ms for encounter in encounters)
        if total <= 0:
            return 0.0

        in_flow = 0.0
        for idx, encounter in enumerate(encounters):
            window = encounters[max(0, idx - FLOW_ROLLING_WINDOW + 1) : idx + 1]
            rolling = sum(1 for e in window if e.success) / len(window)
            if self.in_flow_band(rolling) and encounter.engagement_score > FLOW_ENGAGEMENT_MIN:
                in_flow += encounter.duration_ms
        return in_flow / total

    @staticmethod
    def engagement_score(metrics: PlayerMetricsSnapshot) -> float:
        frequency = min(1.0, metrics.inputs_per_second / 5.0)
        variety = min(1.0, metrics.action_variety / 6.0)
        consistency = clamp01(1.0 - metrics.performance_variance)
        return clamp01(frequency * 0.4 + variety * 0.3 + consistency * 0.3)

    @staticmethod
    def concentration_level(metrics: PlayerMetricsSnapshot) -> float:
        return clamp01(
            normalize_reaction_time(metrics.average_reaction_time_ms) * 0.4
            + clamp01(metrics.accuracy_rate) * 0.4
            + clamp01(1.0 - metrics.timing_variance) * 0.2
        )

    def flow_score(
        self,
        success_rate: float,
        balance_ratio: float,
        engagement: float,
        concentration: float,
    ) -> float:
        success_closeness = clamp01(1.0 - abs(success_rate - self._flow.target_success_rate) * 2.0)
        balance_closeness = clamp01(1.0 - abs(balance_ratio - 1.0) * 0.5)
        return (
            success_closeness * self._flow.success_weight
            + balance_closeness * self._flow.balance_weight
            + engagement * self._flow.engagement_weight
            + concentration * self._flow.concentration_weight
        )

    def in_flow_band(self, success_rate: float) -> bool:
        return self._flow.band_min <= success_rate <= self._flow.band_max

    # -- player state ------------------------------------------------------

    def frustration_score(self, indicators: FrustrationIndicators) -> float:
        t = self._frustration
        return _sparse_score(
            (
                (indicators.rapid_retries >= t.rapid_retries, t.rapid_retries_weight),
                (indicators.death_streak >= t.death_streak, t.death_streak_weight),
                (indicators.input_variance > t.input_variance, t.input_variance_weight),
                (indicators.quick_quit_after_death, t.quick_quit_weight),
                (indicators.emotional_score < t.negative_emotion_score, t.negative_emotion_weight),
            )
        )

    def boredom_score(self, indicators: BoredomIndicators) -> float:
        t = self._boredom
        return _sparse_score(
            (
                (indicators.perfect_streak >= t.perfect_streak, t.perfect_streak_weight),
                (indicators.completion_speed < t.speed_run_ratio, t.speed_run_weight),
                (indicators.engagement_score < t.low_engagement, t.low_engagement_weight),
                (indicators.repetitive_actions >= t.repetitive_actions, t.repetitive_actions_weight),
                (indicators.inactivity_ms > t.inactivity_ms, t.inactivity_weight),
            )
        )

    def classify(
        self,
        frustration: FrustrationIndicators,
        boredom: BoredomIndicators,
    ) -> PlayerState:
        frustration_score = self.frustration_score(frustration)
        boredom_score = self.boredom_score(boredom)

        return PlayerState(
            primary=self.primary_state(frustration_score, boredom_score),
            frustration_score=frustration_score,
            boredom_score=boredom_score,
            confidence=max(frustration_score, boredom_score),
            indicators={
                "frustration": _indicator_values(frustration),
                "boredom": _indicator_values(boredom),
            },
        )

    def primary_state(self, frustration_score: float, boredom_score: float) -> PrimaryState:
        if frustration_score > self._states.frustrated:
            return PrimaryState.FRUSTRATED
        if boredom_score > self._states.bored:
            return PrimaryState.BORED
        if frustration_score > self._states.suboptimal or boredom_score > self._states.suboptimal:
            return PrimaryState.SUBOPTIMAL
        return PrimaryState.FLOW


def _sparse_score(checks: tuple[tuple[bool, float], ...]) -> float:
    possible = sum(weight for _, weight in checks)
    if possible <= 0:
        return 0.0
    triggered = sum(weight for hit, weight in checks if hit)
    return round(triggered / possible, SCORE_PRECISION)


def _indicator_values(indicators: FrustrationIndicators | BoredomIndicators) -> dict[str, float]:
    return {name: float(value) for name, value in asdict(indicators).items()}


def normalize_reaction_time(reaction_time_ms: float) -> float:
    return clamp01((1000.0 - reaction_time_ms) / 800.0)


def normalize_combo_length(combo_length: float) -> float:
    return clamp01(combo_length / 10.0)


def normalize_decision_time(decision_time_ms: float) -> float:
    return clamp01((3000.0 - decision_time_ms) / 2500.0)
