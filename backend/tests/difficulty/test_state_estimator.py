from difficulty.exceptions import TelemetryUnavailableError
from difficulty.models import CombatOutcome, CombatResult, PlayerAction, PrimaryState
from difficulty.services.state_estimator import StateEstimator
from difficulty.services.telemetry_service import (
    BoredomIndicators,
    EncounterRecord,
    FrustrationIndicators,
    InMemoryTelemetryAggregator,
)

NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def _defeat() -> CombatOutcome:
    return CombatOutcome(result=CombatResult.DEFEAT, duration_ms=30000, expected_duration_ms=60000)


def _frustrated_session(telemetry: InMemoryTelemetryAggregator, session_id: str, retries: int) -> None:
    for _ in range(3):
        telemetry.record_combat_result(session_id, _defeat())
    for offset in range(retries):
        telemetry.record_player_action(
            session_id, PlayerAction(type="retry", timestamp_ms=NOW_MS - 20000 + offset * 2000)
        )
    telemetry.record_player_action(session_id, PlayerAction(type="death", timestamp_ms=NOW_MS - 8000))
    telemetry.record_player_action(session_id, PlayerAction(type="quit", timestamp_ms=NOW_MS - 3000))


def test_death_streak_with_quick_quit_is_suboptimal_at_threshold() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    _frustrated_session(telemetry, "s-a", retries=3)
    estimator = StateEstimator(telemetry)

    estimate = estimator.estimate("s-a", _defeat())

    assert estimate.player_state.frustration_score >= 0.55
    assert estimate.player_state.frustration_score == 0.7
    assert estimate.player_state.primary == PrimaryState.SUBOPTIMAL
    assert not estimate.degraded


def test_extra_retry_pushes_player_into_frustrated() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    _frustrated_session(telemetry, "s-a2", retries=4)
    estimator = StateEstimator(telemetry)

    estimate = estimator.estimate("s-a2", _defeat())

    assert estimate.player_state.frustration_score > 0.7
    assert estimate.player_state.primary == PrimaryState.FRUSTRATED


def test_frustrated_wins_over_bored_when_both_exceed_threshold() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())

    assert estimator.primary_state(0.8, 0.9) == PrimaryState.FRUSTRATED
    assert estimator.primary_state(0.2, 0.75) == PrimaryState.BORED
    assert estimator.primary_state(0.5, 0.1) == PrimaryState.SUBOPTIMAL
    assert estimator.primary_state(0.1, 0.1) == PrimaryState.FLOW


def test_classification_always_returns_single_known_state() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    frustration = FrustrationIndicators(rapid_retries=5, death_streak=4, input_variance=3.0)
    boredom = BoredomIndicators(perfect_streak=6, completion_speed=0.5, engagement_score=0.1)

    state = estimator.classify(frustration, boredom)

    assert state.primary in set(PrimaryState)
    assert state.primary == PrimaryState.FRUSTRATED
    assert state.confidence == max(state.frustration_score, state.boredom_score)
    assert state.indicators["frustration"]["death_streak"] == 4.0


def test_boredom_score_for_fast_perfect_run_crosses_threshold() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    boredom = BoredomIndicators(perfect_streak=6, completion_speed=0.65, engagement_score=0.0)

    assert estimator.boredom_score(boredom) == 0.75


def test_success_rate_defaults_without_history() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    assert estimator.success_rate([]) == 0.5


def test_challenge_level_scales_with_enemies_and_duration() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    outcome = CombatOutcome(
        result=CombatResult.VICTORY,
        duration_ms=120000,
        expected_duration_ms=60000,
        enemy_count=6,
    )

    assert abs(estimator.challenge_level(outcome) - 2.6) < 1e-9
    assert estimator.challenge_level(None) == 1.0


def test_time_in_flow_counts_engaged_in_band_encounters() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    results = [CombatResult.VICTORY, CombatResult.VICTORY, CombatResult.DEFEAT, CombatResult.VICTORY]
    encounters = [
        EncounterRecord(result=result, duration_ms=1000, timestamp_ms=idx, engagement_score=0.9)
        for idx, result in enumerate(results)
    ]

    assert estimator.time_in_flow(encounters) == 0.5
    assert estimator.time_in_flow([]) == 0.0


def test_flow_score_stays_in_unit_range() -> None:
    estimator = StateEstimator(InMemoryTelemetryAggregator())
    for success in (0.0, 0.3, 0.7, 1.0):
        for balance in (0.1, 1.0, 3.0, 30.0):
            score = estimator.flow_score(success, balance, 0.5, 0.5)
            assert 0.0 <= score <= 1.0


def test_estimate_degrades_to_flow_when_telemetry_unavailable() -> None:
    class OfflineTelemetry(InMemoryTelemetryAggregator):
        def get_player_metrics(self, session_id: str):
            raise TelemetryUnavailableError("offline")

    estimator = StateEstimator(OfflineTelemetry())
    estimate = estimator.estimate("s-offline", None)

    assert estimate.degraded
    assert estimate.player_state.primary == PrimaryState.FLOW
    assert estimate.flow_metrics.success_rate == 0.7
