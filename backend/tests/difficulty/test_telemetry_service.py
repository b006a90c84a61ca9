from difficulty.models import CombatOutcome, CombatResult, InputEvent, PlayerAction, PlayerPerformance
from difficulty.services.telemetry_service import InMemoryTelemetryAggregator

NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def _outcome(result: CombatResult, duration_ms: float = 40000, damage_taken: float | None = 10.0) -> CombatOutcome:
    return CombatOutcome(
        result=result,
        duration_ms=duration_ms,
        expected_duration_ms=60000,
        damage_taken=damage_taken,
    )


def test_death_streak_counts_trailing_defeats_only() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    for result in (CombatResult.DEFEAT, CombatResult.VICTORY, CombatResult.DEFEAT, CombatResult.DEFEAT):
        telemetry.record_combat_result("s1", _outcome(result))

    metrics = telemetry.get_player_metrics("s1")
    indicators = telemetry.get_frustration_indicators("s1", None, metrics)

    assert indicators.death_streak == 2


def test_quick_quit_requires_quit_shortly_after_death() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    telemetry.record_player_action("slow", PlayerAction(type="death", timestamp_ms=NOW_MS - 25000))
    telemetry.record_player_action("slow", PlayerAction(type="quit", timestamp_ms=NOW_MS - 1000))
    telemetry.record_player_action("fast", PlayerAction(type="death", timestamp_ms=NOW_MS - 4000))
    telemetry.record_player_action("fast", PlayerAction(type="leave", timestamp_ms=NOW_MS - 1000))

    slow = telemetry.get_frustration_indicators("slow", None, telemetry.get_player_metrics("slow"))
    fast = telemetry.get_frustration_indicators("fast", None, telemetry.get_player_metrics("fast"))

    assert not slow.quick_quit_after_death
    assert fast.quick_quit_after_death


def test_perfect_streak_and_completion_speed() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    telemetry.record_combat_result("s2", _outcome(CombatResult.DEFEAT, duration_ms=60000))
    for _ in range(6):
        telemetry.record_combat_result("s2", _outcome(CombatResult.VICTORY, duration_ms=39000, damage_taken=0.0))

    indicators = telemetry.get_boredom_indicators("s2", None, telemetry.get_player_metrics("s2"))

    assert indicators.perfect_streak == 6
    assert abs(indicators.completion_speed - 0.65) < 1e-9


def test_engagement_is_zero_without_inputs() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    indicators = telemetry.get_boredom_indicators("quiet", None, telemetry.get_player_metrics("quiet"))

    assert indicators.engagement_score == 0.0
    assert indicators.inactivity_ms == 0.0


def test_repetitive_actions_tracks_longest_identical_run() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    for offset in range(6):
        telemetry.record_player_action(
            "s3", PlayerAction(type="basic_attack", target="goblin", timestamp_ms=NOW_MS - 10000 + offset)
        )
    telemetry.record_player_action("s3", PlayerAction(type="dodge", timestamp_ms=NOW_MS - 500))

    indicators = telemetry.get_boredom_indicators("s3", None, telemetry.get_player_metrics("s3"))

    assert indicators.repetitive_actions == 6


def test_inactivity_sums_long_gaps_between_inputs() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    for timestamp in (NOW_MS - 60000, NOW_MS - 52000, NOW_MS - 51000, NOW_MS - 40000):
        telemetry.record_input_event("s4", InputEvent(type="keypress", timestamp_ms=timestamp))

    indicators = telemetry.get_boredom_indicators("s4", None, telemetry.get_player_metrics("s4"))

    assert indicators.inactivity_ms == 8000 + 11000


def test_player_metrics_average_reported_performance() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW, encounter_window=2)
    for accuracy in (0.2, 0.6, 0.8):
        telemetry.record_combat_result(
            "s5",
            CombatOutcome(
                result=CombatResult.VICTORY,
                duration_ms=1000,
                player_performance=PlayerPerformance(accuracy=accuracy, reaction_time_ms=300),
            ),
        )

    metrics = telemetry.get_player_metrics("s5")

    assert len(metrics.recent_encounters) == 2
    assert metrics.total_combats == 3
    assert abs(metrics.accuracy_rate - 0.7) < 1e-9
    assert metrics.average_reaction_time_ms == 300
    assert metrics.average_combo_length == 1.0


def test_unknown_session_returns_neutral_snapshot() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    metrics = telemetry.get_player_metrics("missing")

    assert metrics.recent_encounters == []
    assert metrics.accuracy_rate == 0.5


def test_outcome_without_duration_reads_as_neutral() -> None:
    telemetry = InMemoryTelemetryAggregator(clock=lambda: NOW)
    for _ in range(3):
        telemetry.record_combat_result(
            "partial",
            CombatOutcome(result=CombatResult.VICTORY, expected_duration_ms=60000, damage_taken=0.0),
        )

    metrics = telemetry.get_player_metrics("partial")
    indicators = telemetry.get_boredom_indicators("partial", None, metrics)

    assert [encounter.duration_ms for encounter in metrics.recent_encounters] == [0.0, 0.0, 0.0]
    assert indicators.perfect_streak == 0
    assert indicators.completion_speed == 1.0


class FakeClock:
    def __init__(self, start: float = NOW) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_purge_drops_buffers_of_idle_sessions() -> None:
    clock = FakeClock()
    telemetry = InMemoryTelemetryAggregator(ttl_seconds=60, clock=clock)
    for index in range(1000):
        telemetry.record_player_action(f"player-{index}", PlayerAction(type="dodge"))

    clock.now += 30
    telemetry.record_input_event("player-0", InputEvent(type="click"))
    clock.now += 31

    assert telemetry.purge_expired() == 999
    assert telemetry.tracked_sessions() == 1
