"""Session telemetry buffers and their reduction into player-state indicators."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Protocol

import numpy as np

from difficulty.models import CombatOutcome, CombatResult, InputEvent, PlayerAction
from shared.config.app_config import DDA_SESSION_TTL_SECONDS
from shared.config.logging import get_logger

logger = get_logger(__name__)

SHORT_WINDOW_MS = 30_000
MEDIUM_WINDOW_MS = 120_000
LONG_WINDOW_MS = 300_000

CLICK_SPAM_PER_SECOND = 10.0
INACTIVE_GAP_MS = 5_000
QUICK_QUIT_MS = 10_000
PERFECT_SPEED_RATIO = 0.8

HELP_ACTIONS = frozenset({"check_hints", "pause_game", "open_menu", "view_tutorial", "request_help"})
RISKY_ACTIONS = frozenset({"aggressive_attack", "risky_maneuver", "ignore_defense"})
ACTION_COMPLEXITY = {
    "basic_attack": 1,
    "combo_attack": 3,
    "special_ability": 4,
    "dodge": 2,
    "block": 2,
    "strategic_move": 5,
}


@dataclass
class EncounterRecord:
    result: CombatResult
    duration_ms: float
    timestamp_ms: int
    expected_duration_ms: float | None = None
    damage_taken: float | None = None
    engagement_score: float = 0.0

    @property
    def success(self) -> bool:
        return self.result == CombatResult.VICTORY


@dataclass
class PlayerMetricsSnapshot:
    """Rolling metrics for one session; every field has a neutral default."""

    recent_encounters: list[EncounterRecord] = field(default_factory=list)
    average_reaction_time_ms: float = 500.0
    accuracy_rate: float = 0.5
    average_combo_length: float = 1.0
    average_decision_time_ms: float = 2000.0
    adaptability_score: float = 0.5
    inputs_per_second: float = 1.0
    action_variety: float = 3.0
    performance_variance: float = 0.5
    timing_variance: float = 0.3
    total_combats: int = 0


@dataclass
class FrustrationIndicators:
    rapid_retries: int = 0
    death_streak: int = 0
    input_variance: float = 1.0
    quick_quit_after_death: bool = False
    emotional_score: float = 0.0
    # Diagnostics only, not weighted.
    action_regression: float = 0.0
    help_seeking: int = 0
    performance_drop: float = 0.0


@dataclass
class BoredomIndicators:
    perfect_streak: int = 0
    completion_speed: float = 1.0
    engagement_score: float = 0.5
    repetitive_actions: int = 0
    inactivity_ms: float = 0.0
    # Diagnostics only, not weighted.
    exploration_decline: float = 0.0
    risk_taking: float = 0.0
    attention_drift: float = 0.0


class TelemetryAggregator(Protocol):
    def record_combat_result(self, session_id: str, outcome: CombatOutcome) -> None: ...

    def record_input_event(self, session_id: str, event: InputEvent) -> None: ...

    def record_player_action(self, session_id: str, action: PlayerAction) -> None: ...

    def get_frustration_indicators(
        self,
        session_id: str,
        outcome: CombatOutcome | None,
        metrics: PlayerMetricsSnapshot,
    ) -> FrustrationIndicators: ...

    def get_boredom_indicators(
        self,
        session_id: str,
        outcome: CombatOutcome | None,
        metrics: PlayerMetricsSnapshot,
    ) -> BoredomIndicators: ...

    def get_player_metrics(self, session_id: str) -> PlayerMetricsSnapshot: ...

    def purge_expired(self) -> int: ...


@dataclass
class _CombatEntry:
    outcome: CombatOutcome
    timestamp_ms: int
    engagement_score: float


@dataclass
class _TimedEntry:
    type: str
    timestamp_ms: int
    payload: InputEvent | PlayerAction


@dataclass
class _SessionTelemetry:
    combats: deque[_CombatEntry]
    inputs: deque[_TimedEntry]
    actions: deque[_TimedEntry]
    last_seen: float = 0.0


class InMemoryTelemetryAggregator:
    """Bounded per-session telemetry buffers kept in process memory."""

    def __init__(
        self,
        *,
        encounter_window: int = 20,
        max_combats: int = 100,
        max_inputs: int = 2000,
        max_actions: int = 1000,
        ttl_seconds: float = DDA_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._encounter_window = max(1, encounter_window)
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, _SessionTelemetry] = defaultdict(
            lambda: _SessionTelemetry(
                combats=deque(maxlen=max_combats),
                inputs=deque(maxlen=max_inputs),
                actions=deque(maxlen=max_actions),
            )
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _touch(self, session_id: str) -> _SessionTelemetry:
        telemetry = self._sessions[session_id]
        telemetry.last_seen = self._clock()
        return telemetry

    def purge_expired(self) -> int:
        """Drop buffers of sessions with no recorded telemetry within the TTL."""
        cutoff = self._clock() - self._ttl
        with self._lock:
            expired = [key for key, telemetry in self._sessions.items() if telemetry.last_seen <= cutoff]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.info("Purged telemetry for %d idle sessions", len(expired))
        return len(expired)

    def tracked_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)

    # -- recording ---------------------------------------------------------

    def record_combat_result(self, session_id: str, outcome: CombatOutcome) -> None:
        now = self._now_ms()
        with self._lock:
            telemetry = self._touch(session_id)
            engagement = self._engagement_score(list(telemetry.inputs), now)
            telemetry.combats.append(
                _CombatEntry(outcome=outcome, timestamp_ms=now, engagement_score=engagement)
            )

    def record_input_event(self, session_id: str, event: InputEvent) -> None:
        timestamp = event.timestamp_ms if event.timestamp_ms is not None else self._now_ms()
        with self._lock:
            self._touch(session_id).inputs.append(
                _TimedEntry(type=event.type, timestamp_ms=timestamp, payload=event)
            )

    def record_player_action(self, session_id: str, action: PlayerAction) -> None:
        timestamp = action.timestamp_ms if action.timestamp_ms is not None else self._now_ms()
        with self._lock:
            self._touch(session_id).actions.append(
                _TimedEntry(type=action.type, timestamp_ms=timestamp, payload=action)
            )

    def _snapshot(self, session_id: str) -> tuple[list[_CombatEntry], list[_TimedEntry], list[_TimedEntry]]:
        with self._lock:
            telemetry = self._sessions.get(session_id)
            if telemetry is None:
                return [], [], []
            return list(telemetry.combats), list(telemetry.inputs), list(telemetry.actions)

    # -- metrics snapshot --------------------------------------------------

    def get_player_metrics(self, session_id: str) -> PlayerMetricsSnapshot:
        combats, inputs, _ = self._snapshot(session_id)
        now = self._now_ms()
        window = combats[-self._encounter_window :]
        snapshot = PlayerMetricsSnapshot(
            recent_encounters=[
                EncounterRecord(
                    result=entry.outcome.result,
                    duration_ms=entry.outcome.duration_ms or 0.0,
                    timestamp_ms=entry.timestamp_ms,
                    expected_duration_ms=entry.outcome.expected_duration_ms,
                    damage_taken=entry.outcome.damage_taken,
                    engagement_score=entry.engagement_score,
                )
                for entry in window
            ],
            total_combats=len(combats),
        )

        performances = [entry.outcome.player_performance for entry in window]
        snapshot.average_reaction_time_ms = _mean_or(
            [p.reaction_time_ms for p in performances], snapshot.average_reaction_time_ms
        )
        snapshot.accuracy_rate = _mean_or([p.accuracy for p in performances], snapshot.accuracy_rate)
        snapshot.average_combo_length = _mean_or(
            [p.combo_length for p in performances], snapshot.average_combo_length
        )
        snapshot.average_decision_time_ms = _mean_or(
            [p.decision_time_ms for p in performances], snapshot.average_decision_time_ms
        )
        snapshot.adaptability_score = _mean_or(
            [p.adaptability for p in performances], snapshot.adaptability_score
        )
        if len(window) >= 2:
            successes = np.array([1.0 if entry.outcome.result == CombatResult.VICTORY else 0.0 for entry in window])
            snapshot.performance_variance = float(np.var(successes))

        recent_inputs = _within(inputs, now, MEDIUM_WINDOW_MS)
        if recent_inputs:
            snapshot.inputs_per_second = len(recent_inputs) / (MEDIUM_WINDOW_MS / 1000.0)
            snapshot.action_variety = float(len({entry.type for entry in recent_inputs}))
            response_times = _response_times(recent_inputs)
            if len(response_times) > 3 and np.mean(response_times) > 0:
                cv = float(np.std(response_times) / np.mean(response_times))
                snapshot.timing_variance = min(1.0, cv)
        return snapshot

    # -- frustration -------------------------------------------------------

    def get_frustration_indicators(
        self,
        session_id: str,
        outcome: CombatOutcome | None,
        metrics: PlayerMetricsSnapshot,
    ) -> FrustrationIndicators:
        combats, inputs, actions = self._snapshot(session_id)
        now = self._now_ms()

        rapid_retries = sum(1 for entry in _within(actions, now, SHORT_WINDOW_MS) if entry.type == "retry")
        death_streak = _death_streak(combats)
        input_variance = _input_variance(inputs, now)

        emotional_score = 0.0
        if rapid_retries > 3:
            emotional_score -= 0.3
        if death_streak > 2:
            emotional_score -= 0.4
        if input_variance > 2:
            emotional_score -= 0.3

        return FrustrationIndicators(
            rapid_retries=rapid_retries,
            death_streak=death_streak,
            input_variance=input_variance,
            quick_quit_after_death=_quick_quit_after_death(actions),
            emotional_score=max(-1.0, emotional_score),
            action_regression=_action_regression(actions, now),
            help_seeking=sum(1 for entry in _within(actions, now, SHORT_WINDOW_MS) if entry.type in HELP_ACTIONS),
            performance_drop=_performance_drop(combats),
        )

    # -- boredom -----------------------------------------------------------

    def get_boredom_indicators(
        self,
        session_id: str,
        outcome: CombatOutcome | None,
        metrics: PlayerMetricsSnapshot,
    ) -> BoredomIndicators:
        combats, inputs, actions = self._snapshot(session_id)
        now = self._now_ms()
        return BoredomIndicators(
            perfect_streak=_perfect_streak(combats),
            completion_speed=_completion_speed(combats),
            engagement_score=self._engagement_score(inputs, now),
            repetitive_actions=_repetitive_actions(actions, now),
            inactivity_ms=_inactivity_ms(inputs, now),
            exploration_decline=_exploration_decline(actions, now),
            risk_taking=_risk_taking(actions, now),
            attention_drift=_attention_drift(inputs, now),
        )

    @staticmethod
    def _engagement_score(inputs: list[_TimedEntry], now: int) -> float:
        recent = _within(inputs, now, MEDIUM_WINDOW_MS)
        if not recent:
            return 0.0

        frequency = len(recent) / (MEDIUM_WINDOW_MS / 1000.0)
        normalized_frequency = min(1.0, frequency / 5.0)
        variety = min(1.0, len({entry.type for entry in recent}) / 6.0)

        consistency = 1.0
        response_times = _response_times(recent)
        if len(response_times) > 3:
            mean = float(np.mean(response_times))
            if mean > 0:
                consistency = max(0.0, 1.0 - float(np.var(response_times)) / (mean * mean))

        return normalized_frequency * 0.4 + variety * 0.3 + consistency * 0.3


def _mean_or(values: list[float | None], default: float) -> float:
    present = [value for value in values if value is not None]
    if not present:
        return default
    return float(np.mean(present))


def _within(entries: list[_TimedEntry], now: int, window_ms: int) -> list[_TimedEntry]:
    return [entry for entry in entries if now - entry.timestamp_ms < window_ms]


def _response_times(entries: list[_TimedEntry]) -> np.ndarray:
    values = [
        entry.payload.response_time_ms
        for entry in entries
        if isinstance(entry.payload, InputEvent) and entry.payload.response_time_ms
    ]
    return np.array(values, dtype=float)


def _death_streak(combats: list[_CombatEntry]) -> int:
    streak = 0
    for entry in reversed(combats):
        if entry.outcome.result == CombatResult.DEFEAT:
            streak += 1
        elif entry.outcome.result == CombatResult.VICTORY:
            break
    return streak


def _input_variance(inputs: list[_TimedEntry], now: int) -> float:
    if len(inputs) < 10:
        return 1.0
    recent = _within(inputs, now, SHORT_WINDOW_MS)
    if len(recent) < 5:
        return 1.0

    intervals = np.diff(np.array([entry.timestamp_ms for entry in recent], dtype=float))
    mean_interval = float(np.mean(intervals))
    timing_cv = float(np.std(intervals)) / mean_interval if mean_interval > 0 else 0.0

    clicks_per_second = sum(1 for entry in recent if entry.type == "click") / (SHORT_WINDOW_MS / 1000.0)
    spam_score = max(0.0, (clicks_per_second - CLICK_SPAM_PER_SECOND) / CLICK_SPAM_PER_SECOND)

    movement_variance = 1.0
    movements = [
        entry.payload
        for entry in recent
        if entry.type == "movement"
        and isinstance(entry.payload, InputEvent)
        and (entry.payload.delta_x is not None or entry.payload.delta_y is not None)
    ]
    if len(movements) > 3:
        distances = np.hypot(
            np.array([m.delta_x or 0.0 for m in movements]),
            np.array([m.delta_y or 0.0 for m in movements]),
        )
        movement_variance = float(np.var(distances))

    return timing_cv + spam_score + movement_variance / 100.0


def _quick_quit_after_death(actions: list[_TimedEntry]) -> bool:
    for i in range(len(actions) - 1, -1, -1):
        if actions[i].type not in ("quit", "leave"):
            continue
        for j in range(i - 1, -1, -1):
            if actions[j].type == "death":
                if actions[i].timestamp_ms - actions[j].timestamp_ms < QUICK_QUIT_MS:
                    return True
                break
    return False


def _action_complexity(actions: list[_TimedEntry]) -> float:
    if not actions:
        return 0.0
    return float(np.mean([ACTION_COMPLEXITY.get(entry.type, 1) for entry in actions]))


def _action_regression(actions: list[_TimedEntry], now: int) -> float:
    recent = [entry for entry in actions if now - entry.timestamp_ms < MEDIUM_WINDOW_MS]
    earlier = [entry for entry in actions if MEDIUM_WINDOW_MS <= now - entry.timestamp_ms < LONG_WINDOW_MS]
    if len(recent) < 10 or len(earlier) < 10:
        return 0.0
    return max(0.0, _action_complexity(earlier) - _action_complexity(recent))


def _performance_drop(combats: list[_CombatEntry]) -> float:
    if len(combats) < 10:
        return 0.0
    recent = combats[-5:]
    earlier = combats[-15:-5]

    def success_rate(entries: list[_CombatEntry]) -> float:
        return sum(1 for e in entries if e.outcome.result == CombatResult.VICTORY) / len(entries)

    def average_time(entries: list[_CombatEntry]) -> float:
        return float(np.mean([e.outcome.duration_ms or 0.0 for e in entries]))

    success_drop = max(0.0, success_rate(earlier) - success_rate(recent))
    earlier_time = average_time(earlier)
    time_increase = max(0.0, (average_time(recent) - earlier_time) / earlier_time) if earlier_time > 0 else 0.0
    return min(1.0, success_drop * 0.7 + time_increase * 0.3)


def _perfect_streak(combats: list[_CombatEntry]) -> int:
    streak = 0
    for entry in reversed(combats):
        outcome = entry.outcome
        if (
            outcome.result == CombatResult.VICTORY
            and (outcome.damage_taken or 0.0) == 0.0
            and outcome.expected_duration_ms is not None
            and outcome.duration_ms is not None
            and outcome.duration_ms < outcome.expected_duration_ms * PERFECT_SPEED_RATIO
        ):
            streak += 1
        else:
            break
    return streak


def _completion_speed(combats: list[_CombatEntry]) -> float:
    ratios = [
        entry.outcome.duration_ms / entry.outcome.expected_duration_ms
        for entry in combats[-5:]
        if entry.outcome.expected_duration_ms and entry.outcome.duration_ms is not None
    ]
    if not ratios:
        return 1.0
    return float(np.mean(ratios))


def _repetitive_actions(actions: list[_TimedEntry], now: int) -> int:
    recent = _within(actions, now, SHORT_WINDOW_MS)
    if len(recent) < 5:
        return 0

    def key(entry: _TimedEntry) -> tuple[str, str | None]:
        target = entry.payload.target if isinstance(entry.payload, PlayerAction) else None
        return entry.type, target

    longest = current = 1
    for previous, entry in zip(recent, recent[1:]):
        if key(entry) == key(previous):
            current += 1
        else:
            longest = max(longest, current)
            current = 1
    return max(longest, current)


def _inactivity_ms(inputs: list[_TimedEntry], now: int) -> float:
    recent = _within(inputs, now, MEDIUM_WINDOW_MS)
    if len(recent) < 2:
        return 0.0
    gaps = np.diff(np.array([entry.timestamp_ms for entry in recent], dtype=float))
    return float(gaps[gaps > INACTIVE_GAP_MS].sum())


def _exploration_decline(actions: list[_TimedEntry], now: int) -> float:
    explores = [entry for entry in actions if entry.type == "explore"]
    recent = sum(1 for entry in explores if now - entry.timestamp_ms < MEDIUM_WINDOW_MS)
    earlier = sum(1 for entry in explores if MEDIUM_WINDOW_MS <= now - entry.timestamp_ms < LONG_WINDOW_MS)
    if earlier == 0:
        return 0.0
    return max(0.0, (earlier - recent) / earlier)


def _risk_taking(actions: list[_TimedEntry], now: int) -> float:
    recent = [entry for entry in actions if now - entry.timestamp_ms < MEDIUM_WINDOW_MS]
    if len(recent) < 10:
        return 0.0
    risky = 0
    for entry in recent:
        risk_level = entry.payload.risk_level if isinstance(entry.payload, PlayerAction) else None
        if entry.type in RISKY_ACTIONS or (risk_level is not None and risk_level > 0.7):
            risky += 1
    return risky / len(recent)


def _attention_drift(inputs: list[_TimedEntry], now: int) -> float:
    recent = _within(inputs, now, MEDIUM_WINDOW_MS)
    if len(recent) < 10:
        return 0.0

    half = len(recent) // 2
    first, second = recent[:half], recent[half:]
    first_rt, second_rt = _response_times(first), _response_times(second)
    degradation = 0.0
    if first_rt.size and second_rt.size:
        first_mean = float(np.mean(first_rt))
        degradation = (float(np.mean(second_rt)) - first_mean) / first_mean

    frequency_decline = max(0.0, (len(first) - len(second)) / len(first))
    return min(1.0, degradation * 0.6 + frequency_decline * 0.4)
