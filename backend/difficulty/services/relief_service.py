"""Player-relief interventions activated when frustration runs high."""

from __future__ import annotations

import random
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Protocol

from difficulty.models import Intervention, InterventionSummary, PlayerState, ReliefOutcome
from shared.config.app_config import DDA_SESSION_TTL_SECONDS
from shared.config.logging import get_logger

logger = get_logger(__name__)

# Highest threshold <= frustration wins.
INTERVENTION_LEVELS: tuple[tuple[str, float], ...] = (
    ("critical", 0.9),
    ("severe", 0.8),
    ("moderate", 0.6),
    ("mild", 0.4),
)
LEVEL_ORDER = ("mild", "moderate", "severe", "critical")


@dataclass(frozen=True)
class Feature:
    description: str
    duration_ms: int
    magnitude: float | None = None


FEATURES: dict[str, Feature] = {
    "grace_period": Feature("Brief invulnerability after taking damage", 5000),
    "health_boost": Feature("Temporary health increase", 30000, 1.3),
    "damage_reduction": Feature("Reduced incoming damage", 60000, 0.7),
    "hint_system": Feature("Contextual gameplay hints", 300000),
    "checkpoint_creation": Feature("Automatic progress saving", 3600000),
    "ability_cooldown_reduction": Feature("Faster ability recovery", 45000, 0.7),
    "enemy_weakening": Feature("Temporary enemy weakness", 120000, 0.2),
}

HINT_TEMPLATES: dict[str, tuple[str, ...]] = {
    "combat_tips": (
        "Try using your dodge ability just before the enemy attacks",
        "Blocking can reduce damage significantly",
        "Look for enemy attack patterns to predict their moves",
        "Use your special abilities when enemies are vulnerable",
        "Environmental objects can be used as weapons or shields",
    ),
    "strategy_hints": (
        "Focus on one enemy at a time to avoid being overwhelmed",
        "Keep moving to avoid getting surrounded",
        "Use the terrain to your advantage",
        "Save your powerful abilities for tough enemies",
        "Watch your stamina - don't exhaust yourself",
    ),
    "weakness_reveals": (
        "This enemy is weak to fire attacks",
        "Attack after the enemy finishes their combo",
        "This enemy has slower reactions to side attacks",
        "Use ranged attacks when the enemy is charging",
        "This enemy becomes vulnerable after using special abilities",
    ),
}
MAX_HINTS = 3
HINTS_PER_TYPE = 2


class ReliefSystem(Protocol):
    def activate(self, session_id: str, player_state: PlayerState) -> ReliefOutcome: ...

    def active_interventions(self, session_id: str) -> list[Intervention]: ...

    def summary(self, session_id: str) -> InterventionSummary: ...

    def purge_expired(self) -> int: ...


@dataclass
class _LogEntry:
    timestamp_ms: int
    level: str
    types: tuple[str, ...]


def intervention_level(frustration_score: float) -> str | None:
    for name, threshold in INTERVENTION_LEVELS:
        if frustration_score >= threshold:
            return name
    return None


class InMemoryReliefSystem:
    """Tracks timed interventions per session; deeper levels include the milder ones."""

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        log_limit: int = 50,
        ttl_seconds: float = DDA_SESSION_TTL_SECONDS,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock
        self._ttl_ms = int(ttl_seconds * 1000)
        self._active: dict[str, dict[str, tuple[Intervention, int]]] = {}
        self._log: dict[str, list[_LogEntry]] = {}
        self._log_limit = log_limit
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def active_interventions(self, session_id: str) -> list[Intervention]:
        now = self._now_ms()
        with self._lock:
            entries = self._active.get(session_id)
            if not entries:
                return []
            live = {kind: entry for kind, entry in entries.items() if entry[1] > now}
            if live:
                self._active[session_id] = live
            else:
                del self._active[session_id]
            return [intervention.model_copy(deep=True) for intervention, _ in live.values()]

    def activate(self, session_id: str, player_state: PlayerState) -> ReliefOutcome:
        level = intervention_level(player_state.frustration_score)
        if level is None:
            return ReliefOutcome(activated=False)

        active_types = {intervention.type for intervention in self.active_interventions(session_id)}
        selected = self.select(level, player_state, active_types)
        now = self._now_ms()
        with self._lock:
            entries = self._active.setdefault(session_id, {})
            for intervention in selected:
                entries[intervention.type] = (intervention, now + (intervention.duration_ms or 0))
            log = self._log.setdefault(session_id, [])
            log.append(_LogEntry(now, level, tuple(intervention.type for intervention in selected)))
            del log[: max(0, len(log) - self._log_limit)]

        logger.info(
            "Relief activated session=%s level=%s interventions=%s",
            session_id,
            level,
            ",".join(intervention.type for intervention in selected),
        )
        return ReliefOutcome(activated=bool(selected), level=level, interventions=selected)

    def summary(self, session_id: str) -> InterventionSummary:
        active = self.active_interventions(session_id)
        with self._lock:
            log = list(self._log.get(session_id, []))
        return InterventionSummary(
            total_activated=len(log),
            by_level=dict(Counter(entry.level for entry in log)),
            by_type=dict(Counter(kind for entry in log for kind in entry.types)),
            active=active,
        )

    def purge_expired(self) -> int:
        """Forget sessions with no live intervention and no activation within the TTL."""
        now = self._now_ms()
        cutoff = now - self._ttl_ms
        with self._lock:
            for session_id, entries in list(self._active.items()):
                live = {kind: entry for kind, entry in entries.items() if entry[1] > now}
                if live:
                    self._active[session_id] = live
                else:
                    del self._active[session_id]
            stale = [
                session_id
                for session_id, log in self._log.items()
                if session_id not in self._active and (not log or log[-1].timestamp_ms <= cutoff)
            ]
            for session_id in stale:
                del self._log[session_id]
        if stale:
            logger.info("Purged relief history for %d idle sessions", len(stale))
        return len(stale)

    def tracked_sessions(self) -> int:
        with self._lock:
            return len(self._active.keys() | self._log.keys())

    def select(self, level: str, player_state: PlayerState, active_types: set[str]) -> list[Intervention]:
        depth = LEVEL_ORDER.index(level)
        chosen: dict[str, Intervention] = {}
        hint_types: list[str] = []

        def add(kind: str, *, duration_ms: int | None = None, magnitude: float | None = None) -> None:
            if kind in active_types or kind in chosen:
                return
            feature = FEATURES[kind]
            chosen[kind] = Intervention(
                type=kind,
                magnitude=feature.magnitude if magnitude is None else magnitude,
                duration_ms=feature.duration_ms if duration_ms is None else duration_ms,
                description=feature.description,
            )

        if depth >= LEVEL_ORDER.index("critical"):
            add("grace_period", duration_ms=8000)
            add("enemy_weakening", magnitude=0.4)
            add("checkpoint_creation")
        if depth >= LEVEL_ORDER.index("severe"):
            add("health_boost", magnitude=1.4)
            add("damage_reduction", magnitude=0.6)
            hint_types.extend(("weakness_reveals", "strategy_hints"))
        if depth >= LEVEL_ORDER.index("moderate"):
            add("ability_cooldown_reduction")
            death_streak = player_state.indicators.get("frustration", {}).get("death_streak", 0)
            if death_streak >= 2:
                add("grace_period", duration_ms=3000)
        hint_types.append("combat_tips")

        if "hint_system" not in active_types:
            chosen["hint_system"] = Intervention(
                type="hint_system",
                duration_ms=FEATURES["hint_system"].duration_ms,
                description=FEATURES["hint_system"].description,
                hints=self.hints(hint_types),
            )
        return list(chosen.values())

    def hints(self, hint_types: list[str]) -> list[str]:
        pool: list[str] = []
        for kind in hint_types:
            templates = list(HINT_TEMPLATES.get(kind, ()))
            self._rng.shuffle(templates)
            pool.extend(templates[:HINTS_PER_TYPE])
        self._rng.shuffle(pool)
        return pool[:MAX_HINTS]
