"""Decides which adjustments a player is told about, and how."""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from difficulty.exceptions import InvalidPreferenceError
from difficulty.models import (
    AdjustmentKey,
    AdjustmentSummary,
    Notification,
    PlayerState,
    PrimaryState,
    Recommendation,
    TransparencyLogEntry,
    TransparencyMetrics,
    TransparencyPreference,
    TransparencyReport,
)

DEFAULT_REPORT_RANGE_MS = 3_600_000
CRITICAL_NEUTRAL = 0.1
MINIMAL_NOISE_THRESHOLD = 0.05
CRITICAL_NOTIFY_THRESHOLD = 0.02
LOW_TRANSPARENCY_RATIO = 0.3


class Visibility(str, Enum):
    ALWAYS = "visible"
    CONTEXTUAL = "contextual"
    HIDDEN = "hidden"


VISIBILITY_TAGS: dict[AdjustmentKey, Visibility] = {
    AdjustmentKey.PLAYER_DAMAGE_RESISTANCE: Visibility.ALWAYS,
    AdjustmentKey.CRITICAL_HIT_CHANCE: Visibility.ALWAYS,
    AdjustmentKey.HEALTH_BOOST: Visibility.ALWAYS,
    AdjustmentKey.ABILITY_COOLDOWN_REDUCTION: Visibility.ALWAYS,
    AdjustmentKey.GRACE_PERIOD: Visibility.ALWAYS,
    AdjustmentKey.ENEMY_HEALTH_MULTIPLIER: Visibility.CONTEXTUAL,
    AdjustmentKey.SPAWN_RATE_MULTIPLIER: Visibility.CONTEXTUAL,
    AdjustmentKey.CHECKPOINT_CREATION: Visibility.CONTEXTUAL,
    AdjustmentKey.HINT_SYSTEM: Visibility.CONTEXTUAL,
    AdjustmentKey.ENEMY_DAMAGE_MULTIPLIER: Visibility.HIDDEN,
    AdjustmentKey.ENEMY_AI_COMPLEXITY: Visibility.HIDDEN,
    AdjustmentKey.ENEMY_WEAKENING: Visibility.HIDDEN,
    AdjustmentKey.ENVIRONMENTAL_HAZARDS: Visibility.HIDDEN,
}

NEVER_SHOWN = frozenset({AdjustmentKey.ENEMY_AI_COMPLEXITY.value})
RELIEF_KEYS = (AdjustmentKey.HEALTH_BOOST.value, AdjustmentKey.GRACE_PERIOD.value)

MESSAGE_TEMPLATES: dict[str, tuple[str, tuple[str, ...]]] = {
    "difficulty_increase": (
        "Challenge Increased",
        (
            "You're doing great! The challenge has been increased to match your skill.",
            "Your mastery is evident. Enemies will now fight harder.",
            "Time for a greater challenge! Your abilities have impressed the arena.",
        ),
    ),
    "difficulty_decrease": (
        "Assistance Activated",
        (
            "Don't worry! You've received some temporary assistance.",
            "Help is on the way! Your defenses have been bolstered.",
            "The odds have shifted in your favor for now.",
        ),
    ),
    "flow_optimization": (
        "Balance Adjusted",
        (
            "Conditions have been optimized for peak performance.",
            "The challenge has been fine-tuned to your current skill level.",
            "Arena conditions adjusted for optimal engagement.",
        ),
    ),
    "anti_frustration": (
        "Support Activated",
        (
            "Additional support systems are now active.",
            "Emergency assistance protocols engaged.",
            "You've been granted special combat advantages.",
        ),
    ),
}

CATEGORY_STYLES = {
    "anti_frustration": "supportive",
    "difficulty_increase": "challenge",
    "difficulty_decrease": "helpful",
    "flow_optimization": "neutral",
}


@dataclass
class TransparencyContext:
    major_change: bool = False
    success_rate: float | None = None


@dataclass
class TransparencyDecision:
    visible: dict[str, float] = field(default_factory=dict)
    notifications: list[Notification] = field(default_factory=list)
    analytics: dict[str, object] = field(default_factory=dict)


def parse_preference(value: object) -> TransparencyPreference:
    if isinstance(value, TransparencyPreference):
        return value
    if isinstance(value, str):
        try:
            return TransparencyPreference(value.strip().lower())
        except ValueError:
            pass
    raise InvalidPreferenceError(value)


def visibility_of(key: str) -> Visibility:
    try:
        return VISIBILITY_TAGS[AdjustmentKey(key)]
    except ValueError:
        return Visibility.HIDDEN


class TransparencyFilter:
    """Filters adjustments per player preference and renders notifications.

    Category selection is deterministic; ``rng`` only picks among the
    pre-authored message variants of a category.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def process(
        self,
        adjustments: Mapping[str, float],
        player_state: PlayerState,
        preference: TransparencyPreference,
        context: TransparencyContext | None = None,
    ) -> TransparencyDecision:
        context = context or TransparencyContext()
        visible = self.filter(adjustments, preference, player_state, context)
        return TransparencyDecision(
            visible=visible,
            notifications=self.notifications(visible, player_state),
            analytics=self.analytics(adjustments, visible),
        )

    # -- filtering ---------------------------------------------------------

    def filter(
        self,
        adjustments: Mapping[str, float],
        preference: TransparencyPreference,
        player_state: PlayerState,
        context: TransparencyContext,
    ) -> dict[str, float]:
        buckets: dict[Visibility, dict[str, float]] = {tag: {} for tag in Visibility}
        for key, value in adjustments.items():
            buckets[visibility_of(key)][key] = value

        always = buckets[Visibility.ALWAYS]
        contextual = buckets[Visibility.CONTEXTUAL]
        frustrated = player_state.primary == PrimaryState.FRUSTRATED

        if preference == TransparencyPreference.FULL:
            return {key: value for key, value in adjustments.items() if key not in NEVER_SHOWN}

        if preference == TransparencyPreference.BALANCED:
            visible = dict(always)
            if frustrated or context.major_change:
                visible.update(contextual)
            return visible

        if preference == TransparencyPreference.MINIMAL:
            visible = {key: always[key] for key in RELIEF_KEYS if key in always}
            critical = always.get(AdjustmentKey.CRITICAL_HIT_CHANCE.value)
            if critical is not None and abs(critical - CRITICAL_NEUTRAL) > MINIMAL_NOISE_THRESHOLD:
                visible[AdjustmentKey.CRITICAL_HIT_CHANCE.value] = critical
            return visible

        # immersive
        if not frustrated:
            return {}
        return {key: always[key] for key in RELIEF_KEYS if key in always}

    # -- notifications -----------------------------------------------------

    def notifications(self, visible: Mapping[str, float], player_state: PlayerState) -> list[Notification]:
        if not visible:
            return []

        category = self.category(visible, player_state)
        title, variants = MESSAGE_TEMPLATES[category]
        main = Notification(
            kind="system",
            category=category,
            title=title,
            message=self._rng.choice(variants),
            priority="high" if category == "anti_frustration" else "medium",
            style=CATEGORY_STYLES[category],
            duration_ms=5000,
        )
        return [main, *self.feature_notifications(visible)]

    @staticmethod
    def category(visible: Mapping[str, float], player_state: PlayerState) -> str:
        resistance = visible.get(AdjustmentKey.PLAYER_DAMAGE_RESISTANCE.value)
        critical = visible.get(AdjustmentKey.CRITICAL_HIT_CHANCE.value)
        enemy_health = visible.get(AdjustmentKey.ENEMY_HEALTH_MULTIPLIER.value)
        relief = any(key in visible for key in RELIEF_KEYS)

        if player_state.primary == PrimaryState.FRUSTRATED and (
            relief or (resistance is not None and resistance > 1.0)
        ):
            return "anti_frustration"
        if player_state.primary == PrimaryState.BORED and (
            (critical is not None and critical > 0.12) or (enemy_health is not None and enemy_health > 1.1)
        ):
            return "difficulty_increase"
        if (resistance is not None and resistance > 1.0) or (enemy_health is not None and enemy_health < 1.0):
            return "difficulty_decrease"
        return "flow_optimization"

    @staticmethod
    def feature_notifications(visible: Mapping[str, float]) -> list[Notification]:
        notes: list[Notification] = []

        health_boost = visible.get(AdjustmentKey.HEALTH_BOOST.value)
        if health_boost is not None and health_boost > 1.0:
            notes.append(
                Notification(
                    kind="feature",
                    category="health_boost",
                    title="Health Enhanced",
                    message=f"Your maximum health has been increased by {round((health_boost - 1) * 100)}%",
                    style="positive",
                )
            )

        critical = visible.get(AdjustmentKey.CRITICAL_HIT_CHANCE.value)
        if critical is not None and abs(critical - CRITICAL_NEUTRAL) > CRITICAL_NOTIFY_THRESHOLD:
            notes.append(
                Notification(
                    kind="feature",
                    category="critical_hits",
                    title="Critical Strike Enhanced",
                    message=f"Critical hit chance: {round(critical * 100)}%",
                    style="positive",
                )
            )

        resistance = visible.get(AdjustmentKey.PLAYER_DAMAGE_RESISTANCE.value)
        if resistance is not None and resistance > 1.05:
            notes.append(
                Notification(
                    kind="feature",
                    category="defense",
                    title="Defense Boosted",
                    message=f"Incoming damage reduced by {round((resistance - 1) * 100)}%",
                    style="positive",
                )
            )

        if AdjustmentKey.GRACE_PERIOD.value in visible:
            notes.append(
                Notification(
                    kind="feature",
                    category="grace_period",
                    title="Protection Active",
                    message="Brief invulnerability after taking damage",
                    style="protective",
                )
            )
        return notes

    # -- analytics ---------------------------------------------------------

    @staticmethod
    def analytics(adjustments: Mapping[str, float], visible: Mapping[str, float]) -> dict[str, object]:
        total = len(adjustments)
        return {
            "total_adjustments": total,
            "visible_adjustments": len(visible),
            "adjustment_types": categorize_adjustments(adjustments),
            "transparency_ratio": len(visible) / total if total else 0.0,
        }

    @staticmethod
    def log_entry(
        adjustments: Mapping[str, float],
        decision: TransparencyDecision,
        player_state: PlayerState,
        preference: TransparencyPreference,
        timestamp_ms: int,
    ) -> TransparencyLogEntry:
        return TransparencyLogEntry(
            timestamp_ms=timestamp_ms,
            preference=preference,
            player_state=player_state.primary,
            all_adjustments=dict(adjustments),
            visible_adjustments=dict(decision.visible),
            notification_count=len(decision.notifications),
        )


def categorize_adjustments(adjustments: Mapping[str, float]) -> dict[str, int]:
    categories = {"player_buffs": 0, "enemy_nerfs": 0, "environmental": 0, "ai_modifications": 0}
    for key in adjustments:
        if key.startswith("player_") or "critical_hit" in key or "health_boost" in key:
            categories["player_buffs"] += 1
        elif key.startswith("enemy_"):
            categories["enemy_nerfs"] += 1
        elif key.startswith("spawn_") or "environmental" in key:
            categories["environmental"] += 1
        elif "ai_" in key:
            categories["ai_modifications"] += 1
    return categories


def generate_report(
    log: list[TransparencyLogEntry],
    now_ms: int,
    time_range_ms: int = DEFAULT_REPORT_RANGE_MS,
) -> TransparencyReport:
    recent = [entry for entry in log if now_ms - entry.timestamp_ms < time_range_ms]
    if not recent:
        return TransparencyReport()

    type_counts: Counter[str] = Counter()
    for entry in recent:
        type_counts.update(entry.all_adjustments.keys())
    summary = AdjustmentSummary(
        total=sum(len(entry.all_adjustments) for entry in recent),
        visible=sum(len(entry.visible_adjustments) for entry in recent),
        by_type=dict(type_counts),
        most_common=type_counts.most_common(1)[0][0] if type_counts else None,
    )

    ratios = [entry.transparency_ratio for entry in recent]
    metrics = TransparencyMetrics(
        average_ratio=sum(ratios) / len(ratios),
        min_ratio=min(ratios),
        max_ratio=max(ratios),
        consistency_score=1.0 - (max(ratios) - min(ratios)),
    )
    states = Counter(entry.player_state.value for entry in recent)

    recommendations: list[Recommendation] = []
    if metrics.average_ratio < LOW_TRANSPARENCY_RATIO:
        recommendations.append(
            Recommendation(
                type="increase_transparency",
                message="Consider showing more adjustments to better understand the system",
                priority="medium",
            )
        )
    if states[PrimaryState.FRUSTRATED.value] > states[PrimaryState.FLOW.value]:
        recommendations.append(
            Recommendation(
                type="show_support",
                message="Showing support features may help reduce frustration",
                priority="high",
            )
        )

    return TransparencyReport(
        entries=len(recent),
        adjustment_summary=summary,
        metrics=metrics,
        player_states=dict(states),
        recommendations=recommendations,
    )
