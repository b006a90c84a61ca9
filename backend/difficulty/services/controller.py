"""Per-session orchestration of the difficulty control loop."""

from __future__ import annotations

import random
import time
from typing import Callable

from difficulty.config import DEFAULT_FLOW_CONFIG, FlowConfig
from difficulty.models import (
    AdjustmentEvent,
    AdjustmentTrigger,
    AnalyticsResponse,
    AnalyticsSummary,
    ApplyEncounterResponse,
    CombatAnalytics,
    CombatOutcome,
    DifficultyVector,
    Dimension,
    EmergencyResponse,
    Encounter,
    FlowMetrics,
    InputEvent,
    Intervention,
    InterventionSummary,
    LivePerformance,
    PlayerAction,
    PlayerState,
    PlayerStateResponse,
    PREFERENCE_DESCRIPTIONS,
    PrimaryState,
    SessionDifficultyState,
    SystemStatusResponse,
    TemplateName,
    TemplateResponse,
    TransparencyPreferenceResponse,
    UpdateDifficultyResponse,
)
from difficulty.services.adjustment_service import AdjustmentEngine, adjustment_magnitude
from difficulty.services.combat_service import (
    CombatApplicationService,
    difficulty_level,
    resolve_template,
    template_flags,
    vector_difficulty,
)
from difficulty.services.relief_service import ReliefSystem
from difficulty.services.session_store import InMemorySessionStore
from difficulty.services.state_estimator import StateEstimator
from difficulty.services.telemetry_service import TelemetryAggregator
from difficulty.services.transparency_service import (
    TransparencyContext,
    TransparencyFilter,
    generate_report,
    parse_preference,
)
from shared.config.app_config import (
    DDA_HISTORY_LIMIT,
    DDA_NOTIFICATION_SEED,
    DDA_TRANSPARENCY_LOG_LIMIT,
)
from shared.config.logging import get_logger

logger = get_logger(__name__)

ADAPTIVE_TEMPLATE = "adaptive"
RECENT_EVENTS = 10
RELIEF_MIN_FRUSTRATION = 0.6


def intervention_value(intervention: Intervention) -> float:
    if intervention.magnitude is not None:
        return float(intervention.magnitude)
    if intervention.duration_ms is not None:
        return float(intervention.duration_ms)
    return 1.0


def _dimension_changes(changes: dict[Dimension, float]) -> dict[str, float]:
    return {dimension.value: value for dimension, value in changes.items()}


class DifficultyController:
    """Runs telemetry -> estimate -> adjust -> filter -> persist for one session at a time."""

    def __init__(
        self,
        *,
        store: InMemorySessionStore,
        telemetry: TelemetryAggregator,
        relief: ReliefSystem | None = None,
        estimator: StateEstimator | None = None,
        engine: AdjustmentEngine | None = None,
        combat: CombatApplicationService | None = None,
        transparency: TransparencyFilter | None = None,
        flow_config: FlowConfig = DEFAULT_FLOW_CONFIG,
        history_limit: int = DDA_HISTORY_LIMIT,
        transparency_log_limit: int = DDA_TRANSPARENCY_LOG_LIMIT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._telemetry = telemetry
        self._relief = relief
        self._flow = flow_config
        self._estimator = estimator or StateEstimator(telemetry, flow_config=flow_config)
        self._engine = engine or AdjustmentEngine(flow_config=flow_config)
        self._combat = combat or CombatApplicationService(flow_config=flow_config)
        self._transparency = transparency or TransparencyFilter(random.Random(DDA_NOTIFICATION_SEED))
        self._history_limit = history_limit
        self._transparency_log_limit = transparency_log_limit
        self._clock = clock

    @property
    def store(self) -> InMemorySessionStore:
        return self._store

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -- telemetry passthrough ---------------------------------------------

    def record_input(self, session_id: str, event: InputEvent) -> bool:
        try:
            self._telemetry.record_input_event(session_id, event)
        except Exception:
            logger.warning("data_quality session=%s dropped input event", session_id, exc_info=True)
            return False
        return True

    def record_action(self, session_id: str, action: PlayerAction) -> bool:
        try:
            self._telemetry.record_player_action(session_id, action)
        except Exception:
            logger.warning("data_quality session=%s dropped player action", session_id, exc_info=True)
            return False
        return True

    # -- main loop ---------------------------------------------------------

    def update_difficulty(self, session_id: str, outcome: CombatOutcome) -> UpdateDifficultyResponse:
        try:
            self._telemetry.record_combat_result(session_id, outcome)
        except Exception:
            logger.warning("data_quality session=%s combat result not recorded", session_id, exc_info=True)

        estimate = self._estimator.estimate(session_id, outcome)
        flow_metrics = estimate.flow_metrics
        player_state = estimate.player_state
        changes: dict[Dimension, float] = {}
        visible: dict[str, float] = {}
        notifications = []
        interventions: list[Intervention] = []

        with self._store.session(session_id) as stored:
            state = stored.value
            current = state.vector
            vector = current

            if not estimate.degraded and not stored.degraded:
                vector, changes = self._adjust(session_id, flow_metrics, player_state, current)
                interventions = self._activate_relief(session_id, player_state, state)

                all_adjustments = _dimension_changes(changes)
                all_adjustments.update(
                    {intervention.type: intervention_value(intervention) for intervention in interventions}
                )
                context = TransparencyContext(
                    major_change=abs(flow_metrics.success_rate - self._flow.target_success_rate)
                    > self._flow.major_change_deviation,
                    success_rate=flow_metrics.success_rate,
                )
                decision = self._transparency.process(
                    all_adjustments, player_state, state.transparency_preference, context
                )
                visible = decision.visible
                notifications = decision.notifications
                if all_adjustments:
                    state.record_transparency(
                        self._transparency.log_entry(
                            all_adjustments,
                            decision,
                            player_state,
                            state.transparency_preference,
                            self._now_ms(),
                        ),
                        self._transparency_log_limit,
                    )

                state.vector = vector
                state.record_event(
                    AdjustmentEvent(
                        timestamp_ms=self._now_ms(),
                        trigger=self._engine.trigger_for(player_state, flow_metrics),
                        magnitude=adjustment_magnitude(current, changes),
                        player_state=player_state.primary,
                        changes=_dimension_changes(changes),
                        difficulty=vector_difficulty(vector),
                    ),
                    self._history_limit,
                )
                state.total_updates += 1

        degraded = estimate.degraded or stored.degraded
        logger.info(
            "difficulty_update session=%s state=%s success_rate=%.3f flow_score=%.3f changed=%s visible=%d degraded=%s",
            session_id,
            player_state.primary.value,
            flow_metrics.success_rate,
            flow_metrics.flow_score,
            ",".join(dimension.value for dimension in changes) or "-",
            len(visible),
            degraded,
        )
        return UpdateDifficultyResponse(
            session_id=session_id,
            difficulty_vector=vector,
            player_state=player_state,
            flow_metrics=flow_metrics,
            visible_adjustments=visible,
            notifications=notifications,
            interventions=interventions,
            degraded=degraded,
        )

    def _adjust(
        self,
        session_id: str,
        flow_metrics: FlowMetrics,
        player_state: PlayerState,
        current: DifficultyVector,
    ) -> tuple[DifficultyVector, dict[Dimension, float]]:
        try:
            adjustments = self._engine.compute(flow_metrics, player_state, current)
            return self._engine.apply(current, adjustments), adjustments.merged()
        except Exception:
            logger.exception("Difficulty computation failed for session=%s; keeping current vector", session_id)
            return current, {}

    def _activate_relief(
        self,
        session_id: str,
        player_state: PlayerState,
        state: SessionDifficultyState,
    ) -> list[Intervention]:
        if self._relief is None:
            return []
        if player_state.primary != PrimaryState.FRUSTRATED or player_state.frustration_score <= RELIEF_MIN_FRUSTRATION:
            return []
        try:
            outcome = self._relief.activate(session_id, player_state)
        except Exception:
            logger.exception("Relief activation failed for session=%s", session_id)
            return []
        if outcome.activated:
            state.interventions_activated += 1
        return outcome.interventions

    # -- encounter application ---------------------------------------------

    def apply_to_encounter(self, session_id: str, encounter: Encounter) -> ApplyEncounterResponse:
        with self._store.session(session_id) as stored:
            state = stored.value
            if stored.degraded:
                return ApplyEncounterResponse(
                    encounter=encounter,
                    difficulty_level=difficulty_level(state.vector),
                    degraded=True,
                )

            interventions = self._active_interventions(session_id)
            modified = self._combat.apply_to_encounter(
                encounter,
                state.vector,
                template=state.template_flags,
                interventions=interventions,
            )
            state.encounters_applied += 1
            vector = state.vector

        return ApplyEncounterResponse(
            encounter=modified,
            difficulty_level=difficulty_level(vector),
            active_interventions=interventions,
            degraded=stored.degraded,
        )

    def _active_interventions(self, session_id: str) -> list[Intervention]:
        if self._relief is None:
            return []
        try:
            return self._relief.active_interventions(session_id)
        except Exception:
            logger.exception("Reading active interventions failed for session=%s", session_id)
            return []

    # -- out-of-band corrections -------------------------------------------

    def apply_emergency_correction(self, session_id: str, performance: LivePerformance) -> EmergencyResponse:
        with self._store.session(session_id) as stored:
            state = stored.value
            current = state.vector
            correction = self._combat.emergency_correction(current, performance)
            stored.persist = correction.triggered
            vector = current.with_values(correction.changes) if correction.changes else current
            notifications = []

            if correction.triggered and not stored.degraded:
                adjustments = _dimension_changes(correction.changes)
                if correction.grace_period_ms is not None:
                    adjustments["grace_period"] = float(correction.grace_period_ms)
                player_state = PlayerState(
                    primary=PrimaryState.FRUSTRATED
                    if "consecutive_deaths" in correction.reasons
                    else PrimaryState.SUBOPTIMAL
                )
                decision = self._transparency.process(
                    adjustments,
                    player_state,
                    state.transparency_preference,
                    TransparencyContext(major_change=True),
                )
                notifications = decision.notifications
                state.record_transparency(
                    self._transparency.log_entry(
                        adjustments, decision, player_state, state.transparency_preference, self._now_ms()
                    ),
                    self._transparency_log_limit,
                )
                state.vector = vector
                state.record_event(
                    AdjustmentEvent(
                        timestamp_ms=self._now_ms(),
                        trigger=AdjustmentTrigger.EMERGENCY_CORRECTION,
                        magnitude=adjustment_magnitude(current, correction.changes),
                        player_state=player_state.primary,
                        changes=_dimension_changes(correction.changes),
                        difficulty=vector_difficulty(vector),
                    ),
                    self._history_limit,
                )

        if correction.triggered:
            logger.info(
                "emergency_correction session=%s reasons=%s changed=%s degraded=%s",
                session_id,
                ",".join(correction.reasons),
                ",".join(dimension.value for dimension in correction.changes) or "-",
                stored.degraded,
            )
        return EmergencyResponse(
            session_id=session_id,
            difficulty_vector=vector,
            applied=_dimension_changes(correction.changes),
            grace_period_ms=correction.grace_period_ms,
            reasons=correction.reasons,
            notifications=notifications,
            degraded=stored.degraded,
        )

    def apply_template(self, session_id: str, template: str) -> TemplateResponse:
        """Replace the vector wholesale with a preset; not subject to step limits."""
        if template.strip().lower() == ADAPTIVE_TEMPLATE:
            estimate = self._estimator.estimate(session_id, None)
            adaptive = self._combat.calculate_adaptive_template(estimate.player_state, estimate.flow_metrics)
            name, vector, flags = adaptive.name, adaptive.vector, adaptive.flags()
        else:
            name = resolve_template(template.strip().lower())
            vector = self._combat.template_vector(name)
            flags = template_flags(self._combat.template_preset(name))

        with self._store.session(session_id) as stored:
            state = stored.value
            previous = state.vector
            state.vector = vector
            state.active_template = name
            state.template_flags = flags
            changes = {
                dimension: value
                for dimension, value in vector.as_mapping().items()
                if abs(value - previous.get(dimension)) > 1e-9
            }
            state.record_event(
                AdjustmentEvent(
                    timestamp_ms=self._now_ms(),
                    trigger=AdjustmentTrigger.TEMPLATE_RESET,
                    magnitude=adjustment_magnitude(previous, changes),
                    changes=_dimension_changes(changes),
                    difficulty=vector_difficulty(vector),
                ),
                self._history_limit,
            )

        logger.info("template_applied session=%s template=%s degraded=%s", session_id, name.value, stored.degraded)
        return TemplateResponse(
            session_id=session_id,
            template=name,
            difficulty_vector=vector,
            degraded=stored.degraded,
        )

    # -- preferences and reads ---------------------------------------------

    def set_transparency_preference(self, session_id: str, preference: str) -> TransparencyPreferenceResponse:
        parsed = parse_preference(preference)
        with self._store.session(session_id) as stored:
            stored.value.transparency_preference = parsed

        return TransparencyPreferenceResponse(
            set=not stored.degraded,
            preference=parsed,
            description=PREFERENCE_DESCRIPTIONS[parsed],
            degraded=stored.degraded,
        )

    def get_player_state(self, session_id: str) -> PlayerStateResponse:
        estimate = self._estimator.estimate(session_id, None)
        stored = self._store.get(session_id)
        return PlayerStateResponse(
            session_id=session_id,
            difficulty_vector=stored.value.vector,
            player_state=estimate.player_state,
            flow_metrics=estimate.flow_metrics,
            transparency_preference=stored.value.transparency_preference,
            degraded=estimate.degraded or stored.degraded,
        )

    def get_analytics(self, session_id: str) -> AnalyticsResponse:
        stored = self._store.get(session_id)
        state = stored.value

        history = state.history
        flow_events = sum(1 for event in history if event.player_state == PrimaryState.FLOW)
        combat = CombatAnalytics(
            total_updates=state.total_updates,
            encounters_applied=state.encounters_applied,
            average_difficulty=(
                sum(event.difficulty for event in history) / len(history)
                if history
                else vector_difficulty(state.vector)
            ),
            difficulty_level=difficulty_level(state.vector),
            flow_state_ratio=flow_events / len(history) if history else 0.0,
            recent_adjustments=history[-RECENT_EVENTS:],
            current_vector=state.vector,
        )
        report = generate_report(state.transparency_log, self._now_ms())
        interventions = self._intervention_summary(session_id, state)

        return AnalyticsResponse(
            session_id=session_id,
            combat=combat,
            transparency=report,
            interventions=interventions,
            summary=AnalyticsSummary(
                difficulty_level=combat.difficulty_level,
                transparency_preference=state.transparency_preference,
                flow_state_ratio=combat.flow_state_ratio,
                interventions_activated=state.interventions_activated,
            ),
            degraded=stored.degraded,
        )

    def _intervention_summary(self, session_id: str, state: SessionDifficultyState) -> InterventionSummary:
        if self._relief is None:
            return InterventionSummary(total_activated=state.interventions_activated, relief_available=False)
        try:
            return self._relief.summary(session_id)
        except Exception:
            logger.exception("Reading intervention summary failed for session=%s", session_id)
            return InterventionSummary(total_activated=state.interventions_activated, relief_available=False)

    # -- housekeeping ------------------------------------------------------

    def purge_expired(self) -> dict[str, int]:
        """Evict idle per-session state from the store and every in-memory buffer."""
        purged = {"sessions": self._store.purge_expired()}
        for name, component in (("telemetry", self._telemetry), ("relief", self._relief)):
            if component is None:
                continue
            try:
                purged[name] = component.purge_expired()
            except Exception:
                logger.exception("Purging %s state failed", name)
        return purged

    def system_status(self) -> SystemStatusResponse:
        return SystemStatusResponse(
            status="ok" if self._store.available else "degraded",
            active_sessions=self._store.active_sessions(),
            store_timeout_ms=self._store.timeout_ms,
            default_transparency=self._store.default_preference,
            templates=list(TemplateName),
            dimensions=list(Dimension),
        )
