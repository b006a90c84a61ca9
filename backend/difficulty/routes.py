"""HTTP and websocket routes for the adaptive combat difficulty controller."""

from __future__ import annotations

import asyncio
import random
import time

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from difficulty.exceptions import InvalidPreferenceError, UnknownTemplateError
from difficulty.models import (
    AnalyticsResponse,
    ApplyEncounterRequest,
    ApplyEncounterResponse,
    DifficultyStreamError,
    EmergencyRequest,
    EmergencyResponse,
    LiveCorrectionUpdate,
    LivePerformanceFrame,
    PlayerStateResponse,
    RecordActionRequest,
    RecordInputRequest,
    SystemStatusResponse,
    TemplateRequest,
    TemplateResponse,
    TransparencyPreferenceRequest,
    TransparencyPreferenceResponse,
    UpdateDifficultyRequest,
    UpdateDifficultyResponse,
)
from difficulty.services.controller import DifficultyController
from difficulty.services.relief_service import InMemoryReliefSystem
from difficulty.services.session_store import InMemorySessionStore
from difficulty.services.telemetry_service import InMemoryTelemetryAggregator
from shared.config.app_config import DDA_ENCOUNTER_WINDOW, DDA_NOTIFICATION_SEED
from shared.config.logging import get_logger

router = APIRouter(
    prefix="/difficulty",
    tags=["difficulty"],
    responses={404: {"description": "Not found"}},
)

logger = get_logger("difficulty.routes")

telemetry_service = InMemoryTelemetryAggregator(encounter_window=DDA_ENCOUNTER_WINDOW)
relief_service = InMemoryReliefSystem(rng=random.Random(DDA_NOTIFICATION_SEED))
session_store = InMemorySessionStore()
controller = DifficultyController(
    store=session_store,
    telemetry=telemetry_service,
    relief=relief_service,
)


@router.post("/update", response_model=UpdateDifficultyResponse)
def update_difficulty(request: UpdateDifficultyRequest) -> UpdateDifficultyResponse:
    """Feed one combat outcome through the control loop."""
    return controller.update_difficulty(request.session_id, request.combat_outcome)


@router.post("/apply-combat", response_model=ApplyEncounterResponse)
def apply_combat(request: ApplyEncounterRequest) -> ApplyEncounterResponse:
    """Return the encounter scaled to the session's current difficulty."""
    return controller.apply_to_encounter(request.session_id, request.encounter)


@router.post("/record-input")
def record_input(request: RecordInputRequest) -> dict[str, bool]:
    return {"recorded": controller.record_input(request.session_id, request.input)}


@router.post("/record-action")
def record_action(request: RecordActionRequest) -> dict[str, bool]:
    return {"recorded": controller.record_action(request.session_id, request.action)}


@router.get("/player-state/{session_id}", response_model=PlayerStateResponse)
def player_state(session_id: str) -> PlayerStateResponse:
    return controller.get_player_state(session_id)


@router.get("/analytics/{session_id}", response_model=AnalyticsResponse)
def analytics(session_id: str) -> AnalyticsResponse:
    return controller.get_analytics(session_id)


@router.post("/transparency/preferences", response_model=TransparencyPreferenceResponse)
def set_transparency_preference(request: TransparencyPreferenceRequest) -> TransparencyPreferenceResponse:
    try:
        return controller.set_transparency_preference(request.session_id, request.preference)
    except InvalidPreferenceError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/emergency", response_model=EmergencyResponse)
def emergency_correction(request: EmergencyRequest) -> EmergencyResponse:
    """Out-of-band correction for severe in-encounter distress."""
    return controller.apply_emergency_correction(request.session_id, request.performance)


@router.post("/template", response_model=TemplateResponse)
def apply_template(request: TemplateRequest) -> TemplateResponse:
    try:
        return controller.apply_template(request.session_id, request.template)
    except UnknownTemplateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/system/status", response_model=SystemStatusResponse)
def system_status() -> SystemStatusResponse:
    return controller.system_status()


@router.websocket("/ws")
async def difficulty_websocket(websocket: WebSocket):
    """Stream live in-encounter performance frames into the emergency path."""
    await websocket.accept()
    session_id = websocket.query_params.get("session_id", "").strip()
    if not session_id:
        await websocket.send_json(
            DifficultyStreamError(
                code="INVALID_FRAME",
                message="A session_id query parameter is required.",
                recoverable=False,
            ).model_dump()
        )
        await websocket.close()
        return

    try:
        while True:
            try:
                incoming = await websocket.receive_json()
                frame = LivePerformanceFrame.model_validate(incoming)
            except ValidationError as exc:
                await websocket.send_json(
                    DifficultyStreamError(
                        code="INVALID_FRAME",
                        message=f"Invalid frame payload: {exc.errors(include_url=False)}",
                        recoverable=True,
                    ).model_dump()
                )
                continue
            except WebSocketDisconnect:
                raise
            except Exception as exc:
                await websocket.send_json(
                    DifficultyStreamError(
                        code="INVALID_FRAME",
                        message=f"Unable to parse websocket payload: {exc}",
                        recoverable=True,
                    ).model_dump()
                )
                continue

            start_mono = time.monotonic()
            correction = await asyncio.to_thread(
                controller.apply_emergency_correction, session_id, frame.performance
            )
            emergency = bool(correction.applied) or correction.grace_period_ms is not None

            if correction.degraded:
                await websocket.send_json(
                    DifficultyStreamError(
                        code="STORE_UNAVAILABLE",
                        message="Session store unavailable; correction was not persisted.",
                        recoverable=True,
                    ).model_dump()
                )

            update = LiveCorrectionUpdate(
                frame_id=frame.frame_id,
                emergency=emergency,
                correction=correction if emergency else None,
                timestamp_ms=int(time.time() * 1000),
            )
            await websocket.send_json(update.model_dump(mode="json"))

            logger.info(
                "live_frame session=%s frame_id=%s emergency=%s latency_ms=%d",
                session_id,
                frame.frame_id,
                emergency,
                max(0, int((time.monotonic() - start_mono) * 1000.0)),
            )

    except WebSocketDisconnect as exc:
        logger.info("Difficulty websocket disconnected: code=%s", exc.code)
    except Exception:
        logger.exception("Unhandled difficulty websocket error")
        try:
            await websocket.send_json(
                DifficultyStreamError(
                    code="INTERNAL_ERROR",
                    message="Unexpected server error in difficulty stream.",
                    recoverable=False,
                ).model_dump()
            )
        except Exception:
            logger.debug("Could not deliver error frame; socket already closed")
    finally:
        try:
            await websocket.close()
        except Exception:
            logger.debug("Difficulty websocket already closed")
