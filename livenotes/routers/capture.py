from __future__ import annotations

from fastapi import APIRouter, Depends

from ..models.capture import (
    CaptionEvent,
    CaptionResponse,
    CaptureStatusResponse,
    MediaUpdate,
    StartStopResponse,
    TranscriptResponse,
)
from ..state import State, get_state

router = APIRouter(tags=["capture"])


@router.post("/start_capture", response_model=StartStopResponse)
async def v1_start_capture(state: State = Depends(get_state)) -> StartStopResponse:
    state.accumulator.start_capture()
    state.publish_status()
    return StartStopResponse(ok=True, message="capture started", capturing=True)


@router.post("/pause_capture", response_model=StartStopResponse)
async def v1_pause_capture(state: State = Depends(get_state)) -> StartStopResponse:
    chunk = state.accumulator.pause_capture()
    state.publish_status()
    state.publish_transcript()
    return StartStopResponse(
        ok=True,
        message="capture paused",
        capturing=False,
        finalized_chunk_id=chunk.chunk_id if chunk else None,
    )


@router.post("/clear_session", response_model=StartStopResponse)
async def v1_clear_session(state: State = Depends(get_state)) -> StartStopResponse:
    state.accumulator.clear_session()
    notes = state.notes.clear()
    state.notifier.notes_updated(notes)
    state.publish_status()
    state.publish_transcript()
    return StartStopResponse(ok=True, message="session cleared", capturing=False)


@router.post("/captions", response_model=CaptionResponse)
async def v1_caption(payload: CaptionEvent, state: State = Depends(get_state)) -> CaptionResponse:
    acc = state.accumulator
    chunk = acc.handle_caption(payload.text, media_time=payload.media_time, paused=payload.paused, ended=payload.ended)
    state.publish_transcript()
    state.publish_status()
    return CaptionResponse(
        ok=True,
        capturing=acc.capturing,
        entries=len(acc.entries),
        finalized_chunk_id=chunk.chunk_id if chunk else None,
    )


@router.post("/media", response_model=CaptureStatusResponse)
async def v1_media(payload: MediaUpdate, state: State = Depends(get_state)):
    acc = state.accumulator
    acc.update_media(
        current_time=payload.current_time,
        paused=payload.paused,
        ended=payload.ended,
        video_found=payload.video_found,
        captions_detected=payload.captions_detected,
    )
    # a pause or a stale chunk is also picked up between caption events
    if acc.should_finalize():
        acc.finalize()
        state.publish_transcript()
    status = acc.status()
    state.notifier.status_updated(status)
    return status


@router.get("/capture_status", response_model=CaptureStatusResponse)
async def v1_capture_status(state: State = Depends(get_state)):
    status = state.accumulator.status()
    state.notifier.status_updated(status)
    return status


@router.get("/transcript", response_model=TranscriptResponse)
async def v1_transcript(state: State = Depends(get_state)):
    return state.accumulator.transcript_snapshot(state.settings.transcript_display_limit)
