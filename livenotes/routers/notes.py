from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from ..models.notes import EventsResponse, NotesModel, SynthesisStatusResponse
from ..services.export import notes_to_markdown
from ..state import State, get_state

router = APIRouter(tags=["notes"])


@router.get("/notes", response_model=NotesModel)
async def v1_get_notes(state: State = Depends(get_state)):
    return state.notes.get().to_dict()


@router.put("/notes", response_model=NotesModel)
async def v1_put_notes(payload: NotesModel, state: State = Depends(get_state)):
    """Manual edit: replaces the document, through the same normalization as synthesis."""
    body = payload.model_dump(by_alias=True)
    body["lastUpdatedAt"] = datetime.now(timezone.utc).isoformat(timespec="seconds")
    saved = state.notes.save(body)
    state.notifier.notes_updated(saved)
    return saved.to_dict()


@router.get("/notes/export.md", response_class=PlainTextResponse)
async def v1_export_notes_markdown(state: State = Depends(get_state)) -> str:
    return notes_to_markdown(state.notes.get())


@router.get("/synthesis_status", response_model=SynthesisStatusResponse)
async def v1_synthesis_status(state: State = Depends(get_state)):
    return state.queue.status()


@router.get("/events", response_model=EventsResponse)
async def v1_events(after: int = Query(0, ge=0), state: State = Depends(get_state)):
    events = state.notifier.since(after)
    return {"events": [e.to_dict() for e in events], "last_seq": state.notifier.last_seq}
