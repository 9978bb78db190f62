from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SectionModel(BaseModel):
    heading: str
    bullets: List[str] = Field(default_factory=list)


class NotesModel(BaseModel):
    """Wire shape of the notes document (camelCase, as stored)."""

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    sections: List[SectionModel] = Field(default_factory=list)
    last_updated_at: Optional[str] = Field(default=None, alias="lastUpdatedAt")
    last_chunk_id: Optional[str] = Field(default=None, alias="lastChunkId")


class EventModel(BaseModel):
    seq: int
    type: str
    payload: Any = None
    ts: float


class EventsResponse(BaseModel):
    events: List[EventModel]
    last_seq: int


class TaskOutcomeModel(BaseModel):
    chunk_id: str
    ok: bool
    stage: Optional[str] = None
    kind: Optional[str] = None
    message: Optional[str] = None


class SynthesisStatusResponse(BaseModel):
    pending: int
    running: bool
    processed: int
    failed: int
    failures_by_kind: Dict[str, int] = Field(default_factory=dict)
    last_outcome: Optional[TaskOutcomeModel] = None
