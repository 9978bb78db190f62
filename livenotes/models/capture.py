from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CaptionEvent(BaseModel):
    text: str = Field(description="Raw caption text as currently displayed")
    media_time: Optional[float] = Field(default=None, ge=0, description="Media position in seconds")
    paused: Optional[bool] = None
    ended: Optional[bool] = None


class MediaUpdate(BaseModel):
    current_time: Optional[float] = Field(default=None, ge=0)
    paused: Optional[bool] = None
    ended: Optional[bool] = None
    video_found: Optional[bool] = None
    captions_detected: Optional[bool] = None


class CaptureStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    capturing: bool
    captions_detected: bool = Field(alias="captionsDetected")
    captions_updating: bool = Field(alias="captionsUpdating")
    video_found: bool = Field(alias="videoFound")


class StartStopResponse(BaseModel):
    ok: bool
    message: str
    capturing: bool
    finalized_chunk_id: Optional[str] = None


class CaptionResponse(BaseModel):
    ok: bool
    capturing: bool
    entries: int
    finalized_chunk_id: Optional[str] = None


class TranscriptEntryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    start_time: float = Field(alias="startTime")
    end_time: float = Field(alias="endTime")
    captured_at: float = Field(alias="capturedAt")


class ChunkModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunk_id: str = Field(alias="chunkId")
    t_start: float = Field(alias="tStart")
    t_end: float = Field(alias="tEnd")
    text: str


class TranscriptResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: List[TranscriptEntryModel]
    current_chunk: Optional[ChunkModel] = Field(default=None, alias="currentChunk")
