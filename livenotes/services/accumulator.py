"""Caption-to-chunk accumulation.

Live captions mutate constantly: the same line is re-rendered, grows a few
characters at a time, then is replaced by the next line. The accumulator keeps
a rolling transcript with one entry per caption line and groups new lines into
at most one open chunk, finalizing it when it gets old, gets long, or the
media stops.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_MEDIA_MOVE_EPSILON = 0.05


@dataclass
class TranscriptEntry:
    text: str
    start_time: float
    end_time: float
    captured_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "capturedAt": self.captured_at,
        }


@dataclass(frozen=True)
class FinalizedChunk:
    chunk_id: str
    t_start: float
    t_end: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"chunkId": self.chunk_id, "tStart": self.t_start, "tEnd": self.t_end, "text": self.text}


@dataclass
class InProgressChunk:
    chunk_id: str
    t_start: float
    t_end: float
    opened_at: float
    parts: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(self.parts)

    def snapshot(self) -> FinalizedChunk:
        return FinalizedChunk(chunk_id=self.chunk_id, t_start=self.t_start, t_end=self.t_end, text=self.text)


@dataclass
class MediaState:
    current_time: float = 0.0
    paused: bool = False
    ended: bool = False
    video_found: bool = False
    last_sample: Optional[float] = None
    last_moved_at: float = 0.0


FinalizeHandler = Callable[[FinalizedChunk, str], None]


def normalize_caption_text(raw: Any) -> str:
    text = _ZERO_WIDTH_RE.sub("", str(raw or ""))
    return " ".join(text.split())


def build_tail_context(entries: List[TranscriptEntry], media_time: float, window_seconds: float = 30.0) -> str:
    """Space-joined text of every entry that started within ``window_seconds`` of ``media_time``."""
    cutoff = media_time - window_seconds
    return " ".join(e.text for e in entries if e.start_time >= cutoff)


def _new_chunk_id(now: float) -> str:
    return f"chunk_{int(now * 1000)}_{uuid.uuid4().hex[:7]}"


class ChunkAccumulator:
    def __init__(
        self,
        on_finalize: Optional[FinalizeHandler] = None,
        *,
        chunk_seconds: float = 180.0,
        chunk_max_chars: int = 5000,
        tail_context_seconds: float = 30.0,
        update_window_seconds: float = 15.0,
        keep_entries: int = 50,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[float], str] = _new_chunk_id,
    ) -> None:
        self.on_finalize = on_finalize
        self.chunk_seconds = chunk_seconds
        self.chunk_max_chars = chunk_max_chars
        self.tail_context_seconds = tail_context_seconds
        self.update_window_seconds = update_window_seconds
        self.keep_entries = keep_entries
        self.clock = clock
        self.id_factory = id_factory
        self.logger = logging.getLogger("livenotes.capture")

        self.capturing = False
        self.captions_detected = False
        self.entries: List[TranscriptEntry] = []
        self.chunk: Optional[InProgressChunk] = None
        self.media = MediaState()
        self.last_caption_at = 0.0

    @classmethod
    def from_settings(cls, settings: Any, on_finalize: Optional[FinalizeHandler] = None) -> "ChunkAccumulator":
        return cls(
            on_finalize,
            chunk_seconds=settings.chunk_seconds,
            chunk_max_chars=settings.chunk_max_chars,
            tail_context_seconds=settings.tail_context_seconds,
            update_window_seconds=settings.update_window_seconds,
            keep_entries=settings.transcript_display_limit,
        )

    # ---- capture control ----
    def start_capture(self) -> None:
        self.capturing = True

    def pause_capture(self) -> Optional[FinalizedChunk]:
        self.capturing = False
        if self.chunk is not None:
            return self.finalize()
        return None

    def clear_session(self) -> None:
        # The open chunk is dropped, not emitted: it belongs to the cleared session.
        self.entries = []
        self.chunk = None
        self.last_caption_at = 0.0
        self.capturing = False

    # ---- media ----
    def update_media(
        self,
        current_time: Optional[float] = None,
        paused: Optional[bool] = None,
        ended: Optional[bool] = None,
        video_found: Optional[bool] = None,
        captions_detected: Optional[bool] = None,
    ) -> None:
        m = self.media
        if current_time is not None:
            t = float(current_time)
            if m.last_sample is not None and abs(t - m.last_sample) > _MEDIA_MOVE_EPSILON:
                m.last_moved_at = self.clock()
                if t > m.last_sample:
                    # playing again unless this event says otherwise
                    m.paused = False
                    m.ended = False
            m.last_sample = t
            m.current_time = t
            m.video_found = True
        if paused is not None:
            m.paused = bool(paused)
        if ended is not None:
            m.ended = bool(ended)
        if video_found is not None:
            m.video_found = bool(video_found)
        if captions_detected is not None:
            self.captions_detected = bool(captions_detected)

    # ---- captions ----
    def handle_caption(
        self,
        raw_text: Any,
        media_time: Optional[float] = None,
        paused: Optional[bool] = None,
        ended: Optional[bool] = None,
    ) -> Optional[FinalizedChunk]:
        """Apply one caption-change event; returns the chunk it finalized, if any."""
        if not self.capturing:
            return None
        text = normalize_caption_text(raw_text)
        if not text:
            return None

        self.captions_detected = True
        self.update_media(current_time=media_time, paused=paused, ended=ended)
        now = self.clock()
        t_now = self.media.current_time
        last = self.entries[-1] if self.entries else None

        if last is not None and last.text == text:
            return None

        if last is not None and text.startswith(last.text):
            last.text = text
            last.end_time = t_now
            last.captured_at = now
            self._replace_last_part(text, t_now, now)
        else:
            if last is not None and t_now >= last.start_time:
                last.end_time = t_now
            self.entries.append(TranscriptEntry(text=text, start_time=t_now, end_time=t_now, captured_at=now))
            self._append_part(text, t_now, now)
            self._trim_entries(t_now)

        self.last_caption_at = now
        if self.should_finalize(now):
            return self.finalize()
        return None

    def _trim_entries(self, t_now: float) -> None:
        """Drop the oldest entries once they are outside both the tail window and the display limit."""
        cutoff = t_now - self.tail_context_seconds
        drop = 0
        excess = len(self.entries) - max(self.keep_entries, 1)
        while drop < excess and self.entries[drop].start_time < cutoff:
            drop += 1
        if drop:
            del self.entries[:drop]

    def _open_chunk(self, t_now: float, now: float) -> InProgressChunk:
        self.chunk = InProgressChunk(chunk_id=self.id_factory(now), t_start=t_now, t_end=t_now, opened_at=now)
        return self.chunk

    def _append_part(self, text: str, t_now: float, now: float) -> None:
        chunk = self.chunk or self._open_chunk(t_now, now)
        chunk.parts.append(text)
        chunk.t_end = t_now

    def _replace_last_part(self, text: str, t_now: float, now: float) -> None:
        if self.chunk is None or not self.chunk.parts:
            # growth of a line whose chunk was already finalized
            self._append_part(text, t_now, now)
            return
        self.chunk.parts[-1] = text
        self.chunk.t_end = t_now

    def should_finalize(self, now: Optional[float] = None) -> bool:
        if self.chunk is None:
            return False
        now = self.clock() if now is None else now
        if now - self.chunk.opened_at >= self.chunk_seconds:
            return True
        if len(self.chunk.text) > self.chunk_max_chars:
            return True
        return self.media.paused or self.media.ended

    def finalize(self) -> Optional[FinalizedChunk]:
        chunk, self.chunk = self.chunk, None
        if chunk is None or not chunk.text.strip():
            return None
        finalized = chunk.snapshot()
        tail = self.tail_context()
        self.logger.info(
            "chunk finalized id=%s chars=%d span=%.1f-%.1f",
            finalized.chunk_id, len(finalized.text), finalized.t_start, finalized.t_end,
        )
        if self.on_finalize is not None:
            self.on_finalize(finalized, tail)
        return finalized

    # ---- read side ----
    def tail_context(self) -> str:
        return build_tail_context(self.entries, self.media.current_time, self.tail_context_seconds)

    def recent_entries(self, limit: int = 50) -> List[TranscriptEntry]:
        return list(self.entries[-limit:]) if limit > 0 else []

    def captions_updating(self, now: Optional[float] = None) -> bool:
        if not self.captions_detected:
            return False
        now = self.clock() if now is None else now
        window = self.update_window_seconds
        return now - self.last_caption_at <= window and now - self.media.last_moved_at <= window

    def status(self) -> Dict[str, bool]:
        return {
            "capturing": self.capturing,
            "captionsDetected": self.captions_detected,
            "captionsUpdating": self.captions_updating(),
            "videoFound": self.media.video_found,
        }

    def transcript_snapshot(self, limit: int = 50) -> Dict[str, Any]:
        chunk = self.chunk
        return {
            "transcript": [e.to_dict() for e in self.recent_entries(limit)],
            "currentChunk": chunk.snapshot().to_dict() if chunk is not None else None,
        }
