from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from .quality import NotesState


@dataclass
class Event:
    seq: int
    type: str
    payload: Any
    ts: float

    def to_dict(self) -> Dict[str, Any]:
        return {"seq": self.seq, "type": self.type, "payload": self.payload, "ts": self.ts}


class Notifier:
    """Bounded in-memory event log that UI clients poll with ``since(seq)``."""

    def __init__(self, max_events: int = 200, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._events: Deque[Event] = deque(maxlen=max_events)
        self._seq = 0
        self._last_status: Optional[Dict[str, bool]] = None

    @property
    def last_seq(self) -> int:
        return self._seq

    def publish(self, type_: str, payload: Any) -> Event:
        self._seq += 1
        event = Event(seq=self._seq, type=type_, payload=payload, ts=self.clock())
        self._events.append(event)
        return event

    def since(self, after: int = 0) -> List[Event]:
        return [e for e in self._events if e.seq > after]

    def notes_updated(self, notes: NotesState) -> Event:
        return self.publish("notes_updated", notes.to_dict())

    def error(self, message: str) -> Event:
        return self.publish("error", {"message": message})

    def transcript_updated(self, snapshot: Dict[str, Any]) -> Event:
        return self.publish("transcript_updated", snapshot)

    def status_updated(self, status: Dict[str, bool]) -> Optional[Event]:
        """Publish only when the status differs from the last one published."""
        if status == self._last_status:
            return None
        self._last_status = dict(status)
        return self.publish("status_updated", dict(status))
