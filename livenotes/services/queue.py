from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import Counter, deque
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from ..errors import ConfigError, ErrorKind, SynthesisError
from .accumulator import FinalizedChunk
from .ai_settings import AiSettings, resolve_call_context
from .notes import NotesPipeline
from .notifier import Notifier


@dataclass
class TaskOutcome:
    chunk_id: str
    ok: bool
    stage: Optional[str] = None
    kind: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SynthesisQueue:
    """FIFO, single-flight processing of finalized chunks.

    The worker is an asyncio task created on the first submit inside a running
    loop and exits once the queue is empty; the next submit starts a new one.
    Each task sees the notes committed by the task before it.
    """

    def __init__(
        self,
        pipeline: NotesPipeline,
        notes: Any,
        load_ai_settings: Callable[[], AiSettings],
        notifier: Notifier,
    ) -> None:
        self.pipeline = pipeline
        self.notes = notes
        self.load_ai_settings = load_ai_settings
        self.notifier = notifier
        self.logger = logging.getLogger("livenotes.synthesis")

        self._pending: Deque[Tuple[FinalizedChunk, str]] = deque()
        self._worker: Optional[asyncio.Task] = None
        self.running = False
        self.processed = 0
        self.failed = 0
        self.failures_by_kind: Counter = Counter()
        self.last_outcome: Optional[TaskOutcome] = None

    def submit(self, chunk: FinalizedChunk, tail_context: str) -> None:
        self._pending.append((chunk, tail_context))
        self.logger.info("chunk queued id=%s pending=%d", chunk.chunk_id, len(self._pending))
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # picked up by the next drain()
        if self._worker is not None and not self._worker.done() and self._worker.get_loop() is loop:
            return
        self._worker = loop.create_task(self._run())

    async def _run(self) -> None:
        while self._pending:
            chunk, tail = self._pending.popleft()
            self.running = True
            try:
                await self.process(chunk, tail)
            finally:
                self.running = False

    async def drain(self) -> None:
        """Wait until every submitted chunk has been processed."""
        while self._pending or (self._worker is not None and not self._worker.done()):
            self._ensure_worker()
            if self._worker is not None:
                await self._worker

    async def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None or worker.done():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def process(self, chunk: FinalizedChunk, tail_context: str) -> TaskOutcome:
        """Run one chunk through the pipeline; failures are reported, never raised."""
        try:
            ai = self.load_ai_settings()
            if not ai.enabled:
                raise ConfigError("AI notes are disabled.", stage="precheck")
            if not ai.api_key:
                raise ConfigError(
                    f"No API key configured for {ai.provider.value}.", stage="precheck", provider=ai.provider.value
                )
            ctx = await resolve_call_context(self.pipeline.resolver, ai.provider, ai.api_key, ai.model)
            previous = self.notes.get()
            updated = await self.pipeline.update_notes(previous, chunk, tail_context, ctx)
            try:
                saved = self.notes.save(updated)
            except sqlite3.Error as e:
                raise SynthesisError(f"could not save notes: {e}", stage="persist", provider=ctx.provider.value) from e
        except SynthesisError as e:
            return self._record_failure(chunk, e)
        except Exception as e:
            self.logger.exception("synthesis task crashed chunk=%s", chunk.chunk_id)
            return self._record_failure(chunk, SynthesisError(str(e) or type(e).__name__, kind=ErrorKind.INVARIANT))

        self.notifier.notes_updated(saved)
        outcome = TaskOutcome(chunk_id=chunk.chunk_id, ok=True)
        self.processed += 1
        self.last_outcome = outcome
        self.logger.info(
            "notes updated chunk=%s model=%s sections=%d", chunk.chunk_id, ctx.model, len(saved.sections),
            extra={"chunk_id": chunk.chunk_id, "provider": ctx.provider.value, "model": ctx.model},
        )
        return outcome

    def _record_failure(self, chunk: FinalizedChunk, err: SynthesisError) -> TaskOutcome:
        outcome = TaskOutcome(
            chunk_id=chunk.chunk_id,
            ok=False,
            stage=err.stage,
            kind=err.kind.value,
            message=err.message,
        )
        self.failed += 1
        self.failures_by_kind[err.kind.value] += 1
        self.last_outcome = outcome
        self.logger.warning(
            "synthesis failed chunk=%s stage=%s kind=%s provider=%s: %s",
            chunk.chunk_id, err.stage, err.kind.value, err.provider, err.message,
            extra={"chunk_id": chunk.chunk_id, "stage": err.stage, "kind": err.kind.value, "provider": err.provider},
        )
        self.notifier.error(err.user_message())
        return outcome

    def status(self) -> Dict[str, Any]:
        return {
            "pending": len(self._pending),
            "running": self.running,
            "processed": self.processed,
            "failed": self.failed,
            "failures_by_kind": dict(self.failures_by_kind),
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
        }
