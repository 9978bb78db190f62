from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from fastapi import Request

from .config import Settings
from .db import AiSettingsRepository, NotesRepository, initialize_db, resolve_db_path
from .services.accumulator import ChunkAccumulator
from .services.ai_settings import AiSettings, build_ai_settings
from .services.model_resolution import ModelResolver
from .services.notes import NotesPipeline
from .services.notifier import Notifier
from .services.providers import ModelProvider, Provider, build_providers
from .services.quality import QualityConfig
from .services.queue import SynthesisQueue
from .services.ratelimit import RateLimiter


@dataclass
class State:
    """Mutable application state shared across services.

    Attached to FastAPI's app.state; every mutation happens on the event loop.
    """

    settings: Settings
    db_path: Path
    notifier: Notifier
    notes: NotesRepository
    ai_store: AiSettingsRepository
    resolver: ModelResolver
    limiter: RateLimiter
    pipeline: NotesPipeline
    queue: SynthesisQueue
    accumulator: ChunkAccumulator

    def ai_settings(self) -> AiSettings:
        return build_ai_settings(self.ai_store.load(), self.settings)

    def publish_status(self) -> None:
        self.notifier.status_updated(self.accumulator.status())

    def publish_transcript(self) -> None:
        self.notifier.transcript_updated(
            self.accumulator.transcript_snapshot(self.settings.transcript_display_limit)
        )


def build_state(settings: Settings, providers: Optional[Dict[Provider, ModelProvider]] = None) -> State:
    db_path = resolve_db_path(settings.db_path)
    initialize_db(db_path)

    notifier = Notifier()
    notes = NotesRepository(db_path, quality=QualityConfig.from_settings(settings))
    ai_store = AiSettingsRepository(db_path)
    resolver = ModelResolver(
        providers or build_providers(settings.http_timeout_seconds),
        ttl_seconds=settings.model_cache_ttl_seconds,
    )
    limiter = RateLimiter(settings.min_llm_interval_ms / 1000.0)
    pipeline = NotesPipeline.from_settings(settings, resolver, limiter)

    def _load_ai() -> AiSettings:
        return build_ai_settings(ai_store.load(), settings)

    queue = SynthesisQueue(pipeline, notes, _load_ai, notifier)
    accumulator = ChunkAccumulator.from_settings(settings, on_finalize=queue.submit)
    return State(
        settings=settings,
        db_path=db_path,
        notifier=notifier,
        notes=notes,
        ai_store=ai_store,
        resolver=resolver,
        limiter=limiter,
        pipeline=pipeline,
        queue=queue,
        accumulator=accumulator,
    )


def get_state(request: Request) -> State:  # FastAPI dependency helper
    return request.app.state.state
