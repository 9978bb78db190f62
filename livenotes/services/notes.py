from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..errors import ModelNotFoundError, NotesParseError, SynthesisError
from .accumulator import FinalizedChunk
from .model_resolution import AICallContext, ModelResolver
from .prompts import (
    CLEAN_SYSTEM_PROMPT,
    MERGE_SYSTEM_PROMPT,
    PROBE_SYSTEM_PROMPT,
    PROBE_USER_PROMPT,
    REPAIR_SYSTEM_PROMPT,
    build_clean_user_prompt,
    build_merge_user_prompt,
    build_repair_user_prompt,
)
from .providers import CompletionRequest
from .quality import (
    BULLET_DUPLICATE_THRESHOLD,
    DEFAULT_QUALITY,
    NotesState,
    QualityConfig,
    enforce_cumulative_quality,
    is_near_duplicate,
    normalize_notes_state,
)
from .ratelimit import RateLimiter


# --------------------------- Local tightening -----------------------------
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_LEADING_GLYPH_RE = re.compile(r"^\s*[-*•]+\s*")
_FILLER_ONLY_RE = re.compile(
    r"^(uh+|um+|hmm+|mm+|yeah+|okay+|ok+|right+|so+|well+|like+|you know|i mean|alright|all right|let's see|huh)"
    r"[\s,.\-!?]*$",
    re.IGNORECASE,
)
_FILLER_WORDS = frozenset({"uh", "um", "hmm", "yeah", "okay", "ok", "right", "so", "well", "like"})


def normalize_sentence(text: Any) -> str:
    s = " ".join(str(text or "").split())
    return _LEADING_GLYPH_RE.sub("", s).strip()


def is_filler_sentence(sentence: str) -> bool:
    if not sentence:
        return True
    if _FILLER_ONLY_RE.match(sentence):
        return True
    toks = re.sub(r"[^a-z0-9\s]", " ", sentence.lower()).split()
    if not toks:
        return True
    if len(toks) <= 2:
        return all(t in _FILLER_WORDS for t in toks)
    return False


def tighten_clean_transcript(text: Any, threshold: float = BULLET_DUPLICATE_THRESHOLD) -> str:
    """Deterministic pass over Stage 1 output: drop filler and back-to-back repeats."""
    if not isinstance(text, str) or not text:
        return ""
    parts: List[str] = []
    for line in re.split(r"\n+", text.replace("\r", "\n")):
        parts.extend(_SENTENCE_SPLIT_RE.split(line))

    kept: List[str] = []
    for part in parts:
        sentence = normalize_sentence(part)
        if not sentence or is_filler_sentence(sentence):
            continue
        if kept and is_near_duplicate(kept[-1], sentence, threshold):
            continue
        kept.append(sentence)
    return " ".join(" ".join(kept).split())


# ---------------------------- JSON recovery -------------------------------
_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


def try_parse_json(s: Any) -> Optional[Dict[str, Any]]:
    """Attempt to extract and parse a JSON object from model output.

    Strips code fences and tries the whole string first, then the span from
    the first '{' to the last '}'.
    """
    if not isinstance(s, str) or not s.strip():
        return None
    stripped = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", s.strip())).strip()
    try:
        obj = json.loads(stripped)
        if isinstance(obj, dict):
            return obj
    except ValueError:
        pass
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        try:
            obj = json.loads(stripped[start : end + 1])
        except ValueError:
            return None
        if isinstance(obj, dict):
            return obj
    return None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


# ------------------------------- Pipeline ---------------------------------
class NotesPipeline:
    """Clean -> merge -> validate/repair -> quality merge, for one chunk at a time."""

    def __init__(
        self,
        resolver: ModelResolver,
        limiter: RateLimiter,
        *,
        quality: QualityConfig = DEFAULT_QUALITY,
        clean_temperature: float = 0.15,
        merge_temperature: float = 0.05,
        repair_temperature: float = 0.0,
        now: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self.resolver = resolver
        self.limiter = limiter
        self.quality = quality
        self.clean_temperature = clean_temperature
        self.merge_temperature = merge_temperature
        self.repair_temperature = repair_temperature
        self.now = now
        self.logger = logging.getLogger("livenotes.synthesis")

    @classmethod
    def from_settings(cls, settings: Any, resolver: ModelResolver, limiter: RateLimiter) -> "NotesPipeline":
        return cls(
            resolver,
            limiter,
            quality=QualityConfig.from_settings(settings),
            clean_temperature=settings.clean_temperature,
            merge_temperature=settings.merge_temperature,
            repair_temperature=settings.repair_temperature,
        )

    async def _call(
        self,
        ctx: AICallContext,
        stage: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        json_mode: bool = False,
    ) -> str:
        req = CompletionRequest(system_prompt, user_prompt, temperature=temperature, json_mode=json_mode)
        try:
            try:
                return await self._complete(ctx, req)
            except ModelNotFoundError:
                fallback = await asyncio.to_thread(
                    self.resolver.resolve_fallback, ctx.provider, ctx.api_key, ctx.model
                )
                if not fallback:
                    raise
                self.logger.warning(
                    "model not found provider=%s model=%s; retrying with %s", ctx.provider.value, ctx.model, fallback,
                    extra={"stage": stage, "provider": ctx.provider.value, "model": fallback},
                )
                ctx.model = fallback
                return await self._complete(ctx, req)
        except SynthesisError as e:
            e.stage = e.stage or stage
            e.provider = e.provider or ctx.provider.value
            raise

    async def _complete(self, ctx: AICallContext, req: CompletionRequest) -> str:
        async with self.limiter.slot():
            return await asyncio.to_thread(self.resolver.complete, ctx, req)

    async def clean(self, chunk_text: str, tail_context: str, ctx: AICallContext) -> str:
        return await self._call(
            ctx, "clean", CLEAN_SYSTEM_PROMPT, build_clean_user_prompt(chunk_text, tail_context), self.clean_temperature
        )

    async def merge(self, previous: NotesState, clean_text: str, ctx: AICallContext) -> str:
        user = build_merge_user_prompt(previous.to_dict(), previous.headings(), clean_text)
        return await self._call(ctx, "merge", MERGE_SYSTEM_PROMPT, user, self.merge_temperature, json_mode=True)

    async def repair(self, invalid_text: str, ctx: AICallContext) -> str:
        return await self._call(
            ctx, "repair", REPAIR_SYSTEM_PROMPT, build_repair_user_prompt(invalid_text), self.repair_temperature,
            json_mode=True,
        )

    async def probe(self, ctx: AICallContext) -> str:
        return await self._call(ctx, "probe", PROBE_SYSTEM_PROMPT, PROBE_USER_PROMPT, 0.0)

    async def parse_and_validate(self, raw: str, ctx: AICallContext) -> NotesState:
        parsed = try_parse_json(raw)
        if parsed is not None:
            return normalize_notes_state(parsed, self.quality)
        self.logger.warning("merge output was not valid JSON; requesting repair (%d chars)", len(raw or ""))
        repaired = try_parse_json(await self.repair(raw, ctx))
        if repaired is None:
            raise NotesParseError(
                "Model output could not be parsed as valid JSON.", stage="repair", provider=ctx.provider.value
            )
        return normalize_notes_state(repaired, self.quality)

    async def update_notes(
        self,
        previous: Any,
        chunk: FinalizedChunk,
        tail_context: str,
        ctx: AICallContext,
    ) -> NotesState:
        prev = normalize_notes_state(previous, self.quality)
        cleaned_raw = await self.clean(chunk.text, tail_context or "", ctx)
        clean_text = tighten_clean_transcript(cleaned_raw, self.quality.bullet_duplicate_threshold)
        if not clean_text:
            # heard but filtered: only the bookkeeping advances
            return replace(prev, last_chunk_id=chunk.chunk_id or prev.last_chunk_id)

        merged_raw = await self.merge(prev, clean_text, ctx)
        candidate = await self.parse_and_validate(merged_raw, ctx)
        result = enforce_cumulative_quality(prev, candidate, self.quality)
        result.last_updated_at = self.now()
        result.last_chunk_id = chunk.chunk_id or result.last_chunk_id
        return result
