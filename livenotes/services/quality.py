"""Quality merge engine for the cumulative notes document.

The model's merge output is only ever a proposal. Everything that reaches the
notes store goes through :func:`normalize_notes_state` and, for automatic
synthesis, :func:`enforce_cumulative_quality`, which is additive: a section
that exists is never removed by a later chunk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

MAX_SECTIONS = 30
MAX_BULLETS_PER_SECTION = 80
HEADING_MATCH_THRESHOLD = 0.72
BULLET_DUPLICATE_THRESHOLD = 0.82
MIN_HEADING_CHARS = 3
MIN_BULLET_CHARS = 8
HEADING_KEY_TOKENS = 8
BULLET_KEY_TOKENS = 18

_STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "into",
    "is", "it", "its", "of", "on", "or", "that", "the", "their", "this", "to",
    "was", "were", "with", "we", "you", "your",
})

_BANNED_CONTENT_RE = re.compile(
    r"(exam tips?|study tips?|helpful hints?|key takeaways?|test strategy|quiz strategy)",
    re.IGNORECASE,
)
_HEADING_TAIL_RE = re.compile(r"[\s:\-\u2013\u2014]+$")
_BULLET_LEAD_RE = re.compile(r"^(?:(?:[-*\u2022\u2023\u25e6]+|\d{1,3}[.)](?=\s|$))\s*)+")
_GENERIC_HEADING_KEYS = frozenset({"notes", "lecture notes"})


@dataclass(frozen=True)
class QualityConfig:
    max_sections: int = MAX_SECTIONS
    max_bullets_per_section: int = MAX_BULLETS_PER_SECTION
    heading_match_threshold: float = HEADING_MATCH_THRESHOLD
    bullet_duplicate_threshold: float = BULLET_DUPLICATE_THRESHOLD

    @classmethod
    def from_settings(cls, settings: Any) -> "QualityConfig":
        return cls(
            max_sections=int(settings.max_sections),
            max_bullets_per_section=int(settings.max_bullets_per_section),
            heading_match_threshold=float(settings.heading_match_threshold),
            bullet_duplicate_threshold=float(settings.bullet_duplicate_threshold),
        )


DEFAULT_QUALITY = QualityConfig()


@dataclass
class Section:
    heading: str
    bullets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"heading": self.heading, "bullets": list(self.bullets)}


@dataclass
class NotesState:
    title: Optional[str] = None
    sections: List[Section] = field(default_factory=list)
    last_updated_at: Optional[str] = None
    last_chunk_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire/persisted shape (camelCase keys, same schema the model is asked for)."""
        return {
            "title": self.title,
            "sections": [s.to_dict() for s in self.sections],
            "lastUpdatedAt": self.last_updated_at,
            "lastChunkId": self.last_chunk_id,
        }

    def headings(self) -> List[str]:
        return [s.heading for s in self.sections]


# ------------------------------ Sanitizers --------------------------------
def sanitize_heading(heading: Any) -> str:
    if not isinstance(heading, str):
        return ""
    clean = " ".join(heading.split())
    clean = _HEADING_TAIL_RE.sub("", clean).strip()
    if len(clean) < MIN_HEADING_CHARS:
        return ""
    return clean


def sanitize_bullet(bullet: Any) -> str:
    if not isinstance(bullet, str):
        return ""
    clean = " ".join(bullet.split())
    clean = _BULLET_LEAD_RE.sub("", clean).strip()
    if not clean:
        return ""
    if _BANNED_CONTENT_RE.search(clean):
        return ""
    if len(clean) < MIN_BULLET_CHARS:
        return ""
    return clean


def is_banned_content(text: str) -> bool:
    return bool(_BANNED_CONTENT_RE.search(text or ""))


# ---------------------------- Canonical keys ------------------------------
def _key_tokens(text: Any, limit: int) -> List[str]:
    s = str(text or "").lower()
    s = re.sub(r"[^a-z0-9\s]", " ", s)
    toks = [t for t in s.split() if t not in _STOPWORDS]
    return toks[:limit]


def canonical_heading(heading: Any) -> str:
    return " ".join(_key_tokens(heading, HEADING_KEY_TOKENS))


def semantic_text_key(text: Any) -> str:
    return " ".join(_key_tokens(text, BULLET_KEY_TOKENS))


def token_set_similarity(a: str, b: str) -> float:
    """Shared tokens over the size of the larger token set (0.0 when either is empty)."""
    sa, sb = set(a.split()), set(b.split())
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / max(len(sa), len(sb))


def is_near_duplicate(a: str, b: str, threshold: float = BULLET_DUPLICATE_THRESHOLD) -> bool:
    if not a or not b:
        return False
    ak = semantic_text_key(a)
    bk = semantic_text_key(b)
    if not ak or not bk:
        return False
    if ak == bk:
        return True
    if ak in bk or bk in ak:
        return True
    return token_set_similarity(ak, bk) >= threshold


def dedupe_bullets(bullets: Sequence[Any], threshold: float = BULLET_DUPLICATE_THRESHOLD) -> List[str]:
    out: List[str] = []
    for raw in bullets or []:
        bullet = sanitize_bullet(raw)
        if not bullet:
            continue
        if any(is_near_duplicate(existing, bullet, threshold) for existing in out):
            continue
        out.append(bullet)
    return out


def find_matching_section(
    sections: Sequence[Section],
    heading: str,
    threshold: float = HEADING_MATCH_THRESHOLD,
) -> int:
    """Index of the section ``heading`` belongs to, or -1 for a new topic.

    An exact canonical-key match always wins; otherwise the best token-set
    score must reach ``threshold``.
    """
    target = canonical_heading(heading)
    if not target:
        return -1
    keys = [canonical_heading(s.heading) for s in sections]
    for idx, key in enumerate(keys):
        if key == target:
            return idx
    best_idx = -1
    best_score = 0.0
    for idx, key in enumerate(keys):
        score = token_set_similarity(target, key)
        if score > best_score:
            best_score = score
            best_idx = idx
    return best_idx if best_score >= threshold else -1


def is_useful_heading(heading: str) -> bool:
    key = canonical_heading(heading)
    return bool(key) and key not in _GENERIC_HEADING_KEYS


# ----------------------------- Normalization ------------------------------
def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def normalize_notes_state(raw: Any, config: QualityConfig = DEFAULT_QUALITY) -> NotesState:
    """Coerce anything into a valid :class:`NotesState`.

    Accepts the legacy ``outline``/``lastUpdatedChunkId`` field names. Invalid
    headings, bullets and empty sections are dropped, never raised on.
    Idempotent: normalizing a normalized document returns an equal one.
    """
    if isinstance(raw, NotesState):
        raw = raw.to_dict()
    notes = NotesState()
    if not isinstance(raw, dict):
        return notes

    notes.title = _optional_text(raw.get("title"))

    source = raw.get("sections")
    if not isinstance(source, list):
        source = raw.get("outline")
    if not isinstance(source, list):
        source = []

    sections: List[Section] = []
    for item in source:
        if not isinstance(item, dict):
            continue
        heading = sanitize_heading(item.get("heading"))
        bullets_in = item.get("bullets")
        bullets = [b for b in (sanitize_bullet(x) for x in bullets_in) if b] if isinstance(bullets_in, list) else []
        if heading and bullets:
            sections.append(Section(heading=heading, bullets=bullets[-config.max_bullets_per_section:]))
    notes.sections = sections[: config.max_sections]

    notes.last_updated_at = _optional_text(raw.get("lastUpdatedAt"))
    notes.last_chunk_id = _optional_text(raw.get("lastChunkId")) or _optional_text(raw.get("lastUpdatedChunkId"))
    return notes


def enforce_cumulative_quality(
    previous: Any,
    candidate: Any,
    config: QualityConfig = DEFAULT_QUALITY,
) -> NotesState:
    """Commit the candidate's sections into ``previous`` under the document invariants."""
    prev = normalize_notes_state(previous, config)
    cand = normalize_notes_state(candidate, config)
    dup = config.bullet_duplicate_threshold

    merged: List[Section] = [Section(s.heading, dedupe_bullets(s.bullets, dup)) for s in prev.sections]

    for incoming in cand.sections:
        heading = sanitize_heading(incoming.heading)
        bullets = dedupe_bullets(incoming.bullets, dup)
        if not heading or not bullets:
            continue
        idx = find_matching_section(merged, heading, config.heading_match_threshold)
        if idx >= 0:
            merged[idx].bullets = dedupe_bullets(merged[idx].bullets + bullets, dup)
        elif is_useful_heading(heading):
            merged.append(Section(heading, bullets))

    final: List[Section] = []
    for section in merged:
        heading = sanitize_heading(section.heading)
        # recency wins under the cap
        bullets = dedupe_bullets(section.bullets, dup)[-config.max_bullets_per_section:]
        if heading and bullets:
            final.append(Section(heading, bullets))

    return NotesState(
        title=prev.title or cand.title,
        sections=final[: config.max_sections],
        last_updated_at=cand.last_updated_at or prev.last_updated_at,
        last_chunk_id=cand.last_chunk_id or prev.last_chunk_id,
    )
