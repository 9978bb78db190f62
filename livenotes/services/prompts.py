from __future__ import annotations

import json
from typing import Any, Dict, List

NOTES_SCHEMA = (
    '{ "title": string | null, "sections": [{ "heading": string, "bullets": string[] }], '
    '"lastUpdatedAt": string | null, "lastChunkId": string | null }'
)

CLEAN_SYSTEM_PROMPT = "\n".join([
    "You clean noisy live lecture captions into clear academic text.",
    "Rules:",
    "- Remove filler words, false starts, and casual backchanneling.",
    "- Reconstruct broken sentences and punctuation.",
    "- Keep only lecture substance: definitions, methods, examples, comparisons, conclusions.",
    "- Preserve technical terms, equations, symbols, and numeric values exactly.",
    "- Do NOT summarize or shorten substantive content.",
    "- Output plain text paragraphs only (no bullets, no headings).",
])

MERGE_SYSTEM_PROMPT = "\n".join([
    "You are an expert lecture note-taker maintaining one cumulative lecture note document.",
    "You will merge new cleaned transcript text into existing notes JSON.",
    "",
    "Strict rules:",
    "- Use only transcript-supported content.",
    "- No exam tips, study tips, helpful hints, or key takeaways.",
    "- Keep headings stable unless a clearly new topic appears.",
    "- Avoid duplicates; do not re-add an existing point.",
    "- Prefer appending concise technical bullets to existing sections.",
    '- Use specific concept headings instead of generic labels like "Lecture 6" alone.',
    '- When useful, encode hierarchy in heading text as "Main Topic :: Subtopic".',
    "- Keep sections focused: split broad sections into narrower subtopics when they become too large.",
    "- Keep bullets concise and factual.",
    "- Return ONLY valid JSON matching the schema exactly.",
])

REPAIR_SYSTEM_PROMPT = "\n".join([
    "Repair invalid JSON output.",
    "Return only valid JSON. No markdown. No prose.",
    "Target schema exactly:",
    NOTES_SCHEMA,
])

PROBE_SYSTEM_PROMPT = "Return exactly: OK"
PROBE_USER_PROMPT = "Reply with OK only."


def build_clean_user_prompt(chunk_text: str, tail_context: str) -> str:
    return "\n".join([
        "Tail context (may overlap):",
        tail_context or "",
        "",
        "New caption chunk:",
        chunk_text,
    ])


def build_merge_user_prompt(notes: Dict[str, Any], headings: List[str], clean_text: str) -> str:
    return "\n".join([
        "Schema:",
        NOTES_SCHEMA,
        "",
        "Existing heading inventory:",
        " | ".join(headings) or "(none)",
        "",
        "Existing notes JSON:",
        json.dumps(notes, indent=2, ensure_ascii=False),
        "",
        "New cleaned transcript:",
        clean_text,
    ])


def build_repair_user_prompt(invalid_text: str) -> str:
    return "\n".join(["Fix this invalid JSON output:", invalid_text])
