from __future__ import annotations

from typing import List, Optional, Tuple

from .quality import NotesState, sanitize_heading

DEFAULT_TITLE = "Live Lecture Notes"


def parse_composite_heading(raw_heading: str) -> Tuple[str, str]:
    """Split ``"Main :: Sub"`` into (main, sub); deeper levels are joined with ' - '."""
    heading = sanitize_heading(raw_heading)
    if not heading:
        return "Notes", ""
    parts = [p for p in (sanitize_heading(x) for x in heading.split("::")) if p]
    if len(parts) >= 2:
        return parts[0], " - ".join(parts[1:])
    return heading, ""


def notes_to_markdown(notes: NotesState) -> str:
    lines: List[str] = [f"# {notes.title or DEFAULT_TITLE}", ""]
    if notes.last_updated_at:
        lines.extend([f"*Last updated: {notes.last_updated_at}*", ""])

    open_main: Optional[str] = None
    for section in notes.sections:
        main, sub = parse_composite_heading(section.heading)
        if sub:
            if open_main != main:
                lines.extend([f"## {main}", ""])
                open_main = main
            lines.extend([f"### {sub}", ""])
        else:
            lines.extend([f"## {main}", ""])
            open_main = None
        lines.extend(f"- {b}" for b in section.bullets)
        lines.append("")
    return "\n".join(lines)
