"""
db.py: SQLite helpers for the live notes worker

This module provides:
  - Database path setup
  - Connection helper
  - Initialization of required tables
  - Repositories for the notes document and the stored AI settings
"""

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .services.quality import DEFAULT_QUALITY, NotesState, QualityConfig, normalize_notes_state

DEFAULT_SESSION = "default"

# Path to the SQLite database file (beside the package unless overridden)
_DB_PATH_ENV = os.getenv("LIVENOTES_DB_PATH")
if _DB_PATH_ENV:
    DB_PATH = Path(_DB_PATH_ENV).expanduser()
else:
    DB_PATH = Path(__file__).parent / "livenotes.db"
DB_PATH = DB_PATH.resolve()

PathLike = Union[str, Path]


def resolve_db_path(configured: Optional[str] = None) -> Path:
    if configured:
        return Path(configured).expanduser().resolve()
    return DB_PATH


def get_connection(db_path: Optional[PathLike] = None) -> sqlite3.Connection:
    """Open a SQLite connection to the DB file, creating its directory if needed."""
    path = Path(db_path) if db_path else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))


def initialize_db(db_path: Optional[PathLike] = None) -> None:
    """
    Create tables if they don't exist.
    This is idempotent and safe to call on startup.
    """
    with get_connection(db_path) as conn:
        cur = conn.cursor()

        # notes_state: one normalized notes document per session
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS notes_state (
                session    TEXT PRIMARY KEY,
                body       TEXT NOT NULL,   -- NotesState JSON (camelCase keys)
                updated_at TEXT             -- ISO8601 (UTC) of the last write
            );
            """
        )

        # ai_settings: single row holding the stored settings record
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_settings (
                id   INTEGER PRIMARY KEY CHECK (id = 1),
                body TEXT NOT NULL
            );
            """
        )
        conn.commit()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class NotesRepository:
    """Persisted notes document. Reads and writes always go through normalization."""

    def __init__(
        self,
        db_path: Optional[PathLike] = None,
        session: str = DEFAULT_SESSION,
        quality: QualityConfig = DEFAULT_QUALITY,
    ) -> None:
        self.db_path = db_path
        self.session = session
        self.quality = quality

    def get(self) -> NotesState:
        with get_connection(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute("SELECT body FROM notes_state WHERE session = ?", (self.session,))
            row = cur.fetchone()
        if row is None:
            return NotesState()
        try:
            raw = json.loads(row[0])
        except ValueError:
            return NotesState()
        return normalize_notes_state(raw, self.quality)

    def save(self, notes: Any) -> NotesState:
        normalized = normalize_notes_state(notes, self.quality)
        body = json.dumps(normalized.to_dict(), ensure_ascii=False)
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO notes_state (session, body, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(session) DO UPDATE SET body=excluded.body, updated_at=excluded.updated_at
                """,
                (self.session, body, _utc_now_iso()),
            )
        return normalized

    def clear(self) -> NotesState:
        with get_connection(self.db_path) as conn:
            conn.execute("DELETE FROM notes_state WHERE session = ?", (self.session,))
        return NotesState()


class AiSettingsRepository:
    def __init__(self, db_path: Optional[PathLike] = None) -> None:
        self.db_path = db_path

    def load(self) -> Dict[str, Any]:
        with get_connection(self.db_path) as conn:
            cur = conn.cursor()
            cur.execute("SELECT body FROM ai_settings WHERE id = 1")
            row = cur.fetchone()
        if row is None:
            return {}
        try:
            data = json.loads(row[0])
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, record: Dict[str, Any]) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO ai_settings (id, body) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET body=excluded.body
                """,
                (json.dumps(record),),
            )
