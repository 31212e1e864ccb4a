"""SQLite persistence for per-learner drill completion and mastery."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from .models import DrillKind, ProgressRecord

SCHEMA_VERSION = 1


class ProgressStore:
    """Database access layer for drill progress.

    Completion and mastery rows are write-once: the first timestamp recorded
    for a (learner, script, drill) wins and later writes are ignored.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create drill completion and mastery tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS drill_progress (
                    learner_id TEXT NOT NULL,
                    script_id TEXT NOT NULL,
                    drill_kind TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    PRIMARY KEY (learner_id, script_id, drill_kind)
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS script_mastery (
                    learner_id TEXT NOT NULL,
                    script_id TEXT NOT NULL,
                    mastered_at TEXT NOT NULL,
                    PRIMARY KEY (learner_id, script_id)
                )
                """)

    def load_record(self, learner_id: str, script_id: str) -> ProgressRecord:
        """Return the stored record, or an empty one on first load."""
        record = ProgressRecord(learner_id=learner_id, script_id=script_id)
        rows = self._conn.execute(
            "SELECT drill_kind, completed_at FROM drill_progress WHERE learner_id = ? AND script_id = ?",
            (learner_id, script_id),
        ).fetchall()
        for row in rows:
            kind = _parse_kind(str(row["drill_kind"]))
            if kind is not None:
                record.completed_at[kind] = datetime.fromisoformat(str(row["completed_at"]))

        mastery = self._conn.execute(
            "SELECT mastered_at FROM script_mastery WHERE learner_id = ? AND script_id = ?",
            (learner_id, script_id),
        ).fetchone()
        if mastery is not None:
            record.mastered_at = datetime.fromisoformat(str(mastery["mastered_at"]))
        return record

    def save_completion(self, learner_id: str, script_id: str, kind: DrillKind, completed_at: datetime) -> bool:
        """Record a drill completion; return False when it was already stored."""
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT OR IGNORE INTO drill_progress (learner_id, script_id, drill_kind, completed_at)
                VALUES (?, ?, ?, ?)
                """,
                (learner_id, script_id, str(kind), completed_at.isoformat()),
            )
        return cursor.rowcount > 0

    def save_mastery(self, learner_id: str, script_id: str, mastered_at: datetime) -> bool:
        """Record the mastery milestone; return False when it was already stored."""
        with self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO script_mastery (learner_id, script_id, mastered_at) VALUES (?, ?, ?)",
                (learner_id, script_id, mastered_at.isoformat()),
            )
        return cursor.rowcount > 0

    def list_records(self, learner_id: str) -> list[ProgressRecord]:
        """Return every record for a learner ordered by script id."""
        rows = self._conn.execute(
            """
            SELECT script_id FROM drill_progress WHERE learner_id = ?
            UNION
            SELECT script_id FROM script_mastery WHERE learner_id = ?
            ORDER BY script_id
            """,
            (learner_id, learner_id),
        ).fetchall()
        return [self.load_record(learner_id, str(row["script_id"])) for row in rows]

    async def load(self, learner_id: str, script_id: str) -> ProgressRecord:
        return self.load_record(learner_id, script_id)

    async def write_completion(self, learner_id: str, script_id: str, kind: DrillKind, at: datetime) -> None:
        self.save_completion(learner_id, script_id, kind, at)

    async def write_mastery(self, learner_id: str, script_id: str, at: datetime) -> None:
        self.save_mastery(learner_id, script_id, at)

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _parse_kind(value: str) -> DrillKind | None:
    try:
        return DrillKind(value)
    except ValueError:
        return None
