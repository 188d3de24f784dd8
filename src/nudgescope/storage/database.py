"""SQLite database schema and connection management."""

from __future__ import annotations

import sqlite3
from pathlib import Path

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Support-call transcripts and their analysis results
CREATE TABLE IF NOT EXISTS transcripts (
    consultation_number  TEXT PRIMARY KEY,
    consultant           TEXT,
    consultation_content TEXT NOT NULL,
    consultation_time    TEXT NOT NULL,
    response1            TEXT,   -- main inquiry summary
    response2            TEXT,   -- nudge present (Y/N)
    response3            TEXT,   -- nudge type
    response4            TEXT,   -- quoted nudge content
    response5            TEXT,   -- customer responded (Y/N)
    response6            TEXT,   -- inappropriate nudge (Y/N)
    response7            TEXT,   -- inappropriate reason
    analysis_status      TEXT NOT NULL DEFAULT 'PENDING',
    analysis_date        TEXT,
    created_date         TEXT DEFAULT (datetime('now')),
    updated_date         TEXT DEFAULT (datetime('now'))
);

-- Cross-process lease for the backlog run, always exactly one row
CREATE TABLE IF NOT EXISTS batch_lock (
    id           INTEGER PRIMARY KEY CHECK (id = 1),
    holder       TEXT,
    acquired_at  TEXT,
    heartbeat_at TEXT
);
INSERT OR IGNORE INTO batch_lock (id) VALUES (1);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_transcripts_status_time
    ON transcripts(analysis_status, consultation_time);
CREATE INDEX IF NOT EXISTS idx_transcripts_consultant ON transcripts(consultant);
"""


class Database:
    """SQLite database connection manager.

    Each instance owns one connection. Open a separate instance per thread
    and per unit of work that must commit independently.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), timeout=30)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self):
        """Create all tables if they don't exist."""
        self.conn.executescript(SCHEMA_SQL)
        row = self.conn.execute(
            "SELECT version FROM schema_version LIMIT 1"
        ).fetchone()
        if row is None:
            self.conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
        self.conn.commit()

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
