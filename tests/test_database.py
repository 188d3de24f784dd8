"""Tests for nudgescope.storage.database."""

from __future__ import annotations

from nudgescope.storage.database import SCHEMA_VERSION, Database


class TestDatabase:
    def test_creates_tables(self, tmp_db):
        tables = {
            row[0]
            for row in tmp_db.conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        }
        assert {"transcripts", "schema_version"} <= tables

    def test_schema_version_written_once(self, db_path):
        with Database(db_path):
            pass
        with Database(db_path) as db:
            rows = db.conn.execute("SELECT version FROM schema_version").fetchall()
        assert [r[0] for r in rows] == [SCHEMA_VERSION]

    def test_wal_mode(self, tmp_db):
        mode = tmp_db.conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_creates_parent_dir(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "test.db"
        with Database(path):
            pass
        assert path.exists()

    def test_status_defaults_to_pending(self, tmp_db):
        tmp_db.conn.execute(
            "INSERT INTO transcripts (consultation_number, consultation_content, consultation_time) "
            "VALUES ('C-1', '내용', '2024-03-01 09:00:00')"
        )
        row = tmp_db.conn.execute(
            "SELECT analysis_status FROM transcripts WHERE consultation_number = 'C-1'"
        ).fetchone()
        assert row["analysis_status"] == "PENDING"
