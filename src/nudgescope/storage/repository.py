"""CRUD operations for the nudgescope database."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta

from nudgescope.storage.database import Database
from nudgescope.storage.models import (
    AnalysisResult,
    AnalysisStatus,
    TranscriptRecord,
)


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_record(row: sqlite3.Row) -> TranscriptRecord:
    return TranscriptRecord(
        consultation_number=row["consultation_number"],
        consultant=row["consultant"],
        content=row["consultation_content"],
        consultation_time=_parse_time(row["consultation_time"]),
        analysis_status=AnalysisStatus(row["analysis_status"]),
        main_inquiry=row["response1"],
        has_nudge=row["response2"],
        nudge_type=row["response3"],
        nudge_content=row["response4"],
        customer_response=row["response5"],
        inappropriate_nudge=row["response6"],
        inappropriate_reason=row["response7"],
        analysis_date=_parse_time(row["analysis_date"]),
        created_date=_parse_time(row["created_date"]),
        updated_date=_parse_time(row["updated_date"]),
    )


class Repository:
    """Database operations for nudgescope."""

    def __init__(self, db: Database):
        self.db = db

    # ── Transcripts ────────────────────────────────────────────────

    def transcript_exists(self, consultation_number: str) -> bool:
        row = self.db.conn.execute(
            "SELECT 1 FROM transcripts WHERE consultation_number = ?",
            (consultation_number,),
        ).fetchone()
        return row is not None

    def insert_transcript(self, record: TranscriptRecord):
        """Insert a new transcript. Status and result columns come from the record."""
        now = _now()
        self.db.conn.execute(
            """INSERT INTO transcripts
               (consultation_number, consultant, consultation_content,
                consultation_time, response1, response2, response3, response4,
                response5, response6, response7, analysis_status,
                analysis_date, created_date, updated_date)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.consultation_number,
                record.consultant,
                record.content,
                record.consultation_time.isoformat(sep=" "),
                record.main_inquiry,
                record.has_nudge,
                record.nudge_type,
                record.nudge_content,
                record.customer_response,
                record.inappropriate_nudge,
                record.inappropriate_reason,
                AnalysisStatus(record.analysis_status).value,
                record.analysis_date.isoformat(sep=" ") if record.analysis_date else None,
                now,
                now,
            ),
        )
        self.db.conn.commit()

    def get_transcript(self, consultation_number: str) -> TranscriptRecord | None:
        row = self.db.conn.execute(
            "SELECT * FROM transcripts WHERE consultation_number = ?",
            (consultation_number,),
        ).fetchone()
        return _row_to_record(row) if row else None

    def get_transcript_count(self) -> int:
        row = self.db.conn.execute("SELECT COUNT(*) FROM transcripts").fetchone()
        return row[0]

    def get_pending_page(self, limit: int, offset: int = 0) -> list[TranscriptRecord]:
        """Oldest pending transcripts first."""
        rows = self.db.conn.execute(
            """SELECT * FROM transcripts
               WHERE analysis_status = 'PENDING'
               ORDER BY consultation_time ASC, consultation_number ASC
               LIMIT ? OFFSET ?""",
            (limit, offset),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def get_completed_transcripts(self) -> list[TranscriptRecord]:
        """Completed transcripts that carry an analysis result."""
        rows = self.db.conn.execute(
            """SELECT * FROM transcripts
               WHERE analysis_status = 'COMPLETED' AND response1 IS NOT NULL
               ORDER BY consultation_time ASC"""
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    # ── Status transitions ─────────────────────────────────────────

    def update_status(self, consultation_number: str, status: AnalysisStatus) -> bool:
        cursor = self.db.conn.execute(
            """UPDATE transcripts
               SET analysis_status = ?, updated_date = ?
               WHERE consultation_number = ?""",
            (AnalysisStatus(status).value, _now(), consultation_number),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def save_result(self, consultation_number: str, result: AnalysisResult) -> bool:
        """Write the seven result columns and mark the transcript COMPLETED."""
        now = _now()
        cursor = self.db.conn.execute(
            """UPDATE transcripts
               SET response1 = ?, response2 = ?, response3 = ?, response4 = ?,
                   response5 = ?, response6 = ?, response7 = ?,
                   analysis_status = 'COMPLETED',
                   analysis_date = ?, updated_date = ?
               WHERE consultation_number = ?""",
            (*result.as_columns(), now, now, consultation_number),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def reset_stale_processing(self, older_than: timedelta) -> int:
        """Put PROCESSING transcripts untouched for `older_than` back to PENDING."""
        cutoff = (datetime.now() - older_than).isoformat(sep=" ", timespec="seconds")
        cursor = self.db.conn.execute(
            """UPDATE transcripts
               SET analysis_status = 'PENDING', updated_date = ?
               WHERE analysis_status = 'PROCESSING' AND updated_date < ?""",
            (_now(), cutoff),
        )
        self.db.conn.commit()
        return cursor.rowcount if cursor.rowcount is not None else 0

    # ── Progress ───────────────────────────────────────────────────

    def count_by_status(self, status: AnalysisStatus) -> int:
        row = self.db.conn.execute(
            "SELECT COUNT(*) FROM transcripts WHERE analysis_status = ?",
            (AnalysisStatus(status).value,),
        ).fetchone()
        return row[0]

    def get_status_summary(self) -> dict:
        """Counts per status plus the completion rate in percent."""
        rows = self.db.conn.execute(
            "SELECT analysis_status, COUNT(*) FROM transcripts GROUP BY analysis_status"
        ).fetchall()
        counts = {s.value: 0 for s in AnalysisStatus}
        for r in rows:
            counts[r[0]] = r[1]

        total = sum(counts.values())
        completed = counts[AnalysisStatus.COMPLETED.value]
        return {
            "total": total,
            "pending": counts[AnalysisStatus.PENDING.value],
            "processing": counts[AnalysisStatus.PROCESSING.value],
            "completed": completed,
            "failed": counts[AnalysisStatus.FAILED.value],
            "completion_rate": completed / total * 100 if total else 0.0,
        }

    # ── Batch lease ────────────────────────────────────────────────

    def acquire_batch_lock(self, holder: str, stale_after: timedelta) -> bool:
        """Take the run lease if it is free or its holder stopped heartbeating."""
        now = _now()
        cutoff = (datetime.now() - stale_after).isoformat(sep=" ", timespec="seconds")
        cursor = self.db.conn.execute(
            """UPDATE batch_lock
               SET holder = ?, acquired_at = ?, heartbeat_at = ?
               WHERE id = 1 AND (holder IS NULL OR heartbeat_at < ?)""",
            (holder, now, now, cutoff),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def refresh_batch_lock(self, holder: str) -> bool:
        cursor = self.db.conn.execute(
            "UPDATE batch_lock SET heartbeat_at = ? WHERE id = 1 AND holder = ?",
            (_now(), holder),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def release_batch_lock(self, holder: str) -> bool:
        cursor = self.db.conn.execute(
            """UPDATE batch_lock
               SET holder = NULL, acquired_at = NULL, heartbeat_at = NULL
               WHERE id = 1 AND holder = ?""",
            (holder,),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def get_batch_lock_holder(self, stale_after: timedelta | None = None) -> str | None:
        """Current lease holder. With `stale_after`, an expired lease counts as free."""
        row = self.db.conn.execute(
            "SELECT holder, heartbeat_at FROM batch_lock WHERE id = 1"
        ).fetchone()
        if row is None or row["holder"] is None:
            return None
        if stale_after is not None:
            cutoff = (datetime.now() - stale_after).isoformat(sep=" ", timespec="seconds")
            if row["heartbeat_at"] < cutoff:
                return None
        return row["holder"]
