"""Isolated status and result writes for transcripts.

Every method opens its own connection and commits before returning, so a
write here never shares a transaction with the caller. Saving a result is
a two-phase operation:

1. the result columns and COMPLETED status are committed;
2. the index is updated through IndexSync.

Phase 2 runs only after phase 1 committed, and its failures are logged
without touching the saved record.
"""

from __future__ import annotations

import logging
from pathlib import Path

from nudgescope.exceptions import TranscriptNotFoundError
from nudgescope.storage.database import Database
from nudgescope.storage.models import AnalysisResult, AnalysisStatus, TranscriptRecord
from nudgescope.storage.repository import Repository

logger = logging.getLogger(__name__)


class PersistenceGateway:
    def __init__(self, db_path: Path, index_sync=None):
        self.db_path = db_path
        self.index_sync = index_sync

    def mark_processing(self, record: TranscriptRecord):
        with Database(self.db_path) as db:
            if not Repository(db).update_status(
                record.consultation_number, AnalysisStatus.PROCESSING
            ):
                raise TranscriptNotFoundError(record.consultation_number)
        record.analysis_status = AnalysisStatus.PROCESSING

    def save_result(self, record: TranscriptRecord, result: AnalysisResult):
        """Commit the result, then index it. Raises only if the commit fails."""
        with Database(self.db_path) as db:
            if not Repository(db).save_result(record.consultation_number, result):
                raise TranscriptNotFoundError(record.consultation_number)

        (
            record.main_inquiry,
            record.has_nudge,
            record.nudge_type,
            record.nudge_content,
            record.customer_response,
            record.inappropriate_nudge,
            record.inappropriate_reason,
        ) = result.as_columns()
        record.analysis_status = AnalysisStatus.COMPLETED
        logger.info(f"Analysis result saved for consultation: {record.consultation_number}")

        if self.index_sync is not None:
            self.index_sync.sync(record, result)

    def mark_failed(self, record: TranscriptRecord) -> bool:
        """Set FAILED. Logs and returns False instead of raising.

        Also False when the transcript is no longer in the store.
        """
        try:
            with Database(self.db_path) as db:
                updated = Repository(db).update_status(
                    record.consultation_number, AnalysisStatus.FAILED
                )
            if not updated:
                logger.warning(
                    f"Cannot mark FAILED, consultation not found: {record.consultation_number}"
                )
                return False
            record.analysis_status = AnalysisStatus.FAILED
            logger.info(f"Marked consultation as FAILED: {record.consultation_number}")
            return True
        except Exception as e:
            logger.error(
                f"Failed to update status to FAILED for consultation: "
                f"{record.consultation_number}: {e}",
                exc_info=True,
            )
            return False
