"""Keep the similarity index in step with completed analyses."""

from __future__ import annotations

import logging
from pathlib import Path

from nudgescope.storage.database import Database
from nudgescope.storage.models import AnalysisResult, IndexEntry, TranscriptRecord
from nudgescope.storage.repository import Repository

logger = logging.getLogger(__name__)


class IndexSync:
    """Best-effort population of the index from the relational store.

    The store is the record of truth; the index is derived from it and may
    lag. Nothing here raises to the caller.
    """

    def __init__(self, index, db_path: Path):
        self.index = index
        self.db_path = db_path

    def sync(self, record: TranscriptRecord, result: AnalysisResult) -> bool:
        """Add one analyzed transcript unless it is already indexed.

        Returns True when a new entry was written.
        """
        number = record.consultation_number
        try:
            if self.index.has_consultation(number):
                logger.debug(f"Consultation {number} already exists in index, skipping")
                return False
            self.index.add([IndexEntry.from_record(record, result)])
            logger.info(f"Added analyzed consultation to index: {number}")
            return True
        except Exception as e:
            logger.warning(f"Failed to add consultation {number} to index: {e}")
            return False

    def reinitialize(self) -> int:
        """Insert every completed transcript missing from the index.

        Entries already present are never rebuilt. A concurrent `sync` of the
        same consultation between the existence query and the insert can still
        produce a duplicate.
        """
        try:
            with Database(self.db_path) as db:
                analyzed = Repository(db).get_completed_transcripts()
            logger.info(f"Found {len(analyzed)} analyzed consultations in the store")
            if not analyzed:
                return 0

            existing = self.index.existing_consultation_numbers()
            logger.info(f"Found {len(existing)} existing documents in index")

            missing = [r for r in analyzed if r.consultation_number not in existing]
            if not missing:
                logger.info("All analyzed data already exists in index. No duplicates added.")
                return 0

            logger.info(
                f"Adding {len(missing)} new documents to index "
                f"(avoiding {len(analyzed) - len(missing)} duplicates)"
            )
            return self.index.add([IndexEntry.from_record(r) for r in missing])
        except Exception as e:
            logger.error(f"Failed to initialize index: {e}", exc_info=True)
            return 0

    def clear_and_reinitialize(self) -> int:
        """Empty the index and rebuild it from all completed transcripts."""
        try:
            logger.warning("Clearing all documents from index")
            self.index.clear()
            with Database(self.db_path) as db:
                analyzed = Repository(db).get_completed_transcripts()
            added = self.index.add([IndexEntry.from_record(r) for r in analyzed])
            logger.info(f"Reinitialized index with {added} documents")
            return added
        except Exception as e:
            logger.error(f"Failed to clear and reinitialize index: {e}", exc_info=True)
            return 0
