"""Read transcript exports and load them into the database."""

from __future__ import annotations

import csv
import json
import logging
from datetime import datetime
from pathlib import Path

from nudgescope.storage.models import TranscriptRecord
from nudgescope.storage.repository import Repository

log = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".jsonl", ".csv")

REQUIRED_FIELDS = ("consultation_number", "consultant", "content", "consultation_time")


def _to_record(row: dict, position: str) -> TranscriptRecord:
    if not isinstance(row, dict):
        raise ValueError(f"{position}: expected an object, got {type(row).__name__}")

    missing = [f for f in REQUIRED_FIELDS if not str(row.get(f) or "").strip()]
    if missing:
        raise ValueError(f"{position}: missing {', '.join(missing)}")

    raw_time = str(row["consultation_time"]).strip()
    try:
        consultation_time = datetime.fromisoformat(raw_time)
    except ValueError:
        raise ValueError(f"{position}: invalid consultation_time {raw_time!r}") from None

    return TranscriptRecord(
        consultation_number=str(row["consultation_number"]).strip(),
        consultant=str(row["consultant"]).strip(),
        content=str(row["content"]),
        consultation_time=consultation_time,
    )


def read_transcripts(path: Path) -> list[TranscriptRecord]:
    """Parse a .json (list of objects), .jsonl or .csv export.

    Raises:
        ValueError: Unsupported file type or a malformed row.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported file type '{suffix}'. Use one of: {', '.join(SUPPORTED_SUFFIXES)}"
        )

    text = path.read_text(encoding="utf-8-sig")

    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path.name}: invalid JSON ({e})") from None
        if not isinstance(data, list):
            raise ValueError(f"{path.name}: expected a list of transcripts")
        return [_to_record(row, f"item {i}") for i, row in enumerate(data, 1)]

    if suffix == ".jsonl":
        records = []
        for lineno, line in enumerate(text.splitlines(), 1):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"line {lineno}: invalid JSON ({e})") from None
            records.append(_to_record(row, f"line {lineno}"))
        return records

    reader = csv.DictReader(text.splitlines())
    # Header is line 1
    return [_to_record(row, f"row {i}") for i, row in enumerate(reader, 2)]


def import_transcripts(repo: Repository, records: list[TranscriptRecord]) -> tuple[int, int]:
    """Insert new transcripts as PENDING, skipping ids already stored.

    Returns:
        (inserted, skipped)
    """
    inserted = skipped = 0
    for record in records:
        if repo.transcript_exists(record.consultation_number):
            log.debug("Skipping existing consultation %s", record.consultation_number)
            skipped += 1
            continue
        repo.insert_transcript(record)
        inserted += 1
    log.info("Imported %d transcripts (%d already present)", inserted, skipped)
    return inserted, skipped
