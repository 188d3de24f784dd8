"""Tests for nudgescope.index (ChromaIndex and IndexSync)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

from nudgescope.index.sync import IndexSync
from nudgescope.storage.models import AnalysisResult, IndexEntry

from conftest import make_record


def _entry(number, content):
    return IndexEntry(
        content=content,
        consultation_number=number,
        consultant="상담원A",
        analysis_result='{"hasNudge":"N"}',
        consultation_time="2024-03-01 09:00:00",
    )


class TestChromaIndex:
    def test_empty_index_returns_nothing(self, index):
        assert index.count() == 0
        assert index.search("아무 문장") == []

    def test_identical_text_matches(self, index):
        index.add([_entry("C-1", "aaaa"), _entry("C-2", "zzzz")])
        matches = index.search("aaaa", top_k=3, similarity_threshold=0.75)
        assert len(matches) == 1
        assert matches[0].consultation_number == "C-1"
        assert matches[0].score > 0.99
        assert matches[0].analysis_result == '{"hasNudge":"N"}'

    def test_threshold_zero_returns_top_k(self, index):
        index.add([_entry(f"C-{i}", "ab" * (i + 1)) for i in range(5)])
        matches = index.search("ab", top_k=3, similarity_threshold=0.0)
        assert len(matches) == 3
        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)

    def test_has_consultation(self, index):
        index.add([_entry("C-1", "aaaa")])
        assert index.has_consultation("C-1") is True
        assert index.has_consultation("C-2") is False
        assert index.existing_consultation_numbers() == {"C-1"}

    def test_add_does_not_deduplicate(self, index):
        index.add([_entry("C-1", "aaaa")])
        index.add([_entry("C-1", "aaaa")])
        assert index.count() == 2

    def test_clear(self, index):
        index.add([_entry("C-1", "aaaa")])
        index.clear()
        assert index.count() == 0
        assert index.search("aaaa") == []


class TestIndexSync:
    def test_sync_skips_existing(self, index, db_path):
        sync = IndexSync(index, db_path)
        record = make_record("C-1", "aaaa")
        result = AnalysisResult(main_inquiry="문의")
        assert sync.sync(record, result) is True
        assert sync.sync(record, result) is False
        assert index.count() == 1

    def test_sync_stores_result_json(self, index, db_path):
        sync = IndexSync(index, db_path)
        result = AnalysisResult(main_inquiry="문의", has_nudge="Y", nudge_type="손실회피")
        sync.sync(make_record("C-1", "aaaa"), result)
        match = index.search("aaaa")[0]
        assert json.loads(match.analysis_result) == result.to_dict()

    def test_sync_absorbs_index_errors(self, db_path):
        broken = MagicMock()
        broken.has_consultation.side_effect = RuntimeError("index down")
        sync = IndexSync(broken, db_path)
        assert sync.sync(make_record("C-1"), AnalysisResult(main_inquiry="문의")) is False

    def test_reinitialize_adds_only_missing(self, index, db_path, seeded_repo):
        for number in ("C-001", "C-002"):
            seeded_repo.save_result(number, AnalysisResult(main_inquiry="문의"))
        index.add([IndexEntry.from_record(seeded_repo.get_transcript("C-001"))])

        sync = IndexSync(index, db_path)
        assert sync.reinitialize() == 1
        assert index.existing_consultation_numbers() == {"C-001", "C-002"}
        assert sync.reinitialize() == 0
        assert index.count() == 2

    def test_reinitialize_with_nothing_completed(self, index, db_path, seeded_repo):
        assert IndexSync(index, db_path).reinitialize() == 0

    def test_clear_and_reinitialize(self, index, db_path, seeded_repo):
        seeded_repo.save_result("C-001", AnalysisResult(main_inquiry="문의"))
        index.add([_entry("stale", "zzzz"), _entry("C-001", "aaaa")])

        sync = IndexSync(index, db_path)
        assert sync.clear_and_reinitialize() == 1
        assert index.existing_consultation_numbers() == {"C-001"}
