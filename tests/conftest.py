"""Shared test fixtures for NudgeScope."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from nudgescope.config import AnalysisSettings
from nudgescope.llm.client import CallbackClient
from nudgescope.storage.database import Database
from nudgescope.storage.models import TranscriptRecord
from nudgescope.storage.repository import Repository

NUDGE_REPLY = {
    "mainInquiry": "요금제 변경 문의",
    "hasNudge": "Y",
    "nudgeType": "손실회피",
    "nudgeContent": "지금 바꾸지 않으면 할인 혜택이 사라집니다",
    "customerResponse": "Y",
    "inappropriateNudge": "N",
    "inappropriateReason": "N",
}


def hash_embedder(texts):
    """Deterministic bag-of-characters vectors; identical text scores 1.0."""
    vectors = []
    for text in texts:
        vector = [0.0] * 32
        for ch in text:
            vector[ord(ch) % 32] += 1.0
        vector.append(1.0)
        vectors.append(vector)
    return vectors


def no_sleep(seconds):
    pass


def make_record(number: str, content: str = "요금제 변경 상담", minutes: int = 0) -> TranscriptRecord:
    return TranscriptRecord(
        consultation_number=number,
        consultant="상담원A",
        content=content,
        consultation_time=datetime(2024, 3, 1, 9, 0) + timedelta(minutes=minutes),
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def tmp_db(db_path):
    """Temp database with schema initialized."""
    with Database(db_path) as db:
        yield db


@pytest.fixture
def repo(tmp_db):
    """Repository backed by the temp database."""
    return Repository(tmp_db)


@pytest.fixture
def sample_records():
    return [
        make_record("C-001", "인터넷 속도가 느려요. 요금제를 바꾸고 싶습니다.", minutes=0),
        make_record("C-002", "휴대폰 분실 신고를 하려고 합니다.", minutes=5),
        make_record("C-003", "해지하면 위약금이 얼마인가요?", minutes=10),
    ]


@pytest.fixture
def seeded_repo(repo, sample_records):
    for record in sample_records:
        repo.insert_transcript(record)
    return repo


@pytest.fixture
def settings(tmp_path, db_path):
    """Settings with every delay at zero and storage under tmp_path."""
    return AnalysisSettings(
        processing_delay=0.0,
        page_delay=0.0,
        record_retry_delay=0.0,
        llm_base_delay=0.0,
        db_path=db_path,
        index_dir=tmp_path / "index",
    )


@pytest.fixture
def chroma_client(tmp_path):
    import chromadb

    return chromadb.PersistentClient(path=str(tmp_path / "chroma"))


@pytest.fixture
def index(chroma_client):
    from nudgescope.index.store import ChromaIndex

    return ChromaIndex(client=chroma_client, embedder=hash_embedder)


@pytest.fixture
def reply_client():
    """Completion client that always answers with NUDGE_REPLY."""
    return CallbackClient(lambda system, user: json.dumps(NUDGE_REPLY, ensure_ascii=False))


@pytest.fixture
def make_services(settings, chroma_client):
    """Build the full component graph around a given completion client."""
    from nudgescope.services import build_services

    def _make(llm_client):
        return build_services(
            settings,
            llm_client=llm_client,
            embedder=hash_embedder,
            chroma_client=chroma_client,
            sleep=no_sleep,
        )

    return _make
