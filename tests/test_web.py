"""Tests for the NudgeScope control API."""

from __future__ import annotations

import json
import threading
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from nudgescope.llm.client import CallbackClient
from nudgescope.storage.models import AnalysisStatus

from conftest import NUDGE_REPLY


@pytest.fixture
def services(make_services, reply_client, seeded_repo):
    return make_services(reply_client)


@pytest.fixture
def client(services):
    from nudgescope.web.app import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client


class TestStatusRoutes:
    def test_status(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["totalCount"] == 3
        assert data["pendingCount"] == 3
        assert data["completionRate"] == 0.0
        assert data["isProcessing"] is False
        assert data["runState"] == "IDLE"

    def test_pending_is_paged_oldest_first(self, client):
        data = client.get("/pending", params={"page": 0, "size": 2}).json()
        assert [r["consultationNumber"] for r in data] == ["C-001", "C-002"]
        data = client.get("/pending", params={"page": 1, "size": 2}).json()
        assert [r["consultationNumber"] for r in data] == ["C-003"]
        assert data[0]["analysisStatus"] == "PENDING"


class TestAnalysisRoutes:
    def test_analyze_known(self, client, seeded_repo):
        response = client.post("/analyze/C-001")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["result"]["nudgeType"] == NUDGE_REPLY["nudgeType"]
        assert seeded_repo.get_transcript("C-001").analysis_status == AnalysisStatus.COMPLETED

    def test_analyze_unknown_is_404(self, client):
        response = client.post("/analyze/ghost")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_test_analyze(self, client, seeded_repo):
        response = client.post("/test-analyze", json={"consultationContent": "요금제 문의"})
        assert response.status_code == 200
        assert response.json()["hasNudge"] == "Y"
        assert seeded_repo.get_status_summary()["completed"] == 0

    def test_test_analyze_requires_content(self, client):
        response = client.post("/test-analyze", json={"consultationContent": "  "})
        assert response.status_code == 400


class TestMetricsRoutes:
    def test_metrics_after_analysis(self, client):
        client.post("/analyze/C-001")
        data = client.get("/metrics").json()
        assert data["totalProcessed"] == 1
        assert data["successRate"] == 100.0

        assert client.post("/metrics/reset").json()["status"] == "success"
        assert client.get("/metrics").json()["totalProcessed"] == 0


class TestBatchRoutes:
    def test_run_then_wait(self, client, services, seeded_repo):
        response = client.post("/batch/run")
        assert response.json()["status"] == "started"
        summary = services.coordinator.wait(timeout=10)
        assert summary.processed == 3
        assert seeded_repo.count_by_status(AnalysisStatus.COMPLETED) == 3

    def test_run_while_running(self, make_services, seeded_repo):
        from nudgescope.web.app import create_app

        entered = threading.Event()
        release = threading.Event()

        def callback(system, user):
            entered.set()
            release.wait(5)
            return json.dumps(NUDGE_REPLY, ensure_ascii=False)

        services = make_services(CallbackClient(callback))
        with TestClient(create_app(services)) as client:
            assert client.post("/batch/run").json()["status"] == "started"
            assert entered.wait(5)

            assert client.post("/batch/run").json()["status"] == "already_running"
            assert client.get("/status").json()["isProcessing"] is True
            assert client.post("/batch/stop").json()["status"] == "stop_requested"

            release.set()
            summary = services.coordinator.wait(timeout=10)
            assert summary.stopped is True

    def test_stop_when_idle(self, client):
        assert client.post("/batch/stop").json()["status"] == "idle"

    def test_scheduled_run_blocks_manual_trigger(self, make_services, seeded_repo):
        from nudgescope.web.app import create_app

        entered = threading.Event()
        release = threading.Event()

        def callback(system, user):
            entered.set()
            release.wait(5)
            return json.dumps(NUDGE_REPLY, ensure_ascii=False)

        services = make_services(CallbackClient(callback))
        app = create_app(services, schedule=True, interval=60)
        with TestClient(app) as client:
            assert entered.wait(5)
            assert app.state.scheduler.is_alive()

            assert client.post("/batch/run").json()["status"] == "already_running"
            assert client.get("/status").json()["runState"] == "RUNNING"
            release.set()

        assert not app.state.scheduler.is_alive()

    def test_other_process_run_blocks_manual_trigger(self, client, seeded_repo):
        seeded_repo.acquire_batch_lock("other-host:1:abc", timedelta(minutes=30))

        assert client.post("/batch/run").json()["status"] == "already_running"
        data = client.get("/status").json()
        assert data["isProcessing"] is True
        assert data["runState"] == "IDLE"


class TestIndexRoutes:
    def test_reinitialize(self, client, services, seeded_repo):
        client.post("/analyze/C-001")
        services.index.clear()

        data = client.post("/index/reinitialize").json()
        assert data["added"] == 1
        assert data["documents"] == 1

        data = client.post("/index/reinitialize", params={"clear": True}).json()
        assert data["added"] == 1
        assert services.analyzer._search.cache_info().currsize == 0
