"""CLI integration tests using Click's CliRunner."""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from nudgescope.cli import cli
from nudgescope.storage.database import Database
from nudgescope.storage.models import AnalysisStatus
from nudgescope.storage.repository import Repository

from conftest import NUDGE_REPLY, hash_embedder, no_sleep


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch, chroma_client, reply_client):
    """Isolated settings file and a services factory that never leaves the process."""
    import nudgescope.cli as cli_mod
    import nudgescope.config as config_mod
    from nudgescope.services import build_services

    monkeypatch.setattr(config_mod, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(config_mod, "SETTINGS_JSON_PATH", tmp_path / "nudgescope.json")
    (tmp_path / "nudgescope.json").write_text(json.dumps({
        "db_path": str(tmp_path / "data" / "nudgescope.db"),
        "index_dir": str(tmp_path / "index"),
        "processing_delay": 0,
        "page_delay": 0,
        "record_retry_delay": 0,
        "llm_base_delay": 0,
    }))

    def fake_build(settings):
        return build_services(
            settings,
            llm_client=reply_client,
            embedder=hash_embedder,
            chroma_client=chroma_client,
            sleep=no_sleep,
        )

    monkeypatch.setattr(cli_mod, "build_services", fake_build)
    return tmp_path


@pytest.fixture
def transcripts_file(tmp_path):
    path = tmp_path / "calls.json"
    path.write_text(json.dumps([
        {
            "consultation_number": f"C-00{i}",
            "consultant": "상담원A",
            "content": f"요금제 상담 {i}",
            "consultation_time": f"2024-03-01T09:0{i}:00",
        }
        for i in range(1, 4)
    ], ensure_ascii=False), encoding="utf-8")
    return path


def _repo(env):
    return Repository(Database(env / "data" / "nudgescope.db"))


class TestHelpCommands:
    def test_main_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "NudgeScope" in result.output
        for command in ("import", "run", "analyze", "reindex", "schedule", "serve"):
            assert command in result.output


class TestImport:
    def test_import_then_skip(self, runner, cli_env, transcripts_file):
        result = runner.invoke(cli, ["import", str(transcripts_file)])
        assert result.exit_code == 0, result.output
        assert "Imported" in result.output

        result = runner.invoke(cli, ["import", str(transcripts_file)])
        assert "Skipped" in result.output
        assert _repo(cli_env).get_transcript_count() == 3

    def test_bad_file(self, runner, cli_env, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text('{"not": "a list"}')
        result = runner.invoke(cli, ["import", str(bad)])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestStatus:
    def test_no_database(self, runner, cli_env):
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "No database found" in result.output

    def test_counts(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "PENDING" in result.output
        assert "Completion rate" in result.output
        assert "idle" in result.output

    def test_shows_run_in_other_process(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        _repo(cli_env).acquire_batch_lock("worker-host:42:abcd", timedelta(minutes=30))

        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "active" in result.output
        assert "worker-host" in result.output


class TestRun:
    def test_run_drains_backlog(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        result = runner.invoke(cli, ["run"])
        assert result.exit_code == 0, result.output
        assert "Completed" in result.output

        repo = _repo(cli_env)
        assert repo.count_by_status(AnalysisStatus.COMPLETED) == 3

    def test_analyze_one(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        result = runner.invoke(cli, ["analyze", "C-002"])
        assert result.exit_code == 0, result.output
        assert NUDGE_REPLY["nudgeType"] in result.output

    def test_analyze_unknown(self, runner, cli_env):
        result = runner.invoke(cli, ["analyze", "ghost"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestMaintenance:
    def test_reindex(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        runner.invoke(cli, ["run"])
        result = runner.invoke(cli, ["reindex"])
        assert result.exit_code == 0, result.output
        assert "Added" in result.output

        result = runner.invoke(cli, ["reindex", "--clear"])
        assert result.exit_code == 0, result.output
        assert "index now holds" in result.output

    def test_reap(self, runner, cli_env, transcripts_file):
        runner.invoke(cli, ["import", str(transcripts_file)])
        result = runner.invoke(cli, ["reap", "--minutes", "30"])
        assert result.exit_code == 0
        assert "Reset" in result.output

    def test_settings(self, runner, cli_env):
        result = runner.invoke(cli, ["--llm-mode", "ollama", "settings"])
        assert result.exit_code == 0
        assert "ollama" in result.output
        assert "batch_size" in result.output

    def test_bad_settings_file(self, runner, cli_env):
        (cli_env / "nudgescope.json").write_text(json.dumps({"batch_size": 0}))
        result = runner.invoke(cli, ["settings"])
        assert result.exit_code == 1
        assert "batch_size" in result.output


class TestServe:
    def test_serve_schedules_by_default(self, runner, cli_env):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--interval", "42"])
        assert result.exit_code == 0, result.output
        app = run.call_args.args[0]
        assert app.state.scheduler is not None
        assert app.state.scheduler.interval == 42
        assert app.state.scheduler.coordinator is app.state.services.coordinator

    def test_serve_without_schedule(self, runner, cli_env):
        with patch("uvicorn.run") as run:
            result = runner.invoke(cli, ["serve", "--no-schedule"])
        assert result.exit_code == 0, result.output
        assert run.call_args.args[0].state.scheduler is None
