"""Tests for the click CLI."""

from datetime import timedelta

from click.testing import CliRunner

from avatarwatch import db, sessions
from avatarwatch.__main__ import cli
from avatarwatch.heygen import HeyGenClient
from avatarwatch.timestamps import utcnow


def _run(*args):
    return CliRunner().invoke(cli, list(args))


def test_sync_without_api_key_is_skipped(monkeypatch):
    monkeypatch.setattr("avatarwatch.config.HEYGEN_API_KEY", "")
    sessions.register_session("s1")
    result = _run("sync")
    assert result.exit_code == 0
    assert "Skipped" in result.output
    assert sessions.get_session("s1")["status"] == "active"


def test_sync_with_nothing_running():
    result = _run("sync")
    assert result.exit_code == 0
    assert "0 running sessions checked" in result.output


def test_stop_unknown_session_fails():
    result = _run("stop", "nope")
    assert result.exit_code != 0
    assert "nope" in result.output


def test_stop_marks_completed_even_when_provider_unavailable(monkeypatch):
    monkeypatch.setattr("avatarwatch.config.HEYGEN_API_KEY", "")
    sessions.register_session("s1")
    result = _run("stop", "s1")
    assert result.exit_code == 0
    assert "Provider error" in result.output
    assert sessions.get_session("s1")["status"] == "completed"


def test_purge(monkeypatch):
    sessions.register_session("s1")
    sessions.move_to_trash("s1")
    later = utcnow() + timedelta(days=31)
    monkeypatch.setattr("avatarwatch.sessions.utcnow", lambda: later)
    result = _run("purge")
    assert result.exit_code == 0
    assert "Purged 1 sessions" in result.output


def test_stats():
    sessions.register_session("s1", start_time=utcnow())
    result = _run("stats", "--range", "7days")
    assert result.exit_code == 0
    assert "Sessions:          1" in result.output


def test_stats_rejects_unknown_range():
    assert _run("stats", "--range", "90days").exit_code != 0


def test_reset_deletes_database(temp_db):
    db.get_writer()
    assert temp_db.exists()
    result = _run("reset", "--yes")
    assert result.exit_code == 0
    assert not temp_db.exists()
    assert "Deleted" in result.output


def test_reset_without_database(temp_db):
    result = _run("reset", "--yes")
    assert result.exit_code == 0
    assert "No database to reset." in result.output


def test_client_defaults_follow_config(monkeypatch):
    monkeypatch.setattr("avatarwatch.config.HEYGEN_API_KEY", "k")
    assert HeyGenClient().is_configured is True
