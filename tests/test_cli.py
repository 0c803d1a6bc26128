"""Tests for CLI commands."""

import json
import stat
from datetime import UTC, datetime, timedelta

import pytest
import typer

from stateset import __version__
from stateset.cli.app import app
from stateset.cli.commands.events import _format_countdown, _normalize_filename
from stateset.config.paths import get_events_log_path, get_events_path


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def event_files() -> list[str]:
    events_dir = get_events_path()
    return sorted(p.name for p in events_dir.glob("*.json")) if events_dir.is_dir() else []


def load_event(name: str) -> dict:
    return json.loads((get_events_path() / name).read_text())


class TestHelpers:
    """Tests for CLI helper functions."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("digest", "digest.json"), ("digest.json", "digest.json"), (" a ", "a.json")],
    )
    def test_normalize_filename(self, raw, expected):
        assert _normalize_filename(raw) == expected

    @pytest.mark.parametrize("raw", ["", "../x", "a/b", ".hidden"])
    def test_normalize_filename_rejects(self, raw):
        with pytest.raises(typer.BadParameter):
            _normalize_filename(raw)

    def test_format_countdown(self):
        now = datetime.now(UTC)
        assert _format_countdown(None) == "[dim]?[/dim]"
        assert _format_countdown(now - timedelta(seconds=1)) == "[green]now[/green]"
        assert _format_countdown(now + timedelta(minutes=5, seconds=30)) == "in 5m"
        assert _format_countdown(now + timedelta(hours=2, seconds=30)) == "in 2h"
        assert _format_countdown(now + timedelta(days=3, hours=4, seconds=30)) == "in 3d 4h"


class TestEventsAdd:
    """Tests for 'stateset events add'."""

    def test_immediate(self, cli_runner):
        result = cli_runner.invoke(
            app,
            ["events", "add", "-t", "immediate", "--text", "Summarize refunds", "-n", "refunds"],
        )

        assert result.exit_code == 0, result.stdout
        assert "Created immediate event: refunds.json" in result.stdout
        assert load_event("refunds.json") == {"type": "immediate", "text": "Summarize refunds"}

        path = get_events_path() / "refunds.json"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert stat.S_IMODE(get_events_path().stat().st_mode) & 0o077 == 0

    def test_generated_name_and_no_temp_files_left(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "add", "-t", "immediate", "--text", "x"])

        assert result.exit_code == 0, result.stdout
        files = event_files()
        assert len(files) == 1
        assert files[0].startswith("immediate-")
        assert [p.name for p in get_events_path().iterdir()] == files

    def test_one_shot(self, cli_runner):
        at = (datetime.now(UTC) + timedelta(hours=1)).isoformat()
        result = cli_runner.invoke(
            app,
            ["events", "add", "-t", "one-shot", "--at", at, "--text", "Check stock",
             "-s", "ops", "-n", "stock"],
        )

        assert result.exit_code == 0, result.stdout
        assert load_event("stock.json") == {
            "type": "one-shot",
            "text": "Check stock",
            "at": at,
            "session": "ops",
        }

    def test_one_shot_requires_future_time(self, cli_runner):
        result = cli_runner.invoke(
            app, ["events", "add", "-t", "one-shot", "--at", "2000-01-01T00:00:00Z", "--text", "x"]
        )

        assert result.exit_code == 1
        assert "future time" in result.stdout
        assert event_files() == []

    def test_one_shot_requires_at(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "add", "-t", "one-shot", "--text", "x"])

        assert result.exit_code == 1
        assert "--at is required" in result.stdout

    def test_periodic(self, cli_runner):
        result = cli_runner.invoke(
            app,
            ["events", "add", "-t", "periodic", "--schedule", "0 9 * * 1-5",
             "--timezone", "America/New_York", "--text", "Daily digest", "-n", "digest"],
        )

        assert result.exit_code == 0, result.stdout
        assert load_event("digest.json") == {
            "type": "periodic",
            "text": "Daily digest",
            "schedule": "0 9 * * 1-5",
            "timezone": "America/New_York",
        }

    def test_periodic_defaults_timezone(self, cli_runner, monkeypatch):
        monkeypatch.setenv("TZ", "Europe/Berlin")
        result = cli_runner.invoke(
            app, ["events", "add", "-t", "periodic", "--schedule", "*/5 * * * *",
                  "--text", "x", "-n", "p"]
        )

        assert result.exit_code == 0, result.stdout
        assert load_event("p.json")["timezone"] == "Europe/Berlin"

    @pytest.mark.parametrize(
        ("schedule", "timezone"),
        [("not a cron", "UTC"), ("0 9 * * *", "Mars/Olympus")],
    )
    def test_periodic_rejects_invalid(self, cli_runner, schedule, timezone):
        result = cli_runner.invoke(
            app,
            ["events", "add", "-t", "periodic", "--schedule", schedule,
             "--timezone", timezone, "--text", "x"],
        )

        assert result.exit_code == 1
        assert event_files() == []

    def test_rejects_unknown_type(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "add", "-t", "weekly", "--text", "x"])
        assert result.exit_code != 0

    def test_rejects_path_in_name(self, cli_runner):
        result = cli_runner.invoke(
            app, ["events", "add", "-t", "immediate", "--text", "x", "-n", "../escape"]
        )
        assert result.exit_code != 0
        assert event_files() == []


class TestEventsList:
    """Tests for 'stateset events list'."""

    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "list"])
        assert result.exit_code == 0
        assert "No events found" in result.stdout

    def test_lists_files(self, cli_runner):
        events_dir = get_events_path()
        events_dir.mkdir(parents=True)
        (events_dir / "a.json").write_text(json.dumps({"type": "immediate", "text": "hi"}))
        (events_dir / "b.json").write_text(
            json.dumps({"type": "periodic", "text": "d", "schedule": "0 9 * * *", "timezone": "UTC"})
        )
        (events_dir / "c.json").write_text("{broken")

        result = cli_runner.invoke(app, ["events", "list"])

        assert result.exit_code == 0, result.stdout
        assert "a.json" in result.stdout
        assert "periodic" in result.stdout
        assert "invalid" in result.stdout
        assert "Total: 3 event(s)" in result.stdout


class TestEventsCancel:
    """Tests for 'stateset events cancel'."""

    def test_deletes_file(self, cli_runner):
        cli_runner.invoke(app, ["events", "add", "-t", "immediate", "--text", "x", "-n", "job"])

        result = cli_runner.invoke(app, ["events", "cancel", "job"])

        assert result.exit_code == 0
        assert "Cancelled: job.json" in result.stdout
        assert event_files() == []

    def test_missing(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "cancel", "nope"])
        assert result.exit_code == 1
        assert "No event named nope.json" in result.stdout


class TestEventsLog:
    """Tests for 'stateset events log'."""

    def test_empty(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "log"])
        assert result.exit_code == 0
        assert "No event results logged" in result.stdout

    def test_shows_recent_records(self, cli_runner):
        log_path = get_events_log_path()
        log_path.parent.mkdir(parents=True)
        lines = [
            {"ts": "2026-01-01T09:00:00+00:00", "session": "ops", "filename": f"{i}.json",
             "response": f"reply {i}", "silent": i == 2, "usage": None}
            for i in range(3)
        ]
        log_path.write_text("\n".join(json.dumps(line) for line in lines) + "\n")

        result = cli_runner.invoke(app, ["events", "log", "-n", "2"])

        assert result.exit_code == 0, result.stdout
        assert "0.json" not in result.stdout
        assert "2026-01-01 09:00:00 ops 1.json" in result.stdout
        assert "2.json (silent)" in result.stdout
        assert "reply 2" in result.stdout


class TestEventsRun:
    """Tests for 'stateset events run' start-up validation."""

    def test_requires_api_key(self, cli_runner):
        result = cli_runner.invoke(app, ["events", "run"])

        assert result.exit_code == 1
        assert "No Anthropic API key configured" in result.stdout

    def test_unknown_model(self, cli_runner, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        result = cli_runner.invoke(app, ["events", "run", "--model", "fast"])

        assert result.exit_code == 1
        assert "Unknown model alias 'fast'" in result.stdout

    def test_missing_explicit_config(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["events", "run", "--config", str(tmp_path / "missing.toml")]
        )

        assert result.exit_code == 1
        assert "not found" in result.stdout


def test_version(cli_runner):
    result = cli_runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout
