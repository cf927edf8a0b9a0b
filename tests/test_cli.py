"""Tests for the command-line interface"""

from __future__ import annotations

import importlib
import json
import signal
import sys
from pathlib import Path

import pytest

from cronlock.admin import QUEUE_COLUMNS
from cronlock.cli.main import _exit_on_sigterm, main
from cronlock.cli.parser import parse_arguments
from cronlock.core.colors import ConsoleColors
from cronlock.core.constants import ENV_CONFIG_FILE, ENV_VAR_MAPPING
from cronlock.ledger import WaiterEntry, create_ledger

cli_main = importlib.import_module("cronlock.cli.main")

pytestmark = pytest.mark.usefixtures("restore_root_logging")


@pytest.fixture(autouse=True)
def isolated_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in [ENV_CONFIG_FILE, "LOG_LEVEL", *ENV_VAR_MAPPING]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli_main, "install_signal_handlers", lambda: None)


def _waiter(name: str, event: str = "nightly") -> WaiterEntry:
    return WaiterEntry(
        site=f"{name} (https://{name}.example.com)",
        site_url=f"https://{name}.example.com",
        event=event,
        queued_at="2024-01-01T00:00:00+00:00",
    )


def _seed_queue(ledger_path: Path, *names: str) -> None:
    ledger = create_ledger(ledger_path, per_event_locking=True)
    for name in names:
        ledger.enqueue("nightly", _waiter(name))


class TestArgumentParsing:
    """Test command-line argument parsing"""

    def test_run_event(self):
        args = parse_arguments(["run", "nightly"])
        assert args.command == "run"
        assert args.event == "nightly"
        assert args.per_event_locking is None

    def test_mode_flags(self):
        assert parse_arguments(["--global-mode", "run-due"]).per_event_locking is False
        assert parse_arguments(["--per-event-mode", "run-due"]).per_event_locking is True

    def test_mode_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse_arguments(["--global-mode", "--per-event-mode", "run-due"])

    def test_log_level_is_case_insensitive(self):
        assert parse_arguments(["--log-level", "debug", "status"]).log_level == "DEBUG"

    def test_status_format_default(self):
        assert parse_arguments(["status"]).output_format == "table"

    def test_queue_actions(self):
        args = parse_arguments(["queue", "move-top", "nightly", "https://beta.example.com"])
        assert (args.queue_command, args.event, args.site_url) == ("move-top", "nightly", "https://beta.example.com")
        assert parse_arguments(["queue", "clear", "__global__"]).scope == "__global__"

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestRunCommands:
    """Test the run and run-due commands end to end"""

    def test_successful_job_exits_zero(self, config_file: Path, lock_dir: Path, read_json):
        assert main(["--config", str(config_file), "run", "nightly"]) == 0

        status = read_json(lock_dir / "cron-status.json")
        assert status["events"]["nightly"]["status"] == "idle"
        assert list(lock_dir.glob("*.lock")) == []

    def test_failing_job_exits_one(self, config_file: Path, lock_dir: Path):
        assert main(["--config", str(config_file), "run", "broken"]) == 1
        assert list(lock_dir.glob("*.lock")) == []

    def test_run_is_logged_to_the_configured_file(self, config_file: Path, lock_dir: Path):
        main(["--config", str(config_file), "run", "nightly"])

        content = (lock_dir / "cron.log").read_text(encoding="utf-8")
        assert "alpha (https://alpha.example.com)" in content
        assert "Lock acquired by" in content

    def test_run_due_with_nothing_scheduled(self, config_file: Path):
        assert main(["--config", str(config_file), "run-due"]) == 0


class TestStatusCommand:
    """Test status output formats"""

    def test_json(self, config_file: Path, lock_dir: Path, capsys):
        _seed_queue(lock_dir / "cron-status.json", "beta")

        assert main(["--config", str(config_file), "status", "--format", "json"]) == 0

        payload = json.loads(capsys.readouterr().out)
        assert payload["mode"] == "per-event"
        assert payload["status"]["events"]["nightly"]["queue"][0]["site_url"] == "https://beta.example.com"
        assert payload["locks"] == []

    def test_csv_lists_the_queue(self, config_file: Path, lock_dir: Path, capsys):
        _seed_queue(lock_dir / "cron-status.json", "beta", "gamma")

        assert main(["--config", str(config_file), "status", "--format", "csv"]) == 0

        lines = capsys.readouterr().out.strip().splitlines()
        assert lines[0] == ",".join(QUEUE_COLUMNS)
        assert len(lines) == 3
        assert lines[1].startswith("nightly,1,beta")

    def test_table(self, config_file: Path, capsys):
        assert main(["--config", str(config_file), "--no-color", "status"]) == 0

        out = capsys.readouterr().out
        for title in ("Resources", "Queue", "Locks", "Pending retries"):
            assert title in out
        assert "(none)" in out
        assert "per-event locking" in out

    def test_global_mode_flag_overrides_config(self, config_file: Path, capsys):
        assert main(["--config", str(config_file), "--global-mode", "status", "--format", "json"]) == 0
        assert json.loads(capsys.readouterr().out)["mode"] == "global"


class TestQueueCommands:
    """Test queue maintenance through the CLI"""

    def test_move_top(self, config_file: Path, lock_dir: Path, read_json, capsys):
        _seed_queue(lock_dir / "cron-status.json", "beta", "gamma")

        code = main(["--config", str(config_file), "queue", "move-top", "nightly", "https://gamma.example.com"])

        assert code == 0
        queue = read_json(lock_dir / "cron-status.json")["events"]["nightly"]["queue"]
        assert [entry["site_url"] for entry in queue] == ["https://gamma.example.com", "https://beta.example.com"]
        assert "Moved https://gamma.example.com to the top" in capsys.readouterr().out

    def test_remove_and_clear(self, config_file: Path, lock_dir: Path, read_json, capsys):
        _seed_queue(lock_dir / "cron-status.json", "beta", "gamma")

        assert main(["--config", str(config_file), "queue", "remove", "nightly", "https://beta.example.com"]) == 0
        assert main(["--config", str(config_file), "queue", "clear-all"]) == 0

        assert read_json(lock_dir / "cron-status.json")["events"]["nightly"]["queue"] == []
        out = capsys.readouterr().out
        assert "Removed 1 entry" in out
        assert "Cleared 1 job(s) from all queues" in out

    def test_missing_queue_is_an_error(self, config_file: Path, capsys):
        code = main(["--config", str(config_file), "queue", "move-up", "nightly", "https://beta.example.com"])

        assert code == 1
        assert "ERROR: Queue not found" in capsys.readouterr().err


class TestDestructiveCommands:
    """Test that destructive maintenance needs confirmation"""

    def test_locks_clear_requires_yes(self, config_file: Path, lock_dir: Path, capsys):
        (lock_dir / "cron-lock-nightly.lock").write_text("{}")

        assert main(["--config", str(config_file), "locks", "clear"]) == 1

        assert (lock_dir / "cron-lock-nightly.lock").exists()
        assert "without --yes" in capsys.readouterr().err

    def test_locks_clear_with_yes(self, config_file: Path, lock_dir: Path):
        (lock_dir / "cron-lock-nightly.lock").write_text("{}")

        assert main(["--config", str(config_file), "locks", "clear", "--yes"]) == 0
        assert list(lock_dir.glob("*.lock")) == []

    def test_reset(self, config_file: Path, lock_dir: Path, read_json):
        _seed_queue(lock_dir / "cron-status.json", "beta")

        assert main(["--config", str(config_file), "reset"]) == 1
        assert main(["--config", str(config_file), "reset", "--yes"]) == 0
        assert read_json(lock_dir / "cron-status.json") == {"events": {}}


class TestErrors:
    """Test error exits"""

    def test_missing_config_file(self, tmp_path: Path, capsys):
        assert main(["--config", str(tmp_path / "nope.json"), "status"]) == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_sigterm_becomes_system_exit(self):
        with pytest.raises(SystemExit) as exc_info:
            _exit_on_sigterm(signal.SIGTERM, None)
        assert exc_info.value.code == 128 + signal.SIGTERM


class TestConsoleColors:
    """Test the console color policy"""

    @pytest.fixture(autouse=True)
    def tty_stdout(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(sys.stdout, "isatty", lambda: True)
        monkeypatch.delenv("NO_COLOR", raising=False)
        yield
        ConsoleColors.configure(no_color=True)

    def test_enabled_on_a_tty(self):
        ConsoleColors.configure()
        assert ConsoleColors.is_enabled()
        assert ConsoleColors.success("ok") == f"{ConsoleColors.GREEN}ok{ConsoleColors.RESET}"

    def test_no_color_flag(self):
        ConsoleColors.configure(no_color=True)
        assert not ConsoleColors.is_enabled()
        assert ConsoleColors.error("bad") == "bad"

    def test_no_color_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("NO_COLOR", "1")
        ConsoleColors.configure()
        assert not ConsoleColors.is_enabled()
