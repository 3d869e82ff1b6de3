"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import re
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(args: list[str], database_url: str | None = None, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        args: Arguments after 'python -m atp_mastery.cli.main'
        database_url: Database the command should use
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    env = dict(os.environ, PYTHONIOENCODING="utf-8", ATP_LOG_LEVEL="WARNING")
    if database_url:
        env["ATP_DATABASE_URL"] = database_url

    result = subprocess.run(
        [sys.executable, "-m", "atp_mastery.cli.main", *args],
        cwd=PROJECT_ROOT,
        env=env,
        capture_output=True,
        text=True,
        encoding="utf-8",
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite database with tables created."""
    url = f"sqlite:///{tmp_path / 'atp_mastery.db'}"
    code, _, stderr = run_cli_command(["init-db"], url)
    assert code == 0, f"init-db failed: {stderr}"
    return url


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command(["--help"])

        assert code == 0, f"Help failed: {stderr}"
        assert "Commands" in stdout
        for command in ("phase", "mastery", "add-card", "due", "review"):
            assert command in stdout

    def test_review_help(self):
        code, stdout, _ = run_cli_command(["review", "--help"])
        assert code == 0
        assert "QUALITY" in stdout


class TestPhaseCommand:
    """Phase classification needs no database."""

    @pytest.mark.parametrize("days,label", [("5", "critical"), ("30", "approaching"), ("90", "distant")])
    def test_days(self, days, label):
        code, stdout, stderr = run_cli_command(["phase", "--days", days])
        assert code == 0, stderr
        assert f"Phase: {label}" in stdout

    def test_exam_dates(self):
        code, stdout, stderr = run_cli_command(
            ["phase", "--written", "2026-04-01", "--oral", "2026-08-01", "--today", "2026-03-02"]
        )
        assert code == 0, stderr
        assert "Dominant mode: WRITTEN" in stdout

    def test_bad_date(self):
        code, _, _ = run_cli_command(["phase", "--written", "next week"])
        assert code != 0


class TestDatabaseCommands:
    """Commands backed by a temporary SQLite file."""

    def test_init_db_is_idempotent(self, database_url):
        code, stdout, stderr = run_cli_command(["init-db"], database_url)
        assert code == 0, stderr
        assert "Database initialized" in stdout

    def test_mastery_without_data(self, database_url):
        code, stdout, stderr = run_cli_command(["mastery", "user-1"], database_url)
        assert code == 0, stderr
        assert "No mastery data for user-1" in stdout

    def test_card_flow(self, database_url):
        code, stdout, stderr = run_cli_command(
            ["add-card", "user-1", "case", "case-001", "--title", "Bail terms", "--today", "2026-03-02"],
            database_url,
        )
        assert code == 0, stderr
        match = re.search(r"Card (\S+) due 2026-03-02", stdout)
        assert match, stdout
        card_id = match.group(1)

        code, stdout, stderr = run_cli_command(["due", "user-1", "--today", "2026-03-02"], database_url)
        assert code == 0, stderr
        assert "Due Cards" in stdout

        code, stdout, stderr = run_cli_command(
            ["review", "user-1", card_id, "5", "--today", "2026-03-02"], database_url
        )
        assert code == 0, stderr
        assert "Next review 2026-03-03" in stdout

        code, stdout, stderr = run_cli_command(["due", "user-1", "--today", "2026-03-02"], database_url)
        assert code == 0, stderr
        assert "No cards due." in stdout

    def test_review_unknown_card(self, database_url):
        code, stdout, _ = run_cli_command(["review", "user-1", "missing", "3"], database_url)
        assert code == 1
        assert "Card not found" in stdout

    def test_review_quality_out_of_range(self, database_url):
        code, _, _ = run_cli_command(["review", "user-1", "missing", "7"], database_url)
        assert code == 2
