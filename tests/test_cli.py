"""Tests for the mattertime CLI layer.

Every test mocks ``Session`` so the suite never touches the real
config directory.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import click.testing
import pytest

from mattertime.cli.main import cli
from mattertime.core.records import RecordStoreError
from mattertime.core.timer import InvalidStateError


@pytest.fixture()
def runner() -> click.testing.CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return click.testing.CliRunner()


# ---------------------------------------------------------------------------
# mattertime start
# ---------------------------------------------------------------------------


class TestStartCommand:
    """Tests for ``mattertime start``."""

    @patch("mattertime.cli.main.Session")
    def test_start_defaults(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.start.return_value = "Timer started"
        result = runner.invoke(cli, ["start"])
        assert result.exit_code == 0
        assert "Timer started" in result.output
        mock_session_cls.return_value.start.assert_called_once_with(
            "/", None, accept_suggestion=False
        )

    @patch("mattertime.cli.main.Session")
    def test_start_with_options(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.start.return_value = "Timer started for matter m-1"
        result = runner.invoke(cli, ["start", "--path", "/matters/m-1", "--accept"])
        assert result.exit_code == 0
        mock_session_cls.return_value.start.assert_called_once_with(
            "/matters/m-1", None, accept_suggestion=True
        )

    @patch("mattertime.cli.main.Session")
    def test_start_with_matter(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.start.return_value = "Timer started for matter m-2"
        result = runner.invoke(cli, ["start", "--matter", "m-2"])
        assert result.exit_code == 0
        mock_session_cls.return_value.start.assert_called_once_with(
            "/", "m-2", accept_suggestion=False
        )

    @patch("mattertime.cli.main.Session")
    def test_start_invalid_state_error(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        """When Session.start raises InvalidStateError, print it and exit 1."""
        mock_session_cls.return_value.start.side_effect = InvalidStateError(
            "start() is not valid from running state"
        )
        result = runner.invoke(cli, ["start"])
        assert result.exit_code == 1
        assert "start() is not valid from running state" in result.output


# ---------------------------------------------------------------------------
# mattertime status
# ---------------------------------------------------------------------------


class TestStatusCommand:
    """Tests for ``mattertime status``."""

    @patch("mattertime.cli.main.Session")
    def test_status_active(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.status.return_value = ("0:02:05 on m-1", 0)
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "0:02:05 on m-1" in result.output

    @patch("mattertime.cli.main.Session")
    def test_status_idle(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.status.return_value = ("No active timer", 1)
        result = runner.invoke(cli, ["status"])
        assert result.exit_code == 1
        assert "No active timer" in result.output


# ---------------------------------------------------------------------------
# mattertime stop
# ---------------------------------------------------------------------------


class TestStopCommand:
    """Tests for ``mattertime stop``."""

    @patch("mattertime.cli.main.Session")
    def test_stop_success(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.stop.return_value = ("Time logged: 2 min on m-1", 0)
        result = runner.invoke(cli, ["stop", "--notes", "drafted reply"])
        assert result.exit_code == 0
        assert "Time logged: 2 min on m-1" in result.output
        mock_session_cls.return_value.stop.assert_called_once_with("drafted reply")

    @patch("mattertime.cli.main.Session")
    def test_stop_failure_exits_1(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.stop.return_value = (
            "Stop failed: offline. Your time is not lost; try again.",
            1,
        )
        result = runner.invoke(cli, ["stop"])
        assert result.exit_code == 1
        assert "Your time is not lost" in result.output
        mock_session_cls.return_value.stop.assert_called_once_with(None)

    @patch("mattertime.cli.main.Session")
    def test_stop_idle(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.stop.side_effect = InvalidStateError(
            "stop() is not valid from idle state"
        )
        result = runner.invoke(cli, ["stop"])
        assert result.exit_code == 1
        assert "stop() is not valid from idle state" in result.output


# ---------------------------------------------------------------------------
# mattertime reset / notes / matter
# ---------------------------------------------------------------------------


class TestEditCommands:
    """Tests for ``mattertime reset``, ``notes`` and ``matter``."""

    @patch("mattertime.cli.main.Session")
    def test_reset(self, mock_session_cls: MagicMock, runner: click.testing.CliRunner) -> None:
        mock_session_cls.return_value.reset.return_value = "Timer discarded"
        result = runner.invoke(cli, ["reset"])
        assert result.exit_code == 0
        assert "Timer discarded" in result.output

    @patch("mattertime.cli.main.Session")
    def test_notes(self, mock_session_cls: MagicMock, runner: click.testing.CliRunner) -> None:
        mock_session_cls.return_value.set_notes.return_value = "Notes updated"
        result = runner.invoke(cli, ["notes", "call with client"])
        assert result.exit_code == 0
        assert "Notes updated" in result.output
        mock_session_cls.return_value.set_notes.assert_called_once_with("call with client")

    def test_notes_missing_argument(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["notes"])
        assert result.exit_code != 0

    @patch("mattertime.cli.main.Session")
    def test_matter(self, mock_session_cls: MagicMock, runner: click.testing.CliRunner) -> None:
        mock_session_cls.return_value.set_matter.return_value = "Matter set to m-3"
        result = runner.invoke(cli, ["matter", "m-3"])
        assert result.exit_code == 0
        assert "Matter set to m-3" in result.output

    @patch("mattertime.cli.main.Session")
    def test_matter_when_idle(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.set_matter.side_effect = InvalidStateError(
            "update_matter() is not valid from idle state"
        )
        result = runner.invoke(cli, ["matter", "m-3"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# mattertime suggest
# ---------------------------------------------------------------------------


class TestSuggestCommand:
    """Tests for ``mattertime suggest``."""

    @patch("mattertime.cli.main.Session")
    def test_suggest(self, mock_session_cls: MagicMock, runner: click.testing.CliRunner) -> None:
        mock_session_cls.return_value.suggest.return_value = (
            "m-1 (Suggested based on current page)",
            0,
        )
        result = runner.invoke(cli, ["suggest", "--path", "/matters/m-1"])
        assert result.exit_code == 0
        assert "m-1 (Suggested based on current page)" in result.output
        mock_session_cls.return_value.suggest.assert_called_once_with("/matters/m-1")

    @patch("mattertime.cli.main.Session")
    def test_unreadable_records(
        self, mock_session_cls: MagicMock, runner: click.testing.CliRunner
    ) -> None:
        mock_session_cls.return_value.suggest.side_effect = RecordStoreError(
            "time_records.json must contain a JSON list"
        )
        result = runner.invoke(cli, ["suggest"])
        assert result.exit_code == 1
        assert "must contain a JSON list" in result.output


# ---------------------------------------------------------------------------
# mattertime --version
# ---------------------------------------------------------------------------


class TestVersion:
    def test_version(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
