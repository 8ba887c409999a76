"""Tests for the unified output helpers."""

import pytest

from stream_minion.core import output


@pytest.fixture(autouse=True)
def reset_mode():
    output.clear_blessed_mode()
    output.drain_pending_history_messages()
    yield
    output.clear_blessed_mode()
    output.drain_pending_history_messages()


class TestLog:
    """Tests for routing log() between console and UI history."""

    def test_prints_outside_blessed_mode(self, capsys):
        output.log("Logged in", level="success")
        assert "Logged in" in capsys.readouterr().out
        assert output.drain_pending_history_messages() == []

    def test_queues_in_blessed_mode(self, capsys):
        output.set_blessed_mode()
        output.log("Loading track", level="warning")

        assert capsys.readouterr().out == ""
        assert output.drain_pending_history_messages() == [("Loading track", "yellow")]
        assert output.drain_pending_history_messages() == []

    def test_level_color(self):
        output.set_blessed_mode()
        output.log("note", level="debug")
        assert output.drain_pending_history_messages() == [("note", "cyan")]


class TestSetupLoguru:
    """Tests for file logging."""

    def test_writes_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "stream-minion.log"
        output.setup_loguru(log_file, level="DEBUG")
        output.log("hello file")
        output.logger.remove()
        assert "hello file" in log_file.read_text()
