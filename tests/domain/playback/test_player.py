"""Tests for the mpv backend."""

from unittest.mock import MagicMock, patch

import pytest

from stream_minion.domain.errors import DecodeError, DeviceError
from stream_minion.domain.models import QualityTier, StreamLocator
from stream_minion.domain.playback import player
from stream_minion.domain.playback.player import MpvBackend, PlayerState

LOCATOR = StreamLocator("1", "https://cdn/1.flac", QualityTier.HIGH)


@pytest.fixture
def backend(tmp_path) -> MpvBackend:
    """Backend whose mpv process looks alive."""
    socket_path = tmp_path / "mpv.sock"
    socket_path.touch()
    process = MagicMock()
    process.poll.return_value = None

    mpv = MpvBackend(socket_path=str(socket_path), volume_ceiling=50)
    mpv.state = PlayerState(socket_path=str(socket_path), process=process)
    return mpv


class TestVolume:
    """Tests for mapping UI volume onto mpv's scale."""

    @pytest.mark.parametrize("volume,expected", [(0, 0.0), (50, 25.0), (100, 50.0), (140, 50.0)])
    def test_output_volume_respects_ceiling(self, backend, volume, expected):
        assert backend.output_volume(volume) == expected

    def test_set_volume_sends_scaled_value(self, backend):
        with patch.object(player, "send_mpv_command", return_value=True) as send:
            backend.set_volume(80)
        send.assert_called_once_with(
            backend.socket_path, {"command": ["set_property", "volume", 40.0]}
        )


class TestCommands:
    """Tests for transport commands over IPC."""

    def test_commands_fail_when_not_running(self, tmp_path):
        mpv = MpvBackend(socket_path=str(tmp_path / "missing.sock"))
        with pytest.raises(DeviceError):
            mpv.play()
        with pytest.raises(DeviceError):
            mpv.position()

    def test_rejected_command(self, backend):
        with patch.object(player, "send_mpv_command", return_value=False):
            with pytest.raises(DeviceError, match="rejected"):
                backend.pause()

    def test_stop_when_not_running_is_noop(self, tmp_path):
        MpvBackend(socket_path=str(tmp_path / "missing.sock")).stop()

    def test_load_refused(self, backend):
        with patch.object(player, "send_mpv_command", return_value=False):
            with pytest.raises(DecodeError):
                backend.load(LOCATOR)

    def test_load_returns_stable_duration_and_seeks(self, backend):
        with patch.object(player, "send_mpv_command", return_value=True) as send, patch.object(
            player, "get_mpv_property", return_value=200.0
        ), patch.object(player.time, "sleep"):
            duration = backend.load(LOCATOR, start=42.0)

        assert duration == 200.0
        assert backend.state.current_url == LOCATOR.url
        send.assert_any_call(backend.socket_path, {"command": ["seek", 42.0, "absolute"]})

    def test_position(self, backend):
        with patch.object(player, "get_mpv_property", return_value=12.5):
            assert backend.position() == 12.5


class TestFinished:
    """Tests for end-of-track detection."""

    def values(self, position, duration, eof):
        props = {"time-pos": position, "duration": duration, "eof-reached": eof}
        return lambda socket_path, name: props[name]

    def test_not_finished_without_track(self, backend):
        assert backend.is_finished() is False

    def test_finished_at_eof(self, backend):
        backend.state = backend.state._replace(current_url="u", playback_started_at=0.0)
        with patch.object(player, "get_mpv_property", side_effect=self.values(199.5, 200.0, True)):
            assert backend.is_finished() is True

    def test_eof_flag_needs_position(self, backend):
        backend.state = backend.state._replace(current_url="u", playback_started_at=0.0)
        with patch.object(player, "get_mpv_property", side_effect=self.values(50.0, 200.0, True)):
            assert backend.is_finished() is False

    def test_too_early_after_start(self, backend):
        backend.state = backend.state._replace(current_url="u", playback_started_at=player.time.time())
        with patch.object(player, "get_mpv_property", side_effect=self.values(200.0, 200.0, True)):
            assert backend.is_finished() is False


class TestIpc:
    """Tests for the JSON IPC helpers."""

    def test_reply_line_picked_among_events(self):
        sock = MagicMock()
        sock.recv.return_value = b'{"event":"pause"}\n{"data":3.5,"error":"success"}\n'
        with patch.object(player.socket, "socket", return_value=sock):
            assert player._request("/tmp/x", {"command": ["get_property", "time-pos"]}) == {
                "data": 3.5,
                "error": "success",
            }

    def test_missing_socket(self, tmp_path):
        assert player.send_mpv_command(str(tmp_path / "nope"), {"command": ["stop"]}) is False
        assert player.get_mpv_property(None, "volume") is None

    def test_replace_hint(self):
        with pytest.raises(AttributeError, match="_replace"):
            PlayerState().with_process(None)
