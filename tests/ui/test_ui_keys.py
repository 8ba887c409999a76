"""Tests for blessed UI state and key handling."""

import pytest
from blessed.keyboard import Keystroke

from stream_minion.core.config import PlayerConfig
from stream_minion.domain.auth.models import SessionKind, SessionStatus
from stream_minion.domain.playback.transport import TransportState
from stream_minion.engine.commands import (
    AddTrack,
    ChangeVolume,
    LoginPoll,
    LoginStart,
    Logout,
    Next,
    PlayIndex,
    Quit,
    SeekRelative,
    TogglePlayPause,
)
from stream_minion.engine.snapshot import SessionView, Snapshot
from stream_minion.ui.blessed.keys import handle_key
from stream_minion.ui.blessed.state import (
    InputMode,
    add_history_line,
    apply_snapshot,
    create_initial_state,
)

ENTER = Keystroke("\n", code=343, name="KEY_ENTER")
ESCAPE = Keystroke("\x1b", code=361, name="KEY_ESCAPE")
BACKSPACE = Keystroke("\x7f", code=263, name="KEY_BACKSPACE")
LEFT = Keystroke("\x1b[D", code=260, name="KEY_LEFT")


@pytest.fixture
def player() -> PlayerConfig:
    return PlayerConfig(seek_step=10.0, volume_step=5)


def press(state, player, *keys):
    """Feed keys in order; returns the final state and all commands."""
    commands = []
    quit_requested = False
    for key in keys:
        if not isinstance(key, Keystroke):
            key = Keystroke(key)
        state, new_commands, quit_requested = handle_key(state, key, player)
        commands.extend(new_commands)
    return state, commands, quit_requested


class TestKeys:
    """Tests for single-key commands."""

    def test_transport_keys(self, player):
        _, commands, _ = press(create_initial_state(), player, " ", "n", "+", "-")
        assert commands == [TogglePlayPause(), Next(), ChangeVolume(5), ChangeVolume(-5)]

    def test_seek_uses_step(self, player):
        _, commands, _ = press(create_initial_state(), player, LEFT)
        assert commands == [SeekRelative(-10.0)]

    def test_quit(self, player):
        _, commands, quit_requested = press(create_initial_state(), player, "q")
        assert commands == [Quit()]
        assert quit_requested

    def test_ctrl_c_quits_even_while_typing(self, player):
        state, _, _ = press(create_initial_state(), player, "a", "1")
        _, commands, quit_requested = press(state, player, "\x03")
        assert quit_requested
        assert commands == [Quit()]

    def test_logins_and_logouts(self, player):
        _, commands, _ = press(create_initial_state(), player, "l", "L", "o", "O")
        assert commands == [
            LoginStart(SessionKind.STREAMING),
            LoginStart(SessionKind.API),
            Logout(SessionKind.STREAMING),
            Logout(SessionKind.API),
        ]

    def test_unmapped_key(self, player):
        state = create_initial_state()
        assert press(state, player, "z") == (state, [], False)

    def test_help_toggle(self, player):
        state, _, _ = press(create_initial_state(), player, "?")
        assert state.show_help
        state, _, _ = press(state, player, ESCAPE)
        assert not state.show_help


class TestInputLine:
    """Tests for prompts that collect text."""

    def test_add_track(self, player):
        state, commands, _ = press(create_initial_state(), player, "a", "1", "2", "x", BACKSPACE)
        assert state.input_mode == InputMode.TRACK_ID
        assert state.input_text == "12"
        assert commands == []

        state, commands, _ = press(state, player, ENTER)
        assert state.input_mode == InputMode.NONE
        assert commands == [AddTrack("12")]

    def test_play_queue_position_is_one_based(self, player):
        _, commands, _ = press(create_initial_state(), player, "g", "3", ENTER)
        assert commands == [PlayIndex(2)]

    def test_invalid_queue_position(self, player):
        state, commands, _ = press(create_initial_state(), player, "g", "0", ENTER)
        assert commands == []
        assert state.history[-1] == ("Not a queue position: 0", "yellow")

    def test_escape_cancels(self, player):
        state, commands, _ = press(create_initial_state(), player, "a", "9", ESCAPE)
        assert state.input_mode == InputMode.NONE
        assert commands == []

    def test_second_api_login_press_opens_paste_prompt(self, player):
        pending = Snapshot(
            sequence=1,
            transport=TransportState(),
            sessions=(SessionView(SessionKind.API, SessionStatus.PENDING, auth_url="https://x"),),
        )
        state = apply_snapshot(create_initial_state(), pending)

        state, commands, _ = press(state, player, "L")
        assert commands == []
        assert state.input_mode == InputMode.REDIRECT_URL

        state, commands, _ = press(state, player, *"http://cb?code=1", ENTER)
        assert commands == [LoginPoll(SessionKind.API, payload="http://cb?code=1")]


class TestState:
    """Tests for snapshot application and history."""

    def test_snapshot_message_goes_to_history(self):
        snapshot = Snapshot(
            sequence=4, transport=TransportState(), message="Queue is empty", message_level="warning"
        )
        state = apply_snapshot(create_initial_state(), snapshot)
        assert state.snapshot is snapshot
        assert state.history == [("Queue is empty", "yellow")]

    def test_same_sequence_not_reapplied(self):
        snapshot = Snapshot(sequence=4, transport=TransportState(), message="hi")
        state = apply_snapshot(create_initial_state(), snapshot)
        assert apply_snapshot(state, snapshot) is state

    def test_history_is_bounded(self):
        state = create_initial_state(history_length=2)
        for i in range(5):
            state = add_history_line(state, str(i))
        assert [text for text, _ in state.history] == ["3", "4"]
