"""Keyboard event handling."""

from blessed.keyboard import Keystroke

from stream_minion.core.config import PlayerConfig
from stream_minion.domain.auth.models import SessionKind, SessionStatus
from stream_minion.engine.commands import (
    AddTrack,
    ChangeVolume,
    Command,
    CycleQuality,
    CycleRepeat,
    LoginPoll,
    LoginStart,
    Logout,
    Next,
    PlayIndex,
    Previous,
    Quit,
    SeekRelative,
    Stop,
    TogglePlayPause,
    ToggleShuffle,
)

from .state import (
    InputMode,
    UIState,
    add_history_line,
    append_input_char,
    begin_input,
    cancel_input,
    clear_history,
    delete_input_char,
    toggle_help,
)

KeyResult = tuple[UIState, list[Command], bool]

HELP_LINES = [
    ("space", "play / pause"),
    ("n / p", "next / previous track"),
    ("← / →", "seek backward / forward"),
    ("+ / -", "volume up / down"),
    ("s / r", "toggle shuffle / cycle repeat"),
    ("Q", "cycle quality"),
    ("x", "stop"),
    ("g", "play queue position"),
    ("a", "add track by id"),
    ("l / L", "streaming / API login"),
    ("o / O", "streaming / API logout"),
    ("?", "toggle help"),
    ("q", "quit"),
]


def parse_key(key: Keystroke) -> dict:
    """
    Parse keystroke into event dictionary.

    Args:
        key: blessed Keystroke

    Returns:
        Event dictionary describing the key press
    """
    event = {
        "type": "unknown",
        "key": key,
        "name": key.name if hasattr(key, "name") else None,
        "char": str(key) if key and key.isprintable() else None,
    }

    if key.name == "KEY_ENTER" or key == "\n":
        event["type"] = "enter"
    elif key.name == "KEY_ESCAPE":
        event["type"] = "escape"
    elif key.name == "KEY_BACKSPACE" or key == "\x7f":
        event["type"] = "backspace"
    elif key.name == "KEY_LEFT":
        event["type"] = "arrow_left"
    elif key.name == "KEY_RIGHT":
        event["type"] = "arrow_right"
    elif key == "\x03":  # Ctrl+C
        event["type"] = "ctrl_c"
    elif key == "\x0c":  # Ctrl+L
        event["type"] = "ctrl_l"
    elif key and key.isprintable():
        event["type"] = "char"

    return event


def _session_status(state: UIState, kind: SessionKind) -> SessionStatus:
    view = state.snapshot.session(kind) if state.snapshot else None
    return view.status if view else SessionStatus.UNAUTHENTICATED


def submit_input(state: UIState) -> KeyResult:
    """Turn the finished input line into commands."""
    text = state.input_text.strip()
    mode = state.input_mode
    state = cancel_input(state)

    if not text:
        return state, [], False

    if mode == InputMode.REDIRECT_URL:
        return state, [LoginPoll(SessionKind.API, payload=text)], False

    if mode == InputMode.TRACK_ID:
        return state, [AddTrack(text)], False

    if mode == InputMode.QUEUE_INDEX:
        if not text.isdigit() or int(text) < 1:
            return add_history_line(state, f"Not a queue position: {text}", "yellow"), [], False
        return state, [PlayIndex(int(text) - 1)], False

    return state, [], False


def handle_input_key(state: UIState, event: dict) -> KeyResult:
    """Keys while the input line is open."""
    if event["type"] == "escape":
        return cancel_input(state), [], False
    if event["type"] == "enter":
        return submit_input(state)
    if event["type"] == "backspace":
        return delete_input_char(state), [], False
    if event["type"] == "char" and event["char"]:
        return append_input_char(state, event["char"]), [], False
    return state, [], False


def handle_key(state: UIState, key: Keystroke, player: PlayerConfig) -> KeyResult:
    """
    Handle keyboard input.

    Args:
        state: Current UI state
        key: blessed Keystroke
        player: Player config (seek and volume steps)

    Returns:
        Tuple of (updated state, commands to submit, quit requested)
    """
    event = parse_key(key)

    if event["type"] == "ctrl_c":
        return state, [Quit()], True

    if state.input_mode != InputMode.NONE:
        return handle_input_key(state, event)

    if event["type"] == "ctrl_l":
        return clear_history(state), [], False
    if event["type"] == "arrow_left":
        return state, [SeekRelative(-player.seek_step)], False
    if event["type"] == "arrow_right":
        return state, [SeekRelative(player.seek_step)], False
    if event["type"] == "escape" and state.show_help:
        return toggle_help(state), [], False
    if event["type"] != "char":
        return state, [], False

    char = event["char"]
    simple: dict[str, Command] = {
        " ": TogglePlayPause(),
        "n": Next(),
        "p": Previous(),
        "x": Stop(),
        "s": ToggleShuffle(),
        "r": CycleRepeat(),
        "Q": CycleQuality(),
        "+": ChangeVolume(player.volume_step),
        "=": ChangeVolume(player.volume_step),
        "-": ChangeVolume(-player.volume_step),
        "l": LoginStart(SessionKind.STREAMING),
        "o": Logout(SessionKind.STREAMING),
        "O": Logout(SessionKind.API),
    }
    if char in simple:
        return state, [simple[char]], False

    if char == "q":
        return state, [Quit()], True
    if char == "?":
        return toggle_help(state), [], False
    if char == "a":
        return begin_input(state, InputMode.TRACK_ID), [], False
    if char == "g":
        return begin_input(state, InputMode.QUEUE_INDEX), [], False
    if char == "L":
        # Second press while the browser login is pending opens the paste prompt
        if _session_status(state, SessionKind.API) == SessionStatus.PENDING:
            return begin_input(state, InputMode.REDIRECT_URL), [], False
        return state, [LoginStart(SessionKind.API)], False

    return state, [], False
