"""UI state management - immutable state updates."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from stream_minion.engine.snapshot import Snapshot


class InputMode(str, Enum):
    """What the input line is collecting, if anything."""

    NONE = "none"
    REDIRECT_URL = "redirect_url"  # API login: pasted browser redirect
    TRACK_ID = "track_id"  # Add a catalog track to the queue
    QUEUE_INDEX = "queue_index"  # Jump to a queue position


INPUT_PROMPTS = {
    InputMode.REDIRECT_URL: "Paste redirect URL",
    InputMode.TRACK_ID: "Track id",
    InputMode.QUEUE_INDEX: "Play queue #",
}


@dataclass
class UIState:
    """
    Complete UI state - immutable updates only.

    Engine state lives in the latest snapshot; everything else here belongs
    to the terminal (history pane, input line).
    """

    snapshot: Optional[Snapshot] = None
    last_sequence: int = -1

    # History
    history: list[tuple[str, str]] = field(default_factory=list)  # (text, color)
    history_length: int = 50

    # Input
    input_mode: InputMode = InputMode.NONE
    input_text: str = ""

    show_help: bool = False


def create_initial_state(history_length: int = 50) -> UIState:
    """Create the initial UI state."""
    return UIState(history_length=history_length)


def apply_snapshot(state: UIState, snapshot: Snapshot) -> UIState:
    """Take a new snapshot, moving its message into history."""
    if snapshot.sequence == state.last_sequence:
        return state

    state = replace(state, snapshot=snapshot, last_sequence=snapshot.sequence)
    if snapshot.message:
        color = {"warning": "yellow", "error": "red"}.get(snapshot.message_level, "white")
        state = add_history_line(state, snapshot.message, color)
    return state


def add_history_line(state: UIState, text: str, color: str = "white") -> UIState:
    """Add a line to history, keeping at most ``history_length`` lines."""
    new_history = (state.history + [(text, color)])[-state.history_length :]
    return replace(state, history=new_history)


def clear_history(state: UIState) -> UIState:
    """Clear history."""
    return replace(state, history=[])


def begin_input(state: UIState, mode: InputMode) -> UIState:
    """Open the input line for ``mode``."""
    return replace(state, input_mode=mode, input_text="")


def cancel_input(state: UIState) -> UIState:
    return replace(state, input_mode=InputMode.NONE, input_text="")


def append_input_char(state: UIState, char: str) -> UIState:
    """Append character to input text."""
    return replace(state, input_text=state.input_text + char)


def delete_input_char(state: UIState) -> UIState:
    """Delete last character from input text (backspace)."""
    if not state.input_text:
        return state
    return replace(state, input_text=state.input_text[:-1])


def toggle_help(state: UIState) -> UIState:
    return replace(state, show_help=not state.show_help)
