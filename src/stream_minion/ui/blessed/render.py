"""Screen rendering functions for the blessed UI."""

from blessed import Terminal

from stream_minion.domain.auth.models import SessionStatus
from stream_minion.domain.models import format_time
from stream_minion.domain.playback.transport import ERROR, LOADING, PAUSED, PLAYING

from .keys import HELP_LINES
from .state import INPUT_PROMPTS, InputMode, UIState

DASHBOARD_HEIGHT = 8
INPUT_HEIGHT = 3

STATUS_ICONS = {
    PLAYING: "▶",
    PAUSED: "⏸",
    LOADING: "…",
    ERROR: "✗",
}

SESSION_COLORS = {
    SessionStatus.ACTIVE: "green",
    SessionStatus.PENDING: "yellow",
    SessionStatus.EXPIRED: "yellow",
    SessionStatus.UNAUTHENTICATED: "red",
}


def calculate_layout(term: Terminal, state: UIState, show_queue: bool = True) -> dict[str, int]:
    """
    Pure function: calculate y-positions for all regions.

    Args:
        term: blessed Terminal instance
        state: Current UI state
        show_queue: Whether the upcoming-queue pane is shown

    Returns:
        Dictionary with region positions and heights
    """
    input_height = INPUT_HEIGHT if state.input_mode != InputMode.NONE else 1
    queue_height = 0
    if show_queue and state.snapshot is not None:
        queue_height = len(state.snapshot.upcoming) + 1 if state.snapshot.upcoming else 0

    history_y = DASHBOARD_HEIGHT + queue_height
    return {
        "dashboard_y": 0,
        "queue_y": DASHBOARD_HEIGHT,
        "queue_height": queue_height,
        "history_y": history_y,
        "history_height": max(0, term.height - history_y - input_height),
        "input_y": term.height - input_height,
    }


def progress_bar(position: float, duration: float, width: int) -> str:
    """Text progress bar for ``position`` out of ``duration``."""
    width = max(1, width)
    if duration <= 0:
        return "─" * width
    filled = int(width * min(1.0, max(0.0, position / duration)))
    return "━" * filled + "─" * (width - filled)


def render_dashboard(term: Terminal, state: UIState, y: int) -> None:
    """Render now-playing, transport settings and session status."""
    snapshot = state.snapshot
    if snapshot is None:
        print(term.move_xy(0, y) + term.clear_eol + term.cyan("Starting..."))
        return

    transport = snapshot.transport
    track = transport.track or snapshot.current
    icon = STATUS_ICONS.get(transport.status, "■")

    lines = []
    if track is not None:
        lines.append(term.bold_white(f"{icon} {track.title}"))
        album = f" · {track.album}" if track.album else ""
        lines.append(term.cyan(f"  {track.artist}{album}"))
    else:
        lines.append(term.bold_white(f"{icon} Nothing queued"))
        lines.append("")

    elapsed = format_time(transport.position)
    total = format_time(transport.duration)
    bar_width = max(10, term.width - len(elapsed) - len(total) - 6)
    lines.append(
        f"  {elapsed} {term.green(progress_bar(transport.position, transport.duration, bar_width))} {total}"
    )

    if transport.status == ERROR and transport.error:
        lines.append(term.red(f"  {transport.error}"))
    else:
        lines.append(term.white(f"  {transport.status.value}"))

    position = "-" if snapshot.queue_position is None else snapshot.queue_position + 1
    lines.append(
        f"  vol {transport.volume:>3}  "
        f"quality {transport.quality.label}  "
        f"shuffle {'on' if snapshot.shuffle else 'off'}  "
        f"repeat {snapshot.repeat.value}  "
        f"queue {position}/{snapshot.queue_length}"
        + ("  (loading library)" if snapshot.library_loading else "")
    )

    sessions = []
    for view in snapshot.sessions:
        color = getattr(term, SESSION_COLORS.get(view.status, "white"))
        sessions.append(color(f"{view.kind.value}: {view.status.value}"))
    lines.append("  " + "   ".join(sessions))

    for view in snapshot.sessions:
        if view.status == SessionStatus.PENDING and view.auth_url:
            code = f" code {view.user_code}" if view.user_code else ""
            lines.append(term.yellow(f"  {view.kind.value} login: {view.auth_url}{code}"))

    for i in range(DASHBOARD_HEIGHT):
        line = lines[i] if i < len(lines) else ""
        print(term.move_xy(0, y + i) + term.clear_eol + line)


def render_queue(term: Terminal, state: UIState, y: int, height: int) -> None:
    """Render the next few tracks in play order."""
    if height <= 0 or state.snapshot is None:
        return

    print(term.move_xy(0, y) + term.clear_eol + term.bold("Up next"))
    for i, track in enumerate(state.snapshot.upcoming[: height - 1]):
        text = f"  {i + 1:>2}. {track.display_name}"
        print(term.move_xy(0, y + 1 + i) + term.clear_eol + term.white(text[: term.width - 1]))


def render_history(term: Terminal, state: UIState, y_start: int, height: int) -> None:
    """
    Render message history (or the key help when toggled).

    Args:
        term: blessed Terminal instance
        state: Current UI state
        y_start: Starting y position
        height: Available height for history
    """
    if height <= 0:
        return

    if state.show_help:
        lines = [(f"{keys:>8}  {desc}", "cyan") for keys, desc in HELP_LINES]
    else:
        lines = state.history
    visible_lines = lines[-height:] if len(lines) > height else lines

    color_map = {
        "white": term.white,
        "green": term.green,
        "red": term.red,
        "cyan": term.cyan,
        "yellow": term.yellow,
    }

    for i, (text, color) in enumerate(visible_lines):
        color_func = color_map.get(color, term.white)
        print(term.move_xy(0, y_start + i) + term.clear_eol + color_func(text[: term.width - 1]))

    # Clear any remaining lines in the region
    for i in range(len(visible_lines), height):
        print(term.move_xy(0, y_start + i) + term.clear_eol)


def render_input(term: Terminal, state: UIState, y: int) -> None:
    """Render the input line, or a key hint when no input is open."""
    if state.input_mode == InputMode.NONE:
        hint = "space play/pause · n/p next/prev · l/L login · ? help · q quit"
        print(term.move_xy(0, y) + term.clear_eol + term.cyan(hint[: term.width - 1]))
        return

    border = "─" * (term.width - 2)
    print(term.move_xy(0, y) + term.cyan(f"┌{border}┐"))

    prompt = term.green(f"{INPUT_PROMPTS[state.input_mode]}> ")
    prompt_width = len(INPUT_PROMPTS[state.input_mode]) + 2
    cursor = term.bold_white("█")

    # Show only the rightmost portion that fits
    max_width = term.width - prompt_width - 6
    visible_text = state.input_text[-max_width:] if max_width > 0 else ""

    padding = " " * max(0, term.width - prompt_width - len(visible_text) - 5)
    print(term.move_xy(0, y + 1) + term.cyan("│ ") + prompt + visible_text + cursor + padding + term.cyan(" │"))
    print(term.move_xy(0, y + 2) + term.cyan(f"└{border}┘"))
