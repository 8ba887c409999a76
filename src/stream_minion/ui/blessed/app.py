"""Main event loop and entry point for blessed UI."""

import sys

from blessed import Terminal
from loguru import logger

from stream_minion.core.config import Config
from stream_minion.core.output import (
    clear_blessed_mode,
    drain_pending_history_messages,
    set_blessed_mode,
)
from stream_minion.engine.commands import Quit
from stream_minion.engine.loop import EventLoop

from .keys import handle_key
from .render import calculate_layout, render_dashboard, render_history, render_input, render_queue
from .state import UIState, add_history_line, apply_snapshot, create_initial_state


def run_interactive_ui(loop: EventLoop, config: Config) -> None:
    """
    Run the interactive UI until the user quits.

    The calling thread becomes the event loop owner: it reads keys, submits
    them, pumps the loop and renders the latest snapshot.

    Args:
        loop: Event loop to drive
        config: Application configuration
    """
    term = Terminal()
    state = create_initial_state(config.ui.history_length)

    set_blessed_mode()
    try:
        with term.fullscreen(), term.cbreak(), term.hidden_cursor():
            try:
                main_loop(term, loop, state, config)
            except KeyboardInterrupt:
                # Clean exit on Ctrl+C
                loop.submit(Quit())
    finally:
        clear_blessed_mode()


def main_loop(term: Terminal, loop: EventLoop, state: UIState, config: Config) -> UIState:
    """
    Key → submit → pump → render, until Quit.

    Args:
        term: blessed Terminal instance
        loop: Event loop to drive
        state: Initial UI state
        config: Application configuration

    Returns:
        Final UI state
    """
    refresh_interval = config.engine.refresh_interval
    last_render_key = None
    last_size = None

    loop.start()

    while loop.running:
        for message, color in drain_pending_history_messages():
            state = add_history_line(state, message, color)
        state = apply_snapshot(state, loop.snapshot)

        # Only redraw if something visible changed
        size = (term.width, term.height)
        render_key = (
            state.last_sequence,
            int(state.snapshot.transport.position) if state.snapshot else 0,
            len(state.history),
            state.history[-1] if state.history else None,
            state.input_mode,
            state.input_text,
            state.show_help,
        )
        if render_key != last_render_key or size != last_size:
            if size != last_size:
                print(term.clear)
            last_render_key, last_size = render_key, size
            render(term, state, config)

        key = term.inkey(timeout=refresh_interval)
        if key:
            state, commands, quit_requested = handle_key(state, key, config.player)
            for command in commands:
                loop.submit(command)
            if quit_requested:
                logger.info("Quit requested from keyboard")

        loop.pump(timeout=0)

    return state


def render(term: Terminal, state: UIState, config: Config) -> None:
    """Render every region of the screen."""
    layout = calculate_layout(term, state, show_queue=config.ui.show_queue)

    render_dashboard(term, state, layout["dashboard_y"])
    render_queue(term, state, layout["queue_y"], layout["queue_height"])
    render_history(term, state, layout["history_y"], layout["history_height"])
    render_input(term, state, layout["input_y"])

    sys.stdout.flush()
