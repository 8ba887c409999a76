"""
Stream Minion CLI - Entry point with IPC support

This module serves as the CLI entry point: the interactive player, headless
login, and control commands for a running instance (hotkeys, media keys).
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Optional

from stream_minion import ipc
from stream_minion.core.config import (
    create_default_config,
    ensure_directories,
    get_config_path,
    load_config,
)
from stream_minion.core.output import log
from stream_minion.domain.auth.models import Active, Failed, SessionKind
from stream_minion.domain.errors import ConfigError, LoginFailed

CTL_COMMANDS = ("playpause", "play", "pause", "next", "previous", "stop", "status", "shuffle", "repeat", "quality", "volume")


def run_login(kind_name: str, config_path: Optional[Path] = None) -> int:
    """
    Log in without the UI.

    The API session prints an authorization URL and reads the redirect URL
    pasted back; the streaming session prints a link and code and polls
    until the device is linked.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    from stream_minion.main import build_session_store, setup_logging

    config = load_config(config_path)
    setup_logging(config)
    store = build_session_store(config)
    kind = SessionKind(kind_name)

    try:
        pending = store.start_login(kind)
    except LoginFailed as e:
        log(f"❌ Could not start {kind.value} login: {e}", level="error")
        return 1

    started = time.time()
    store.mark_pending(kind, pending, started)

    if kind == SessionKind.API:
        log("Open this URL in your browser and authorize Stream Minion:")
        log(pending.auth_url)
        try:
            redirect_url = input("Paste the URL you were redirected to: ").strip()
        except (EOFError, KeyboardInterrupt):
            store.reset(kind, error="Login cancelled")
            log("Login cancelled", level="warning")
            return 1
        result = store.poll(kind, pending, redirect_url)
    else:
        log(f"Visit {pending.auth_url}")
        if pending.user_code:
            log(f"and enter code: {pending.user_code}")
        deadline = started + pending.expires_in
        interval = pending.interval
        result = None
        try:
            while time.time() < deadline:
                time.sleep(interval)
                result = store.poll(kind, pending)
                if isinstance(result, (Active, Failed)):
                    break
                interval = result.interval or interval
        except KeyboardInterrupt:
            store.reset(kind, error="Login cancelled")
            log("Login cancelled", level="warning")
            return 1
        if not isinstance(result, (Active, Failed)):
            result = Failed("Login timed out")

    if isinstance(result, Active):
        store.activate(kind, result.tokens, time.time())
        log(f"✓ {kind.value} session active", level="success")
        return 0

    store.reset(kind, error=result.error)
    log(f"❌ {kind.value} login failed: {result.error}", level="error")
    return 1


def run_logout(kind_name: str, config_path: Optional[Path] = None) -> int:
    """Forget saved tokens for one or both sessions."""
    from stream_minion.main import build_session_store, setup_logging

    config = load_config(config_path)
    setup_logging(config)
    store = build_session_store(config)

    kinds = list(SessionKind) if kind_name == "all" else [SessionKind(kind_name)]
    for kind in kinds:
        store.reset(kind)
        log(f"Logged out of {kind.value} session")
    return 0


def run_init_config(force: bool = False) -> int:
    """Write the default config.toml."""
    ensure_directories()
    config_path = get_config_path()
    if config_path.exists() and not force:
        log(f"Config already exists at {config_path} (use --force to overwrite)", level="warning")
        return 1

    config_path.write_text(create_default_config() + "\n", encoding="utf-8")
    log(f"✓ Wrote default configuration to {config_path}", level="success")
    return 0


def send_ipc_command(command: str, args: list) -> int:
    """
    Send a command to running Stream Minion instance via IPC.

    Args:
        command: Command name
        args: Command arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    if command == "status":
        status = ipc.query_status()
        if status is None:
            print("Stream Minion is not running", file=sys.stderr)
            return 1
        for key, value in status.items():
            print(f"{key}: {value}")
        return 0

    success, message = ipc.send_command(command, args)

    if success:
        print(message)
        return 0
    else:
        print(message, file=sys.stderr)
        return 1


def main() -> None:
    """Main entry point for the stream-minion command."""
    parser = argparse.ArgumentParser(
        description="Stream Minion - terminal streaming music player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: project root, cwd, or ~/.config/stream-minion)",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    login_parser = subparsers.add_parser("login", help="Log in without starting the player")
    login_parser.add_argument("kind", choices=[k.value for k in SessionKind])

    logout_parser = subparsers.add_parser("logout", help="Forget saved session tokens")
    logout_parser.add_argument(
        "kind", nargs="?", default="all", choices=[k.value for k in SessionKind] + ["all"]
    )

    ctl_parser = subparsers.add_parser("ctl", help="Control a running instance")
    ctl_parser.add_argument("command", choices=CTL_COMMANDS)
    ctl_parser.add_argument("args", nargs="*", help="Command arguments (e.g. +5 for volume)")

    init_parser = subparsers.add_parser("init-config", help="Write the default config.toml")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    # Volume deltas such as -5 look like options; keep them as positional args
    args, unknown = parser.parse_known_args()
    if args.subcommand == "ctl":
        args.args = list(args.args) + unknown
    elif unknown:
        parser.error(f"unrecognized arguments: {' '.join(unknown)}")

    try:
        if args.subcommand == "login":
            sys.exit(run_login(args.kind, args.config))

        elif args.subcommand == "logout":
            sys.exit(run_logout(args.kind, args.config))

        elif args.subcommand == "ctl":
            sys.exit(send_ipc_command(args.command, args.args))

        elif args.subcommand == "init-config":
            sys.exit(run_init_config(args.force))

        # No subcommand - start interactive mode
        from stream_minion.main import interactive_mode

        sys.exit(interactive_mode(args.config))

    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
