"""IPC server for receiving commands from external processes."""

import json
import socket
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from stream_minion.bridge.media import MediaBridge
from stream_minion.engine.commands import (
    ChangeVolume,
    Command,
    CycleQuality,
    CycleRepeat,
    MediaKey,
    ToggleShuffle,
)
from stream_minion.engine.snapshot import Snapshot
from stream_minion.ipc.client import get_socket_path

Response = dict[str, Any]

MEDIA_KEY_COMMANDS = {key.value: key for key in MediaKey}


def process_ipc_command(
    bridge: MediaBridge,
    submit: Callable[[Command], None],
    get_snapshot: Callable[[], Snapshot],
    command: str,
    args: list[str],
) -> Response:
    """
    Process one control-socket command.

    Media keys go through the bridge like any other OS media key; a few
    extra commands are submitted straight to the loop. Nothing here touches
    engine state, so this is safe on the server thread.

    Args:
        bridge: Media bridge that forwards media keys
        submit: Thread-safe loop command sink
        get_snapshot: Returns the latest published snapshot
        command: Command name
        args: Command arguments

    Returns:
        Response dict with 'success', 'message' and optionally 'data'
    """
    if command in MEDIA_KEY_COMMANDS:
        bridge.on_media_key(MEDIA_KEY_COMMANDS[command])
        return {"success": True, "message": f"Sent {command}"}

    if command == "status":
        summary = get_snapshot().summary()
        title = summary["title"] or "nothing"
        return {
            "success": True,
            "message": f"{summary['status']}: {title}",
            "data": summary,
        }

    if command == "volume":
        if not args:
            return {"success": False, "message": "volume needs a delta, e.g. +5 or -5"}
        try:
            delta = float(args[0])
        except ValueError:
            return {"success": False, "message": f"Invalid volume delta: {args[0]}"}
        submit(ChangeVolume(delta))
        return {"success": True, "message": f"Volume {args[0]}"}

    simple = {
        "shuffle": ToggleShuffle,
        "repeat": CycleRepeat,
        "quality": CycleQuality,
    }
    if command in simple:
        submit(simple[command]())
        return {"success": True, "message": f"Sent {command}"}

    return {"success": False, "message": f"Unknown command: {command}"}


class IPCServer:
    """Unix socket server for IPC commands.

    Runs in a background thread and answers one JSON line per connection.

    Args:
        handler: Called with (command, args) on the server thread; returns the response
        socket_path: Socket to bind, the default control socket if None
    """

    def __init__(
        self,
        handler: Callable[[str, list[str]], Response],
        socket_path: Optional[Path] = None,
    ):
        self.handler = handler
        self.socket_path = socket_path or get_socket_path(create=True)
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    def start(self) -> None:
        """Start the IPC server in a background thread."""
        if self.running:
            return

        # Remove stale socket if it exists
        if self.socket_path.exists():
            try:
                self.socket_path.unlink()
            except OSError:
                pass

        self.running = True
        self._ready.clear()
        self.thread = threading.Thread(target=self._run_server, name="sm-ipc", daemon=True)
        self.thread.start()
        self._ready.wait(timeout=2.0)

    def stop(self) -> None:
        """Stop the IPC server and cleanup."""
        self.running = False

        # Close server socket to unblock accept()
        if self.server_socket:
            try:
                self.server_socket.close()
            except OSError:
                pass

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=2.0)

        if self.socket_path.exists():
            try:
                self.socket_path.unlink()
            except OSError:
                pass

    def _run_server(self) -> None:
        """Run the Unix socket server loop."""
        try:
            self.server_socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            self.server_socket.bind(str(self.socket_path))
            self.server_socket.listen(5)
            self.server_socket.settimeout(1.0)  # Poll every second
            logger.info(f"Control socket listening at {self.socket_path}")
        except OSError:
            logger.exception("IPC server could not bind")
            self.running = False
            return
        finally:
            self._ready.set()

        try:
            while self.running:
                try:
                    client_socket, _ = self.server_socket.accept()
                    # Handle in same thread (simple, sequential processing)
                    self._handle_client(client_socket)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self.running:  # Only log if we're still supposed to be running
                        logger.error(f"Error accepting connection: {e}")
        finally:
            self.server_socket.close()

    def _handle_client(self, client_socket: socket.socket) -> None:
        """
        Handle a client connection.

        Args:
            client_socket: Connected client socket
        """
        try:
            data = b""
            while True:
                chunk = client_socket.recv(4096)
                if not chunk:
                    break
                data += chunk
                if b"\n" in data:
                    break

            if not data:
                return

            try:
                payload = json.loads(data.decode("utf-8").strip())
                command = str(payload.get("command", ""))
                args = [str(arg) for arg in payload.get("args", [])]
            except (json.JSONDecodeError, AttributeError) as e:
                response: Response = {"success": False, "message": f"Invalid JSON: {e}"}
            else:
                logger.debug(f"[IPC] {command} {' '.join(args)}".strip())
                try:
                    response = self.handler(command, args)
                except Exception as e:
                    logger.exception(f"IPC command {command} failed")
                    response = {"success": False, "message": f"Error processing command: {e}"}

            client_socket.sendall((json.dumps(response) + "\n").encode("utf-8"))
        except OSError as e:
            logger.debug(f"IPC client connection failed: {e}")
        finally:
            client_socket.close()
