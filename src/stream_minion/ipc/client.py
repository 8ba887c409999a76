"""IPC client for sending commands to a running Stream Minion instance."""

import json
import os
import socket
from pathlib import Path
from typing import Any, Optional


def get_socket_path(create: bool = False) -> Path:
    """
    Get the path to the Stream Minion control socket.

    Args:
        create: Create the socket directory if missing

    Returns:
        Path to Unix socket
    """
    # Use XDG_RUNTIME_DIR if available, otherwise fall back to ~/.local/share
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        socket_dir = Path(runtime_dir) / "stream-minion"
    else:
        socket_dir = Path.home() / ".local" / "share" / "stream-minion"

    if create:
        socket_dir.mkdir(parents=True, exist_ok=True)
    return socket_dir / "control.sock"


def request(
    command: str, args: Optional[list[str]] = None, socket_path: Optional[Path] = None
) -> dict[str, Any]:
    """
    Send one command and return the decoded response.

    Args:
        command: Command name (e.g., 'playpause', 'next', 'status')
        args: Command arguments (optional)
        socket_path: Socket to connect to, the default control socket if None

    Returns:
        Response dict with 'success', 'message' and optionally 'data'
    """
    socket_path = socket_path or get_socket_path()

    if not socket_path.exists():
        return {"success": False, "message": "Stream Minion is not running"}

    payload = {"command": command, "args": args or []}

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(5.0)
            sock.connect(str(socket_path))
            sock.sendall((json.dumps(payload) + "\n").encode("utf-8"))

            response_data = b""
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                response_data += chunk
                # Responses are newline-terminated JSON
                if b"\n" in response_data:
                    break

        if not response_data:
            return {"success": False, "message": "No response from Stream Minion"}

        return json.loads(response_data.decode("utf-8").strip())

    except socket.timeout:
        return {"success": False, "message": "Stream Minion not responding (timeout)"}
    except (ConnectionRefusedError, FileNotFoundError):
        return {"success": False, "message": "Stream Minion not running"}
    except json.JSONDecodeError as e:
        return {"success": False, "message": f"Invalid response from Stream Minion: {e}"}
    except OSError as e:
        return {"success": False, "message": f"Failed to send command: {e}"}


def send_command(
    command: str, args: Optional[list[str]] = None, socket_path: Optional[Path] = None
) -> tuple[bool, str]:
    """
    Send a command to the running Stream Minion instance.

    Returns:
        (success, message) tuple
    """
    response = request(command, args, socket_path)
    return bool(response.get("success", False)), response.get("message", "No message")


def query_status(socket_path: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Fetch the running instance's status summary, None if unreachable."""
    response = request("status", socket_path=socket_path)
    if not response.get("success"):
        return None
    return response.get("data")
