"""IPC (Inter-Process Communication) for Stream Minion.

Lets `stream-minion ctl ...` and desktop hotkeys drive a running instance.
"""

from .client import get_socket_path, query_status, send_command

__all__ = ["get_socket_path", "query_status", "send_command"]
