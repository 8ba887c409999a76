"""
MPV audio backend with JSON IPC for Stream Minion

Module-level helpers speak mpv's IPC protocol; MpvBackend wraps them behind
the audio backend contract the engine drives. All methods block on socket
I/O and are meant to run on the engine's audio lane.
"""

import json
import os
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, NamedTuple, Optional, Protocol

from loguru import logger

from stream_minion.domain.errors import DecodeError, DeviceError
from stream_minion.domain.models import StreamLocator

# Minimum valid duration (seconds) - durations below this indicate metadata errors
MIN_VALID_DURATION = 10.0

# Minimum playback time before allowing "track finished" (seconds)
MIN_PLAYBACK_TIME = 3.0


class AudioBackend(Protocol):
    """Audio output contract consumed by the event loop.

    Failures are raised as DecodeError (stream unusable) or DeviceError
    (player process or audio device unavailable).
    """

    def load(self, locator: StreamLocator, start: float = 0.0) -> float: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, position: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...

    def position(self) -> float: ...

    def is_finished(self) -> bool: ...

    def close(self) -> None: ...


class PlayerState(NamedTuple):
    """Immutable mpv process state."""

    socket_path: Optional[str] = None
    process: Optional[subprocess.Popen] = None
    current_url: Optional[str] = None
    playback_started_at: Optional[float] = None  # Unix timestamp

    def __getattr__(self, name: str) -> Any:
        """Provide helpful error for missing attributes, especially with_* methods."""
        if name.startswith("with_"):
            raise AttributeError(
                f"PlayerState is a NamedTuple and does not have '{name}' method. "
                f"Use '._replace({name[5:]}=value)' instead."
            )
        raise AttributeError(f"PlayerState has no attribute '{name}'")


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(["mpv", "--version"], capture_output=True, text=True, timeout=5)
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def default_socket_path() -> str:
    return str(Path(tempfile.gettempdir()) / f"stream-minion-mpv-{os.getpid()}")


def start_mpv(socket_path: str, volume: float = 50.0) -> PlayerState:
    """Start MPV with JSON IPC and return its state.

    Raises:
        DeviceError: If mpv cannot be started or its socket never answers
    """
    logger.info(f"Starting MPV player with socket: {socket_path}")

    if os.path.exists(socket_path):
        logger.debug(f"Removing existing socket: {socket_path}")
        os.unlink(socket_path)

    cmd = [
        "mpv",
        "--idle=yes",
        "--no-video",
        "--no-terminal",
        f"--input-ipc-server={socket_path}",
        f"--volume={volume}",
        "--keep-open=yes",
        "--load-scripts=no",
    ]

    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )
    except (subprocess.SubprocessError, OSError) as e:
        raise DeviceError(f"Failed to start mpv: {e}") from e

    # Wait for socket to be created
    timeout = 5.0
    start_time = time.time()
    while not os.path.exists(socket_path):
        if time.time() - start_time > timeout:
            process.kill()
            raise DeviceError(f"mpv socket creation timeout after {timeout}s")
        time.sleep(0.1)

    if not send_mpv_command(socket_path, {"command": ["get_property", "idle-active"]}):
        process.kill()
        raise DeviceError("mpv socket connection test failed")

    logger.info("MPV started successfully")
    return PlayerState(socket_path=socket_path, process=process)


def stop_mpv(state: PlayerState) -> None:
    """Stop MPV process and cleanup."""
    if state.process:
        try:
            state.process.kill()
            state.process.wait(timeout=2.0)
        except (OSError, subprocess.TimeoutExpired):
            pass  # Process already terminated or couldn't be killed

    if state.socket_path and os.path.exists(state.socket_path):
        try:
            os.unlink(state.socket_path)
        except OSError:
            pass


def is_mpv_running(state: PlayerState) -> bool:
    """Check if MPV process is still running."""
    if not state.process:
        return False

    if state.process.poll() is not None:
        return False

    if not state.socket_path or not os.path.exists(state.socket_path):
        return False

    return True


def _request(socket_path: str, command: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Send one JSON IPC command and return the decoded reply, None on failure."""
    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(2.0)
        sock.connect(socket_path)
        sock.send((json.dumps(command) + "\n").encode("utf-8"))
        response = sock.recv(4096).decode("utf-8").strip()
        sock.close()
    except (socket.error, OSError):
        return None

    # mpv may interleave event lines; the reply is the line with an "error" key
    for line in response.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in data:
            return data
    return {} if not response else None


def send_mpv_command(socket_path: Optional[str], command: dict[str, Any]) -> bool:
    """Send JSON IPC command to MPV."""
    if not socket_path or not os.path.exists(socket_path):
        return False

    reply = _request(socket_path, command)
    if reply is None:
        return False
    return not reply or reply.get("error") == "success"


def get_mpv_property(socket_path: Optional[str], property_name: str) -> Any:
    """Get a property value from MPV."""
    if not socket_path or not os.path.exists(socket_path):
        return None

    reply = _request(socket_path, {"command": ["get_property", property_name]})
    if reply and reply.get("error") == "success":
        return reply.get("data")
    return None


class MpvBackend:
    """Audio backend driving an mpv process over JSON IPC.

    Args:
        socket_path: IPC socket path, a per-process temp path when None
        volume_ceiling: Percentage of mpv's volume scale that volume 100 maps to
    """

    def __init__(self, socket_path: Optional[str] = None, volume_ceiling: int = 100):
        self.socket_path = socket_path or default_socket_path()
        self.volume_ceiling = volume_ceiling
        self.state = PlayerState(socket_path=self.socket_path)

    def start(self, volume: float = 50.0) -> None:
        self.state = start_mpv(self.socket_path, self.output_volume(volume))

    def output_volume(self, volume: float) -> float:
        """Map a 0-100 UI volume onto mpv's scale, capped by the ceiling."""
        return max(0.0, min(100.0, volume)) * self.volume_ceiling / 100

    def _command(self, *args: Any) -> None:
        if not is_mpv_running(self.state):
            raise DeviceError("mpv is not running")
        if not send_mpv_command(self.socket_path, {"command": list(args)}):
            raise DeviceError(f"mpv rejected command {args[0]}")

    def load(self, locator: StreamLocator, start: float = 0.0) -> float:
        """Load a stream, wait for its metadata, optionally seek, and return its duration.

        Raises:
            DeviceError: If mpv is not running
            DecodeError: If mpv refuses the stream
        """
        if not is_mpv_running(self.state):
            raise DeviceError("mpv is not running")

        if not send_mpv_command(self.socket_path, {"command": ["loadfile", locator.url, "replace"]}):
            raise DecodeError(f"mpv could not load stream for track {locator.track_id}")

        # Wait for file metadata with stability checks
        max_wait = 2.0
        poll_interval = 0.05
        elapsed = 0.0
        last_duration = None
        stable_reads = 0

        while elapsed < max_wait:
            duration = get_mpv_property(self.socket_path, "duration")
            if duration and duration > 0:
                if last_duration is not None and abs(duration - last_duration) < 0.1:
                    stable_reads += 1
                    if stable_reads >= 2:
                        break
                else:
                    stable_reads = 0
                last_duration = duration
            time.sleep(poll_interval)
            elapsed += poll_interval

        if last_duration is None:
            logger.warning(f"Metadata load incomplete after {max_wait}s for {locator.track_id}")

        if start > 0:
            send_mpv_command(self.socket_path, {"command": ["seek", start, "absolute"]})

        self.state = self.state._replace(
            current_url=locator.url, playback_started_at=time.time()
        )
        return float(last_duration or 0.0)

    def play(self) -> None:
        self._command("set_property", "pause", False)

    def pause(self) -> None:
        self._command("set_property", "pause", True)

    def stop(self) -> None:
        if not is_mpv_running(self.state):
            return
        send_mpv_command(self.socket_path, {"command": ["stop"]})
        self.state = self.state._replace(current_url=None, playback_started_at=None)

    def seek(self, position: float) -> None:
        self._command("seek", position, "absolute")

    def set_volume(self, volume: float) -> None:
        """Set UI volume (0-100); mpv receives it scaled by the ceiling."""
        self._command("set_property", "volume", self.output_volume(volume))

    def position(self) -> float:
        """Current playback position in seconds.

        Raises:
            DeviceError: If mpv is not running
        """
        if not is_mpv_running(self.state):
            raise DeviceError("mpv is not running")
        return float(get_mpv_property(self.socket_path, "time-pos") or 0.0)

    def is_finished(self) -> bool:
        """Check if the stream finished with multiple validation layers.

        Safeguards:
        1. Minimum playback time (prevents incomplete metadata issues)
        2. Duration sanity check (detects corrupted/incomplete metadata)
        3. EOF flag validation with position confirmation
        """
        if not is_mpv_running(self.state) or self.state.current_url is None:
            return False

        started = self.state.playback_started_at
        if started is not None and time.time() - started < MIN_PLAYBACK_TIME:
            return False

        position = get_mpv_property(self.socket_path, "time-pos") or 0.0
        duration = get_mpv_property(self.socket_path, "duration") or 0.0
        eof = get_mpv_property(self.socket_path, "eof-reached")

        if 0 < duration < MIN_VALID_DURATION:
            return eof is True and position >= duration - 0.1

        return eof is True and duration > 0 and position >= duration - 1.0

    def close(self) -> None:
        stop_mpv(self.state)
        self.state = PlayerState(socket_path=self.socket_path)
