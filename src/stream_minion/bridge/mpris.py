"""
MPRIS media session for Linux desktops.

Publishes ``org.mpris.MediaPlayer2`` on the D-Bus session bus through pydbus
so desktop media keys, panel widgets and ``playerctl`` see Stream Minion as a
player. Incoming Play/Pause/Next/Previous/Stop/Seek calls go back to the
event loop through the MediaBridge; they never touch engine state directly.

D-Bus calls are served on a GLib main loop running in a daemon thread.
pydbus and PyGObject are imported when the session starts, so the rest of the
bridge works without them installed.
"""

import re
import threading
from typing import Any, Callable, Optional

from loguru import logger

from stream_minion.engine.commands import MediaKey

MPRIS_PATH = "/org/mpris/MediaPlayer2"
ROOT_INTERFACE = "org.mpris.MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
TRACK_PATH_PREFIX = "/org/stream_minion/track/"
NO_TRACK = "/org/mpris/MediaPlayer2/TrackList/NoTrack"

MICROSECONDS = 1_000_000

PLAYBACK_STATUS = {
    "playing": "Playing",
    "loading": "Playing",
    "paused": "Paused",
}

# Player properties that clients expect PropertiesChanged for
SIGNALLED_PROPERTIES = ("PlaybackStatus", "Metadata", "CanPlay", "CanPause", "CanSeek")


def playback_status(metadata: dict[str, Any]) -> str:
    """MPRIS PlaybackStatus for a published transport status."""
    return PLAYBACK_STATUS.get(metadata.get("status") or "", "Stopped")


def track_object_path(track_id: Optional[str]) -> str:
    """D-Bus object path identifying a track (``mpris:trackid``)."""
    if not track_id:
        return NO_TRACK
    return TRACK_PATH_PREFIX + re.sub(r"[^A-Za-z0-9_]", "_", str(track_id))


def mpris_metadata(metadata: dict[str, Any]) -> dict[str, tuple[str, Any]]:
    """Map published now-playing fields to MPRIS metadata as (signature, value) pairs."""
    if not metadata.get("title"):
        return {"mpris:trackid": ("o", NO_TRACK)}

    result = {
        "mpris:trackid": ("o", track_object_path(metadata.get("track_id"))),
        "xesam:title": ("s", metadata["title"]),
    }
    if metadata.get("artist"):
        result["xesam:artist"] = ("as", [metadata["artist"]])
    if metadata.get("album"):
        result["xesam:album"] = ("s", metadata["album"])
    if metadata.get("duration"):
        result["mpris:length"] = ("x", int(metadata["duration"] * MICROSECONDS))
    return result


def player_properties(metadata: dict[str, Any]) -> dict[str, tuple[str, Any]]:
    """The signalled Player properties for ``metadata``."""
    has_track = bool(metadata.get("title"))
    return {
        "PlaybackStatus": ("s", playback_status(metadata)),
        "Metadata": ("a{sv}", mpris_metadata(metadata)),
        "CanPlay": ("b", has_track),
        "CanPause": ("b", has_track),
        "CanSeek": ("b", has_track and bool(metadata.get("duration"))),
    }


def changed_properties(
    metadata: dict[str, Any], previous: Optional[dict[str, Any]]
) -> dict[str, tuple[str, Any]]:
    """Player properties whose value differs from what ``previous`` produced."""
    current = player_properties(metadata)
    if previous is None:
        return current
    before = player_properties(previous)
    return {name: value for name, value in current.items() if before.get(name) != value}


class MprisSession:
    """MediaSession published as an MPRIS player.

    Args:
        on_key: Receives media keys from D-Bus calls (MediaBridge.on_media_key)
        on_seek: Receives ``(seconds, relative)`` from Seek/SetPosition
        bus_name: Well-known name to own on the session bus
        identity: Human-readable player name shown by desktop widgets
    """

    dbus = """
    <node>
      <interface name="org.mpris.MediaPlayer2">
        <method name="Raise"/>
        <method name="Quit"/>
        <property name="CanQuit" type="b" access="read"/>
        <property name="CanRaise" type="b" access="read"/>
        <property name="HasTrackList" type="b" access="read"/>
        <property name="Identity" type="s" access="read"/>
        <property name="SupportedUriSchemes" type="as" access="read"/>
        <property name="SupportedMimeTypes" type="as" access="read"/>
      </interface>
      <interface name="org.mpris.MediaPlayer2.Player">
        <method name="Next"/>
        <method name="Previous"/>
        <method name="Pause"/>
        <method name="PlayPause"/>
        <method name="Stop"/>
        <method name="Play"/>
        <method name="Seek">
          <arg direction="in" name="Offset" type="x"/>
        </method>
        <method name="SetPosition">
          <arg direction="in" name="TrackId" type="o"/>
          <arg direction="in" name="Position" type="x"/>
        </method>
        <method name="OpenUri">
          <arg direction="in" name="Uri" type="s"/>
        </method>
        <property name="PlaybackStatus" type="s" access="read"/>
        <property name="Rate" type="d" access="read"/>
        <property name="Metadata" type="a{sv}" access="read"/>
        <property name="Position" type="x" access="read"/>
        <property name="MinimumRate" type="d" access="read"/>
        <property name="MaximumRate" type="d" access="read"/>
        <property name="CanGoNext" type="b" access="read"/>
        <property name="CanGoPrevious" type="b" access="read"/>
        <property name="CanPlay" type="b" access="read"/>
        <property name="CanPause" type="b" access="read"/>
        <property name="CanSeek" type="b" access="read"/>
        <property name="CanControl" type="b" access="read"/>
      </interface>
    </node>
    """

    def __init__(
        self,
        on_key: Callable[[MediaKey], None],
        on_seek: Callable[[float, bool], None],
        bus_name: str = "org.mpris.MediaPlayer2.stream_minion",
        identity: str = "Stream Minion",
    ):
        self._on_key = on_key
        self._on_seek = on_seek
        self.bus_name = bus_name
        self.identity = identity
        self._metadata: dict[str, Any] = {}

        self._glib = None
        self._bus = None
        self._publication = None
        self._main_loop = None
        self._thread: Optional[threading.Thread] = None

    # Lifecycle

    def start(self) -> None:
        """Own the bus name and serve D-Bus calls on a background GLib loop.

        Raises:
            ImportError: If pydbus or PyGObject is not installed
            gi.repository.GLib.Error: If the session bus is unreachable
        """
        from gi.repository import GLib
        from pydbus import SessionBus

        self._glib = GLib
        self._bus = SessionBus()
        self._publication = self._bus.publish(self.bus_name, (MPRIS_PATH, self))
        self._main_loop = GLib.MainLoop()
        self._thread = threading.Thread(target=self._main_loop.run, name="mpris", daemon=True)
        self._thread.start()
        logger.info(f"MPRIS session published as {self.bus_name}")

    def stop(self) -> None:
        if self._publication is not None:
            self._publication.unpublish()
            self._publication = None
        if self._main_loop is not None:
            self._main_loop.quit()
            self._main_loop = None
        self._bus = None
        logger.info("MPRIS session closed")

    @property
    def connected(self) -> bool:
        return self._bus is not None

    # MediaSession

    def update(self, metadata: dict[str, Any], previous: Optional[dict[str, Any]]) -> None:
        """Store the latest now-playing fields and signal what changed."""
        self._metadata = metadata
        if not self.connected:
            return

        changes = changed_properties(metadata, previous)
        if changes:
            # Emitted from the GLib thread that owns the connection
            self._glib.idle_add(self._emit_properties_changed, changes)

    def _emit_properties_changed(self, changes: dict[str, tuple[str, Any]]) -> bool:
        if self._bus is None:
            return False
        payload = {name: self._variant(sig, value) for name, (sig, value) in changes.items()}
        self._bus.con.emit_signal(
            None,
            MPRIS_PATH,
            PROPERTIES_INTERFACE,
            "PropertiesChanged",
            self._glib.Variant("(sa{sv}as)", (PLAYER_INTERFACE, payload, [])),
        )
        return False

    def _variant(self, signature: str, value: Any):
        Variant = self._glib.Variant
        if signature == "a{sv}":
            value = {key: Variant(sig, item) for key, (sig, item) in value.items()}
        return Variant(signature, value)

    # org.mpris.MediaPlayer2

    def Raise(self) -> None:
        pass

    def Quit(self) -> None:
        pass

    CanQuit = False
    CanRaise = False
    HasTrackList = False
    SupportedUriSchemes: list[str] = []
    SupportedMimeTypes: list[str] = []

    @property
    def Identity(self) -> str:
        return self.identity

    # org.mpris.MediaPlayer2.Player

    def Next(self) -> None:
        self._on_key(MediaKey.NEXT)

    def Previous(self) -> None:
        self._on_key(MediaKey.PREVIOUS)

    def Pause(self) -> None:
        self._on_key(MediaKey.PAUSE)

    def PlayPause(self) -> None:
        self._on_key(MediaKey.PLAY_PAUSE)

    def Stop(self) -> None:
        self._on_key(MediaKey.STOP)

    def Play(self) -> None:
        self._on_key(MediaKey.PLAY)

    def Seek(self, Offset: int) -> None:
        self._on_seek(Offset / MICROSECONDS, True)

    def SetPosition(self, TrackId: str, Position: int) -> None:
        if TrackId != track_object_path(self._metadata.get("track_id")):
            logger.debug(f"Ignoring SetPosition for stale track {TrackId}")
            return
        self._on_seek(Position / MICROSECONDS, False)

    def OpenUri(self, Uri: str) -> None:
        logger.debug(f"OpenUri not supported: {Uri}")

    Rate = 1.0
    MinimumRate = 1.0
    MaximumRate = 1.0
    CanGoNext = True
    CanGoPrevious = True
    CanControl = True

    @property
    def PlaybackStatus(self) -> str:
        return playback_status(self._metadata)

    @property
    def Metadata(self) -> dict:
        return {
            key: self._glib.Variant(sig, value)
            for key, (sig, value) in mpris_metadata(self._metadata).items()
        }

    @property
    def Position(self) -> int:
        return int((self._metadata.get("position") or 0) * MICROSECONDS)

    @property
    def CanPlay(self) -> bool:
        return bool(self._metadata.get("title"))

    @property
    def CanPause(self) -> bool:
        return bool(self._metadata.get("title"))

    @property
    def CanSeek(self) -> bool:
        return bool(self._metadata.get("title")) and bool(self._metadata.get("duration"))
