"""
Application wiring for Stream Minion.

Builds the session store, catalog, audio backend, event loop, media bridge
and control socket from configuration, and runs the interactive UI.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from stream_minion.bridge.media import CombinedSession, MediaBridge, NotifySendSession
from stream_minion.bridge.mpris import MprisSession
from stream_minion.core.config import Config, ensure_directories, get_data_dir, load_config
from stream_minion.core.output import log, setup_loguru
from stream_minion.domain.auth.device_link import DeviceLinkAuthenticator
from stream_minion.domain.auth.models import SessionKind
from stream_minion.domain.auth.redirect import RedirectAuthenticator
from stream_minion.domain.auth.session import SessionStore
from stream_minion.domain.auth.tokens import TokenStore
from stream_minion.domain.catalog.client import HttpCatalog
from stream_minion.domain.errors import DeviceError
from stream_minion.domain.playback.player import AudioBackend, MpvBackend, check_mpv_available
from stream_minion.engine.loop import EventLoop
from stream_minion.ipc.server import IPCServer, process_ipc_command


def get_log_file_path(config: Config) -> Path:
    """Log file from config, or the default under the data directory."""
    if config.logging.log_file:
        return Path(config.logging.log_file)
    return get_data_dir() / "stream-minion.log"


def setup_logging(config: Config) -> Path:
    """Configure loguru from the [logging] section; returns the log file path."""
    log_file = get_log_file_path(config)
    setup_loguru(
        log_file,
        level=config.logging.level,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
    )
    return log_file


def build_session_store(config: Config) -> SessionStore:
    """Create the session store with both login flows and restore saved tokens."""
    catalog = config.catalog
    engine = config.engine
    authenticators = {
        SessionKind.API: RedirectAuthenticator(
            client_id=catalog.client_id,
            client_secret=catalog.client_secret,
            redirect_uri=catalog.redirect_uri,
            login_timeout=engine.login_timeout,
            timeout=catalog.request_timeout,
        ),
        SessionKind.STREAMING: DeviceLinkAuthenticator(
            client_id=catalog.device_client_id,
            client_secret=catalog.device_client_secret,
            min_interval=engine.login_poll_interval,
            fallback_expires_in=engine.login_timeout,
            timeout=catalog.request_timeout,
        ),
    }
    store = SessionStore(
        authenticators,
        token_store=TokenStore(get_data_dir()),
        refresh_margin=engine.refresh_margin,
        refresh_retry_delay=engine.refresh_retry_delay,
    )
    store.restore()
    return store


def build_loop(
    config: Config,
    sessions: Optional[SessionStore] = None,
    backend: Optional[AudioBackend] = None,
) -> EventLoop:
    """Create the event loop with the HTTP catalog and (by default) an mpv backend."""
    sessions = sessions or build_session_store(config)
    catalog = HttpCatalog(
        country_code=config.catalog.country_code, timeout=config.catalog.request_timeout
    )
    if backend is None:
        backend = MpvBackend(
            socket_path=config.player.mpv_socket_path,
            volume_ceiling=config.player.volume_ceiling,
        )
    return EventLoop(config, sessions, catalog, backend)


def build_media_bridge(
    config: Config, submit
) -> tuple[MediaBridge, Optional[MprisSession]]:
    """Create the media bridge with notify-send and, when available, MPRIS.

    Returns:
        The bridge and the started MPRIS session (None when disabled or
        the session bus could not be reached)
    """
    combined = CombinedSession(
        NotifySendSession(
            enabled=config.notifications.enabled,
            show_errors=config.notifications.show_errors,
        )
    )
    bridge = MediaBridge(submit, combined)

    if not config.media.mpris:
        return bridge, None

    mpris = MprisSession(bridge.on_media_key, bridge.on_seek, bus_name=config.media.bus_name)
    try:
        mpris.start()
    except Exception as e:
        # Missing mpris extra or no session bus: notifications still work
        logger.warning(f"MPRIS media session unavailable: {e}")
        return bridge, None

    combined.sessions.append(mpris)
    return bridge, mpris


def interactive_mode(config_path: Optional[Path] = None) -> int:
    """Run the full-screen player. Returns a process exit code."""
    from stream_minion.ui.blessed.app import run_interactive_ui

    ensure_directories()
    config = load_config(config_path)
    log_file = setup_logging(config)

    if not check_mpv_available():
        log("❌ mpv is not installed or not on PATH", level="error")
        return 1

    backend = MpvBackend(
        socket_path=config.player.mpv_socket_path,
        volume_ceiling=config.player.volume_ceiling,
    )
    try:
        backend.start(volume=config.player.volume)
    except DeviceError as e:
        log(f"❌ {e}", level="error")
        return 1

    loop = build_loop(config, backend=backend)

    bridge, mpris = build_media_bridge(config, loop.submit)
    loop.subscribe(bridge.publish)

    ipc_server = None
    if config.ipc.enabled:
        ipc_server = IPCServer(
            lambda command, args: process_ipc_command(
                bridge, loop.submit, lambda: loop.snapshot, command, args
            )
        )
        ipc_server.start()

    logger.info("Stream Minion started")
    try:
        run_interactive_ui(loop, config)
    finally:
        if ipc_server:
            ipc_server.stop()
        if mpris:
            mpris.stop()
        loop.close()
        backend.close()
        logger.info("Stream Minion stopped")

    log(f"Goodbye! Log file: {log_file}", level="info")
    return 0
