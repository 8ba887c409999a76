"""
Configuration management for Stream Minion
"""

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from stream_minion.domain.errors import ConfigError

VALID_QUALITIES = ("LOW", "HIGH", "LOSSLESS")
VALID_REPEAT_MODES = ("off", "all", "one")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class CatalogConfig:
    """Configuration for the streaming catalog and its two login flows."""

    # Authorization-code (PKCE) client used for the API session
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost"
    # Device-link client used for the streaming session
    device_client_id: str = ""
    device_client_secret: str = ""
    country_code: str = "US"
    request_timeout: float = 10.0


@dataclass
class PlayerConfig:
    """Configuration for audio output and initial transport settings."""

    mpv_socket_path: Optional[str] = None
    volume: int = 50
    # Percentage of mpv's volume scale that 100 maps to
    volume_ceiling: int = 100
    quality: str = "HIGH"
    repeat: str = "off"
    shuffle_on_start: bool = False
    seek_step: float = 5.0
    volume_step: int = 5


@dataclass
class EngineConfig:
    """Timing knobs for the event loop and its background tasks."""

    refresh_interval: float = 0.1
    tick_interval: float = 0.25
    position_poll_interval: float = 1.0
    resolve_timeout: float = 15.0
    login_poll_interval: float = 3.0
    login_timeout: float = 300.0
    refresh_margin: float = 60.0
    refresh_retry_delay: float = 10.0
    max_workers: int = 4


@dataclass
class UIConfig:
    """Configuration for user interface."""

    history_length: int = 50
    show_queue: bool = True
    queue_preview: int = 8


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = (
        None  # Custom log file path (default: ~/.local/share/stream-minion/stream-minion.log)
    )
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass
class IPCConfig:
    """Configuration for the control socket (media keys, hotkeys)."""

    enabled: bool = True


@dataclass
class MediaConfig:
    """Configuration for the desktop media session (MPRIS on Linux)."""

    mpris: bool = True
    bus_name: str = "org.mpris.MediaPlayer2.stream_minion"


@dataclass
class NotificationsConfig:
    """Configuration for desktop now-playing notifications."""

    enabled: bool = True
    show_errors: bool = True


@dataclass
class Config:
    """Main configuration object."""

    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    ipc: IPCConfig = field(default_factory=IPCConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    def validate(self) -> None:
        """Validate cross-field configuration values.

        Raises:
            ConfigError: If a value is out of range or not a known option
        """
        problems = []
        if self.player.quality.upper() not in VALID_QUALITIES:
            problems.append(
                f"player.quality must be one of {VALID_QUALITIES}, got {self.player.quality!r}"
            )
        if self.player.repeat.lower() not in VALID_REPEAT_MODES:
            problems.append(
                f"player.repeat must be one of {VALID_REPEAT_MODES}, got {self.player.repeat!r}"
            )
        if not 0 <= self.player.volume <= 100:
            problems.append(f"player.volume must be 0-100, got {self.player.volume}")
        if not 1 <= self.player.volume_ceiling <= 100:
            problems.append(
                f"player.volume_ceiling must be 1-100, got {self.player.volume_ceiling}"
            )
        if self.engine.max_workers < 1:
            problems.append("engine.max_workers must be at least 1")
        for name in (
            "refresh_interval",
            "tick_interval",
            "resolve_timeout",
            "login_poll_interval",
            "login_timeout",
        ):
            if getattr(self.engine, name) <= 0:
                problems.append(f"engine.{name} must be positive")
        if self.logging.level.upper() not in VALID_LOG_LEVELS:
            problems.append(f"logging.level must be one of {VALID_LOG_LEVELS}")
        if not self.media.bus_name.startswith("org.mpris.MediaPlayer2."):
            problems.append(
                f"media.bus_name must start with 'org.mpris.MediaPlayer2.', got {self.media.bus_name!r}"
            )

        if problems:
            raise ConfigError("; ".join(problems))


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "stream-minion"
    return Path.home() / ".config" / "stream-minion"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Used during development so the project's config is picked up even when
    the working directory differs.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            if config_path.exists():
                return config_path
            return None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/stream-minion (or ~/.config/stream-minion)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path (tokens, logs, control socket fallback)."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "stream-minion"
    return Path.home() / ".local" / "share" / "stream-minion"


def ensure_directories() -> None:
    """Create config and data directories if missing."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Stream Minion Configuration

[catalog]
# Authorization-code client for the API session (browser login + pasted redirect URL)
client_id = ""
client_secret = ""
redirect_uri = "http://localhost"

# Device-link client for the streaming session (visit link, enter code)
device_client_id = ""
device_client_secret = ""

country_code = "US"
request_timeout = 10.0

[player]
# Path for mpv socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/stream-minion-mpv"

# Default volume (0-100)
volume = 50

# Loudness cap: volume 100 maps to this percentage of mpv's scale
volume_ceiling = 100

# LOW (96 kbps), HIGH (320 kbps), LOSSLESS
quality = "HIGH"

# off, all, one
repeat = "off"
shuffle_on_start = false

seek_step = 5.0
volume_step = 5

[engine]
refresh_interval = 0.1
tick_interval = 0.25
position_poll_interval = 1.0
resolve_timeout = 15.0
login_poll_interval = 3.0
login_timeout = 300.0
refresh_margin = 60.0
refresh_retry_delay = 10.0
max_workers = 4

[ui]
history_length = 50
show_queue = true
queue_preview = 8

[logging]
level = "INFO"
max_file_size_mb = 10
backup_count = 5

[ipc]
enabled = true

[media]
# Publish an MPRIS media session on the D-Bus session bus (needs the mpris extra)
mpris = true
bus_name = "org.mpris.MediaPlayer2.stream_minion"

[notifications]
enabled = true
show_errors = true
""".strip()


def _load_section(section_cls: type, data: dict[str, Any], default: Any) -> Any:
    """Build a section dataclass from TOML data, keeping defaults for missing keys."""
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown {section_cls.__name__} keys: {sorted(unknown)}")

    values = {name: getattr(default, name) for name in known}
    values.update({k: v for k, v in data.items() if k in known})
    return section_cls(**values)


def parse_config(toml_data: dict[str, Any]) -> Config:
    """Convert parsed TOML into a Config, applying environment overrides.

    Environment variables override TOML values:
    - STREAM_MINION_CLIENT_ID / STREAM_MINION_CLIENT_SECRET
    - STREAM_MINION_DEVICE_CLIENT_ID / STREAM_MINION_DEVICE_CLIENT_SECRET
    """
    config = Config()

    if "catalog" in toml_data:
        config.catalog = _load_section(CatalogConfig, toml_data["catalog"], config.catalog)
    if "player" in toml_data:
        config.player = _load_section(PlayerConfig, toml_data["player"], config.player)
        if config.player.mpv_socket_path:
            config.player.mpv_socket_path = str(
                Path(config.player.mpv_socket_path).expanduser()
            )
    if "engine" in toml_data:
        config.engine = _load_section(EngineConfig, toml_data["engine"], config.engine)
    if "ui" in toml_data:
        config.ui = _load_section(UIConfig, toml_data["ui"], config.ui)
    if "logging" in toml_data:
        config.logging = _load_section(LoggingConfig, toml_data["logging"], config.logging)
        config.logging.level = config.logging.level.upper()
        if config.logging.log_file:
            config.logging.log_file = str(Path(config.logging.log_file).expanduser())
    if "ipc" in toml_data:
        config.ipc = _load_section(IPCConfig, toml_data["ipc"], config.ipc)
    if "media" in toml_data:
        config.media = _load_section(MediaConfig, toml_data["media"], config.media)
    if "notifications" in toml_data:
        config.notifications = _load_section(
            NotificationsConfig, toml_data["notifications"], config.notifications
        )

    env_overrides = {
        "STREAM_MINION_CLIENT_ID": "client_id",
        "STREAM_MINION_CLIENT_SECRET": "client_secret",
        "STREAM_MINION_DEVICE_CLIENT_ID": "device_client_id",
        "STREAM_MINION_DEVICE_CLIENT_SECRET": "device_client_secret",
    }
    for env_name, attr in env_overrides.items():
        value = os.environ.get(env_name)
        if value:
            setattr(config.catalog, attr, value)

    config.player.quality = config.player.quality.upper()
    config.player.repeat = config.player.repeat.lower()
    config.validate()
    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    A `.env` file in the config directory is loaded first so credentials can
    live outside config.toml.

    Raises:
        ConfigError: If the file exists but is not valid TOML or fails validation
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        return parse_config({})

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    logger.debug(f"Loaded configuration from {config_path}")
    return parse_config(toml_data)
