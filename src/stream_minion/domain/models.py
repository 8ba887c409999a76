"""
Catalog domain models.

Contains data structures for tracks, quality tiers and stream locators.
"""

import re
from enum import Enum
from typing import NamedTuple, Optional


class QualityTier(str, Enum):
    """Audio quality tiers offered by the catalog.

    The value is the string the streaming API expects; tiers are ordered
    from lowest to highest bitrate.
    """

    LOW = "LOW"
    HIGH = "HIGH"
    LOSSLESS = "LOSSLESS"

    @property
    def label(self) -> str:
        """Display name as the service writes it."""
        return _QUALITY_LABELS[self]

    @property
    def rank(self) -> int:
        return _QUALITY_ORDER.index(self)

    def next(self) -> "QualityTier":
        """Cycle to the next tier, wrapping to the lowest."""
        return _QUALITY_ORDER[(self.rank + 1) % len(_QUALITY_ORDER)]

    @classmethod
    def parse(cls, value: str) -> "QualityTier":
        """Parse a tier from config or API text.

        Accepts API values and the legacy HI_RES spellings, which map to LOSSLESS.
        """
        normalized = value.strip().upper()
        if normalized.startswith("HI_RES"):
            return cls.LOSSLESS
        return cls(normalized)


_QUALITY_ORDER = [QualityTier.LOW, QualityTier.HIGH, QualityTier.LOSSLESS]
_QUALITY_LABELS = {
    QualityTier.LOW: "Low (96 kbps)",
    QualityTier.HIGH: "Low (320 kbps)",
    QualityTier.LOSSLESS: "High",
}


def best_available_tier(
    requested: QualityTier, available: tuple[QualityTier, ...]
) -> QualityTier:
    """Pick the requested tier, or the best tier below it that the track offers.

    Falls back to the lowest available tier when nothing at or below the
    request exists, and to the request itself when availability is unknown.
    """
    if not available:
        return requested
    at_or_below = [tier for tier in available if tier.rank <= requested.rank]
    if at_or_below:
        return max(at_or_below, key=lambda tier: tier.rank)
    return min(available, key=lambda tier: tier.rank)


class Track(NamedTuple):
    """Represents a catalog track with metadata.

    Immutable once fetched; shared read-only between the queue, snapshots
    and the renderer.
    """

    id: str
    title: str = "Unknown"
    artist: str = "Unknown"
    album: Optional[str] = None
    duration: float = 0.0  # in seconds
    available_quality_tiers: tuple[QualityTier, ...] = ()
    cover_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}"


class StreamLocator(NamedTuple):
    """Time-limited playable location for one track at one quality tier.

    Single use: a locator belongs to one playback of its track and is never
    cached past it.
    """

    track_id: str
    url: str
    quality: QualityTier
    mime_type: Optional[str] = None
    expires_at: Optional[float] = None  # Unix timestamp, None when unknown


_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<mins>\d+)M)?(?:(?P<secs>\d+(?:\.\d+)?)S)?)?$"
)


def parse_iso_duration(value: Optional[str]) -> float:
    """Parse an ISO-8601 duration such as ``PT3M25S`` into seconds.

    Returns 0.0 for empty or unparseable values instead of raising, since a
    missing duration only disables end-of-track detection.

    Examples:
        >>> parse_iso_duration("PT1H2M3S")
        3723.0
        >>> parse_iso_duration("garbage")
        0.0
    """
    if not value:
        return 0.0
    match = _ISO_DURATION.match(value.strip())
    if not match:
        return 0.0
    days = int(match.group("days") or 0)
    hours = int(match.group("hours") or 0)
    mins = int(match.group("mins") or 0)
    secs = float(match.group("secs") or 0)
    return days * 86400 + hours * 3600 + mins * 60 + secs


def format_time(seconds: float) -> str:
    """Format time in seconds to MM:SS format."""
    if seconds < 0:
        return "00:00"

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"
