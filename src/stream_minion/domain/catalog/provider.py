"""
Catalog & stream provider contract.

The engine only needs three calls. Each takes the caller's token snapshot so
worker threads never read session state owned by the event loop.
"""

from typing import Protocol

from stream_minion.domain.auth.models import TokenSet
from stream_minion.domain.models import QualityTier, StreamLocator, Track


class CatalogProvider(Protocol):
    def resolve(self, track_id: str, quality: QualityTier, tokens: TokenSet) -> StreamLocator:
        """Produce a playable, time-limited stream location.

        Raises:
            NotFound: The track or a playable asset does not exist
            QuotaExceeded: Rate limited or stream limit reached
            SessionExpired: The token was rejected
            TransientError: Network failure or server error
        """
        ...

    def favourite_tracks(self, tokens: TokenSet) -> list[Track]:
        """The user's favourite tracks, newest first."""
        ...

    def lookup_track(self, track_id: str, tokens: TokenSet) -> Track:
        """Full metadata for one track."""
        ...
