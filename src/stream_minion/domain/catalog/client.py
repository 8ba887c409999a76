"""
HTTP catalog client.

Track metadata comes from the official v2 API (JSON:API documents with
ISO-8601 durations). Favourites and playback manifests come from the legacy
v1 API, which is what the streaming session's token is entitled to.
"""

import base64
import json
import time
from typing import Any, Optional

import requests
from loguru import logger

from stream_minion.domain.auth.models import TokenSet
from stream_minion.domain.errors import (
    NotFound,
    QuotaExceeded,
    SessionExpired,
    TransientError,
)
from stream_minion.domain.models import (
    QualityTier,
    StreamLocator,
    Track,
    parse_iso_duration,
)

API_BASE = "https://openapi.tidal.com/v2"
LEGACY_API_BASE = "https://api.tidal.com/v1"
IMAGE_BASE = "https://resources.tidal.com/images"

# Manifest type that carries plain JSON with direct URLs
BTS_MANIFEST = "application/vnd.tidal.bts"

# Stream URLs are signed for a limited time; assume this when unknown
DEFAULT_LOCATOR_LIFETIME = 3600.0

FAVOURITES_LIMIT = 10000


def _cover_url(cover_id: Optional[str], size: int = 640) -> Optional[str]:
    if not cover_id:
        return None
    return f"{IMAGE_BASE}/{cover_id.replace('-', '/')}/{size}x{size}.jpg"


def _tiers_from_tags(tags: list[str], audio_quality: Optional[str] = None) -> tuple[QualityTier, ...]:
    """Quality tiers a track offers, from its media tags or audioQuality field."""
    tiers = [QualityTier.LOW, QualityTier.HIGH]
    upper = {tag.upper() for tag in tags}
    if audio_quality:
        upper.add(audio_quality.upper())
    if any(tag == "LOSSLESS" or tag.startswith("HI_RES") or tag.startswith("HIRES") for tag in upper):
        tiers.append(QualityTier.LOSSLESS)
    return tuple(tiers)


def _normalize_legacy_track(item: dict[str, Any]) -> Track:
    """Convert a v1 track object to a Track."""
    artist = item.get("artist") or {}
    if not artist.get("name") and item.get("artists"):
        artist = item["artists"][0]
    album = item.get("album") or {}
    tags = (item.get("mediaMetadata") or {}).get("tags") or []

    return Track(
        id=str(item["id"]),
        title=(item.get("title") or "Unknown").strip(),
        artist=artist.get("name") or "Unknown",
        album=album.get("title"),
        duration=float(item.get("duration") or 0),
        available_quality_tiers=_tiers_from_tags(tags, item.get("audioQuality")),
        cover_url=_cover_url(album.get("cover")),
    )


def _normalize_document_track(document: dict[str, Any]) -> Track:
    """Convert a v2 JSON:API track document (with included relationships) to a Track."""
    data = document.get("data") or {}
    attributes = data.get("attributes") or {}
    included = document.get("included") or []

    artist = next(
        (i["attributes"].get("name") for i in included if i.get("type") == "artists"),
        None,
    )
    album = next(
        (i["attributes"].get("title") for i in included if i.get("type") == "albums"),
        None,
    )

    return Track(
        id=str(data.get("id", "")),
        title=attributes.get("title") or "Unknown",
        artist=artist or "Unknown",
        album=album,
        duration=parse_iso_duration(attributes.get("duration")),
        available_quality_tiers=_tiers_from_tags(attributes.get("mediaTags") or []),
    )


def decode_manifest(manifest_type: str, manifest: str) -> dict[str, Any]:
    """Decode a base64 BTS manifest into its JSON body.

    Raises:
        NotFound: For manifest types without direct URLs (DASH) or encrypted streams
    """
    if manifest_type != BTS_MANIFEST:
        raise NotFound(f"Unsupported manifest type {manifest_type}")

    try:
        body = json.loads(base64.b64decode(manifest).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise NotFound(f"Unreadable stream manifest: {e}") from e

    if body.get("encryptionType", "NONE") != "NONE":
        raise NotFound("Encrypted streams are not supported")
    if not body.get("urls"):
        raise NotFound("Manifest has no stream URLs")
    return body


class HttpCatalog:
    """Catalog provider over the public HTTP APIs.

    Args:
        country_code: Fallback country when the token does not carry one
        timeout: Per-request timeout in seconds
        http: Optional requests.Session (connection reuse, tests)
    """

    def __init__(
        self,
        country_code: str = "US",
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ):
        self.country_code = country_code
        self.timeout = timeout
        self.http = http or requests.Session()

    def resolve(self, track_id: str, quality: QualityTier, tokens: TokenSet) -> StreamLocator:
        """Fetch playback info for ``track_id`` at ``quality`` and decode its manifest."""
        logger.debug(f"Resolving track {track_id} at {quality.value}")
        info = self._get(
            f"{LEGACY_API_BASE}/tracks/{track_id}/playbackinfopostpaywall",
            tokens,
            params={
                "audioquality": quality.value,
                "playbackmode": "STREAM",
                "assetpresentation": "FULL",
            },
        )

        body = decode_manifest(info.get("manifestMimeType", ""), info.get("manifest", ""))
        granted = info.get("audioQuality") or quality.value
        try:
            granted_tier = QualityTier.parse(granted)
        except ValueError:
            granted_tier = quality

        return StreamLocator(
            track_id=str(track_id),
            url=body["urls"][0],
            quality=granted_tier,
            mime_type=body.get("mimeType"),
            expires_at=time.time() + DEFAULT_LOCATOR_LIFETIME,
        )

    def favourite_tracks(self, tokens: TokenSet) -> list[Track]:
        if not tokens.user_id:
            raise NotFound("Streaming session has no user id")

        data = self._get(
            f"{LEGACY_API_BASE}/users/{tokens.user_id}/favorites/tracks",
            tokens,
            params={"limit": FAVOURITES_LIMIT, "order": "DATE", "orderDirection": "DESC"},
        )
        tracks = [
            _normalize_legacy_track(entry["item"])
            for entry in data.get("items", [])
            if entry.get("item", {}).get("id") is not None
        ]
        logger.info(f"Fetched {len(tracks)} favourite tracks")
        return tracks

    def lookup_track(self, track_id: str, tokens: TokenSet) -> Track:
        document = self._get(
            f"{API_BASE}/tracks/{track_id}",
            tokens,
            params={"include": "artists,albums"},
        )
        return _normalize_document_track(document)

    def _get(
        self, url: str, tokens: TokenSet, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """GET ``url`` with bearer auth and the country code, mapping failures.

        Raises:
            NotFound: 404
            QuotaExceeded: 429
            SessionExpired: 401
            TransientError: Network errors, timeouts and 5xx
        """
        query = {"countryCode": tokens.country_code or self.country_code}
        query.update(params or {})

        try:
            response = self.http.get(
                url,
                params=query,
                headers={"Authorization": f"Bearer {tokens.access_token}"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransientError(f"Request timed out: {url}") from e
        except requests.RequestException as e:
            raise TransientError(f"Request failed: {e}") from e

        status = response.status_code
        if status == 401:
            raise SessionExpired("Catalog rejected the access token")
        if status == 404:
            raise NotFound(f"Not found: {url}")
        if status == 429:
            raise QuotaExceeded("Rate limited by the catalog")
        if status >= 500:
            raise TransientError(f"Catalog returned {status}")
        if not response.ok:
            # Other 4xx (e.g. 403 for region-locked assets) mean no playable asset
            logger.warning(f"Catalog returned {status} for {url}: {response.text[:200]}")
            raise NotFound(f"Catalog returned {status}")

        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"Invalid JSON from catalog: {e}") from e
