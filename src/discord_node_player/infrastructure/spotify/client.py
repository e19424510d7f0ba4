"""Spotify Web API client used as a metadata-only secondary catalog.

Spotify entries cannot be played directly; lookups return ``TrackPartial``
entries that are matched against the primary search provider later.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from discord_node_player.domain.music.entities import TrackPartial
from discord_node_player.domain.shared.exceptions import CatalogAuthError, CatalogRequestError
from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from discord_node_player.config.settings import SpotifySettings

logger = logging.getLogger(__name__)

SPOTIFY_BASE_URL: Final[str] = "https://api.spotify.com/v1"
SPOTIFY_TOKEN_ENDPOINT: Final[str] = "https://accounts.spotify.com/api/token"
SPOTIFY_URL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?:https://open\.spotify\.com/|spotify:)(?:.+)?(track|playlist|album)[/:]([A-Za-z0-9]+)"
)
SPOTIFY_TIMEOUT: Final[float] = 15.0

SpotifyKind = Literal["track", "album", "playlist"]


@dataclass(frozen=True)
class SpotifyReference:
    """A Spotify resource parsed from a URL or URI."""

    kind: SpotifyKind
    id: str


# ── Pydantic models for Spotify payloads ────────────────────────────


class SpotifyArtist(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""


class SpotifyTrackItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    artists: list[SpotifyArtist] = Field(default_factory=list)
    duration_ms: int | None = None

    def to_partial(self, requester: str) -> TrackPartial:
        author = ", ".join(a.name for a in self.artists if a.name)
        return TrackPartial(
            title=self.name,
            requester=requester,
            author=author or None,
            length_ms=self.duration_ms if self.duration_ms and self.duration_ms > 0 else None,
        )


class SpotifyTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = ""
    expires_in: float = 3600.0


def _page_tracks(page: dict[str, Any]) -> list[SpotifyTrackItem]:
    """Tracks from one page of ``items``.

    Playlist items wrap the track in ``{"track": ...}``; album items are the
    track itself. Removed or local entries without a name are skipped.
    """
    tracks: list[SpotifyTrackItem] = []
    for item in page.get("items") or []:
        if not isinstance(item, dict):
            continue
        data = item["track"] if "track" in item else item
        if not isinstance(data, dict):
            continue
        track = SpotifyTrackItem.model_validate(data)
        if track.name:
            tracks.append(track)
    return tracks


class SpotifyClient:
    """Client-credentials Spotify client.

    The bearer token is held in memory; ``authenticate`` must succeed before
    any lookup. Refresh scheduling is left to the caller.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._owns_http = http_client is None
        self._token: str | None = None

    @property
    def has_token(self) -> bool:
        return self._token is not None

    @staticmethod
    def match(query: str) -> SpotifyReference | None:
        """Parse a Spotify track, album or playlist URL or URI."""
        found = SPOTIFY_URL_PATTERN.search(query)
        if found is None:
            return None
        return SpotifyReference(kind=found.group(1), id=found.group(2))  # type: ignore[arg-type]

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=SPOTIFY_TIMEOUT)
        return self._http

    async def authenticate(self) -> float:
        """Run the client-credentials grant and store the bearer token.

        Returns:
            Seconds until the new token expires.

        Raises:
            CatalogAuthError: The grant was rejected or returned no token.
            CatalogRequestError: The token endpoint could not be reached.
        """
        try:
            response = await self._get_http().post(
                SPOTIFY_TOKEN_ENDPOINT,
                data={"grant_type": "client_credentials"},
                auth=(
                    self._settings.client_id,
                    self._settings.client_secret.get_secret_value(),
                ),
            )
        except httpx.HTTPError as e:
            raise CatalogRequestError(
                ErrorMessages.SPOTIFY_REQUEST_FAILED.format(url=SPOTIFY_TOKEN_ENDPOINT, status=e)
            ) from e

        if response.is_error:
            raise CatalogAuthError(status_code=response.status_code)

        try:
            token = SpotifyTokenResponse.model_validate(response.json())
        except ValueError as e:
            raise CatalogAuthError(status_code=response.status_code) from e
        if not token.access_token:
            raise CatalogAuthError(status_code=response.status_code)

        self._token = f"Bearer {token.access_token}"
        return token.expires_in

    async def _get(self, url: str) -> dict[str, Any]:
        if self._token is None:
            raise CatalogAuthError(ErrorMessages.SPOTIFY_NOT_CONFIGURED)

        try:
            response = await self._get_http().get(
                url,
                headers={"Authorization": self._token, "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise CatalogRequestError(
                ErrorMessages.SPOTIFY_REQUEST_FAILED.format(url=url, status=e)
            ) from e

        if response.is_error:
            raise CatalogRequestError(
                ErrorMessages.SPOTIFY_REQUEST_FAILED.format(url=url, status=response.status_code),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogRequestError(
                ErrorMessages.SPOTIFY_REQUEST_FAILED.format(url=url, status=response.status_code),
                status_code=response.status_code,
            ) from e
        return data if isinstance(data, dict) else {}

    async def get_track(self, track_id: str, requester: str) -> TrackPartial | None:
        logger.debug(LogTemplates.SEARCH_SPOTIFY, "track", track_id)
        data = await self._get(f"{SPOTIFY_BASE_URL}/tracks/{track_id}")
        track = SpotifyTrackItem.model_validate(data)
        if not track.name:
            return None
        return track.to_partial(requester)

    async def get_collection(
        self, kind: Literal["album", "playlist"], collection_id: str, requester: str
    ) -> tuple[str, list[TrackPartial]]:
        """Fetch an album or playlist, following ``next`` links to the last page.

        Returns:
            The collection name and every track across all pages.
        """
        logger.debug(LogTemplates.SEARCH_SPOTIFY, kind, collection_id)
        data = await self._get(f"{SPOTIFY_BASE_URL}/{kind}s/{collection_id}")
        page = data.get("tracks") or {}

        items = _page_tracks(page)
        next_url = page.get("next")
        while next_url:
            page = await self._get(next_url)
            items.extend(_page_tracks(page))
            next_url = page.get("next")

        return str(data.get("name") or ""), [item.to_partial(requester) for item in items]

    async def close(self) -> None:
        self._token = None
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
