"""Core domain entities for the music bounded context."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from discord_node_player.domain.music.value_objects import LoadType
from discord_node_player.domain.shared.exceptions import InvalidTrackError
from discord_node_player.domain.shared.messages import ErrorMessages
from discord_node_player.domain.shared.types import DurationMs, NonEmptyStr

ThumbnailResolution = Literal["default", "mqdefault", "hqdefault", "maxresdefault"]

UNKNOWN_REQUESTER = "N/A"


class Track(BaseModel):
    """Immutable value object representing a playable track.

    ``encoded`` is the opaque handle issued by a node; it is the only thing
    a node needs to play the track. Everything else is descriptive.
    """

    model_config = ConfigDict(frozen=True)

    encoded: NonEmptyStr
    identifier: str = ""
    author: str = ""
    title: str = ""
    uri: str = ""
    source_name: str = ""
    length_ms: DurationMs = 0
    is_stream: bool = False
    is_seekable: bool = True
    position_ms: DurationMs = 0
    requester: str = UNKNOWN_REQUESTER

    @classmethod
    def from_payload(cls, data: dict[str, Any], requester: str = UNKNOWN_REQUESTER) -> Track:
        """Build a track from a node ``{"track": ..., "info": {...}}`` payload."""
        if not isinstance(data, dict):
            raise InvalidTrackError(ErrorMessages.INVALID_TRACK)
        encoded = data.get("track") or data.get("encoded")
        if not isinstance(encoded, str) or not encoded:
            raise InvalidTrackError(ErrorMessages.INVALID_TRACK)

        info = data.get("info") or {}
        return cls(
            encoded=encoded,
            identifier=info.get("identifier") or "",
            author=info.get("author") or "",
            title=info.get("title") or "",
            uri=info.get("uri") or "",
            source_name=info.get("sourceName") or "",
            length_ms=max(int(info.get("length") or 0), 0),
            is_stream=bool(info.get("isStream", False)),
            is_seekable=bool(info.get("isSeekable", True)),
            position_ms=max(int(info.get("position") or 0), 0),
            requester=requester,
        )

    @property
    def duration_formatted(self) -> str:
        """Format duration as MM:SS or HH:MM:SS."""
        if self.is_stream:
            return "LIVE"

        hours, remainder = divmod(self.length_ms // 1000, 3600)
        minutes, seconds = divmod(remainder, 60)

        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    def thumbnail(self, resolution: ThumbnailResolution = "default") -> str | None:
        """Thumbnail URL; only YouTube tracks have one."""
        if self.source_name != "youtube" or not self.identifier:
            return None
        return f"https://img.youtube.com/vi/{self.identifier}/{resolution}.jpg"

    def with_requester(self, requester: str) -> Track:
        """Return a copy of this track attributed to ``requester``."""
        return self.model_copy(update={"requester": requester})


class TrackPartial(BaseModel):
    """An unresolved queue entry, matched to a Track lazily by search."""

    model_config = ConfigDict(frozen=True)

    title: NonEmptyStr
    requester: str = UNKNOWN_REQUESTER
    author: str | None = None
    length_ms: DurationMs | None = None

    @property
    def search_query(self) -> str:
        if self.author:
            return f"{self.title} - {self.author}"
        return self.title


QueueEntry = Track | TrackPartial


class PlaylistInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    selected_track: Track | None = None


class LoadException(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = ""
    severity: str = "COMMON"


class SearchResult(BaseModel):
    """Uniform envelope for node and secondary catalog lookups."""

    model_config = ConfigDict(frozen=True)

    load_type: LoadType
    tracks: list[QueueEntry] = Field(default_factory=list)
    playlist_info: PlaylistInfo | None = None
    exception: LoadException | None = None

    @property
    def resolved_tracks(self) -> list[Track]:
        return [t for t in self.tracks if isinstance(t, Track)]
