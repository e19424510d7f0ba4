"""Enumerations and small immutable value objects for the music context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, StrEnum

from pydantic import BaseModel, ConfigDict, Field

from discord_node_player.domain.shared.types import (
    DiscordSnowflake,
    DurationMs,
    NonEmptyStr,
)


class NodeState(Enum):
    """Node connection state.

    State transitions:
    - DISCONNECTED -> CONNECTING (connect)
    - CONNECTING -> CONNECTED | DISCONNECTED (handshake result)
    - CONNECTED -> DISCONNECTED (socket closed)
    - DISCONNECTED -> RECONNECTING (abnormal close)
    - RECONNECTING -> CONNECTED (retry succeeded)
    - Any -> DESTROYED (terminal)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    RECONNECTING = "reconnecting"
    CONNECTED = "connected"
    DESTROYED = "destroyed"

    @property
    def can_connect(self) -> bool:
        return self in {NodeState.DISCONNECTED, NodeState.RECONNECTING}


class PlayerState(Enum):
    """Per-guild player state.

    State transitions:
    - DISCONNECTED -> CONNECTING (connect)
    - CONNECTING -> CONNECTED (joined the bound channel)
    - CONNECTED -> PLAYING | PAUSED (track start)
    - PLAYING <-> PAUSED (pause / resume)
    - PLAYING | PAUSED -> CONNECTED (stop or track end)
    - Any -> DESTROYED (terminal)
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PAUSED = "paused"
    PLAYING = "playing"
    DESTROYED = "destroyed"

    @property
    def is_active(self) -> bool:
        """Connected to voice and able to accept playback commands."""
        return self in {PlayerState.CONNECTED, PlayerState.PAUSED, PlayerState.PLAYING}


class LoopMode(StrEnum):
    """Queue loop behavior."""

    OFF = "off"
    SINGLE = "single"
    QUEUE = "queue"


class MoveBehavior(StrEnum):
    """What a player does when moved out of its channel or to a stage audience."""

    DESTROY = "destroy"
    PAUSE = "pause"


class LoadBalanceMetric(StrEnum):
    """Which CPU figure least-load selection compares."""

    SYSTEM = "system"
    LAVALINK = "lavalink"


class LoadType(StrEnum):
    """Search result envelope tag."""

    TRACK_LOADED = "TRACK_LOADED"
    PLAYLIST_LOADED = "PLAYLIST_LOADED"
    SEARCH_RESULT = "SEARCH_RESULT"
    NO_MATCHES = "NO_MATCHES"
    LOAD_FAILED = "LOAD_FAILED"


class SearchSource(StrEnum):
    """Primary search providers a node can query."""

    YOUTUBE = "youtube"
    SOUNDCLOUD = "soundcloud"

    @property
    def prefix(self) -> str:
        """Identifier prefix the node expects, e.g. ``ytsearch:``."""
        return _SOURCE_PREFIXES[self] + "search:"


_SOURCE_PREFIXES: dict[SearchSource, str] = {
    SearchSource.YOUTUBE: "yt",
    SearchSource.SOUNDCLOUD: "sc",
}


class TrackEndReason(StrEnum):
    """End reasons reported by the node in TrackEndEvent."""

    FINISHED = "FINISHED"
    LOAD_FAILED = "LOAD_FAILED"
    STOPPED = "STOPPED"
    REPLACED = "REPLACED"
    CLEANUP = "CLEANUP"

    @property
    def may_start_next(self) -> bool:
        return self not in {TrackEndReason.STOPPED, TrackEndReason.REPLACED}


class PlayOptions(BaseModel):
    """Options for a ``play`` frame. Times are in milliseconds."""

    model_config = ConfigDict(frozen=True)

    start_time_ms: DurationMs | None = None
    end_time_ms: DurationMs | None = None
    volume: int | None = None
    pause: bool = False


class PlayerOptions(BaseModel):
    """Per-player configuration; validated when the player is created."""

    model_config = ConfigDict(frozen=True)

    guild_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake
    voice_channel_id: DiscordSnowflake
    self_mute: bool = False
    self_deafen: bool = True
    connection_timeout: float = Field(default=15.0, gt=0.0)
    become_speaker: bool = True
    move_behavior: MoveBehavior = MoveBehavior.DESTROY
    stage_move_behavior: MoveBehavior = MoveBehavior.PAUSE


class VoiceServerUpdate(BaseModel):
    """Voice server assignment relayed by the host gateway."""

    model_config = ConfigDict(frozen=True)

    guild_id: DiscordSnowflake
    endpoint: str | None = None
    token: NonEmptyStr
    session_id: str | None = None

    def to_event_payload(self) -> dict[str, str | None]:
        return {"token": self.token, "guild_id": str(self.guild_id), "endpoint": self.endpoint}


class VoiceStateUpdate(BaseModel):
    """The host user's voice state as relayed by the host gateway."""

    model_config = ConfigDict(frozen=True)

    guild_id: DiscordSnowflake
    user_id: DiscordSnowflake
    channel_id: DiscordSnowflake | None = None
    session_id: str | None = None
    suppress: bool = False


@dataclass(frozen=True)
class StagePermissions:
    """What the host user may do in a stage channel."""

    become_speaker: bool
    request_to_speak: bool
