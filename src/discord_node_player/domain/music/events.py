"""Domain events published by nodes, players and the session manager."""

from __future__ import annotations

from typing import Any

from discord_node_player.domain.music.entities import Track
from discord_node_player.domain.shared.events import DomainEvent
from discord_node_player.domain.shared.types import DiscordSnowflake

# === Node Events ===


class NodeEvent(DomainEvent):
    node_id: int


class NodeCreated(NodeEvent):
    pass


class NodeConnected(NodeEvent):
    pass


class NodeDisconnected(NodeEvent):
    code: int | None = None
    reason: str = "No reason specified"


class NodeReconnecting(NodeEvent):
    attempt: int = 0


class NodeDestroyed(NodeEvent):
    reason: str = ""


class NodeErrored(NodeEvent):
    error: Exception


class NodeRaw(NodeEvent):
    payload: dict[str, Any]


# === Player Events ===


class PlayerEvent(DomainEvent):
    guild_id: DiscordSnowflake


class PlayerCreated(PlayerEvent):
    node_id: int


class PlayerConnected(PlayerEvent):
    channel_id: DiscordSnowflake


class PlayerDestroyed(PlayerEvent):
    reason: str = ""


class PlayerErrored(PlayerEvent):
    error: Exception


class PlayerMoved(PlayerEvent):
    old_channel_id: DiscordSnowflake | None = None
    new_channel_id: DiscordSnowflake | None = None


class PlayerPaused(PlayerEvent):
    reason: str = ""


class PlayerResumed(PlayerEvent):
    reason: str = ""


class TrackStarted(PlayerEvent):
    track: Track | None = None


class TrackEnded(PlayerEvent):
    track: Track | None = None
    reason: str = ""


class TrackExceptionRaised(PlayerEvent):
    track: Track | None = None
    message: str = ""
    severity: str = ""
    cause: str = ""


class TrackStuck(PlayerEvent):
    track: Track | None = None
    threshold_ms: int = 0


# === Manager Events ===


class SpotifyAuthFailed(DomainEvent):
    error: Exception
