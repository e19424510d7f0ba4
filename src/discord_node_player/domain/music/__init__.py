"""
Music Bounded Context

Tracks, search results, playback options and the events players and nodes emit.
"""

from discord_node_player.domain.music.entities import (
    SearchResult,
    Track,
    TrackPartial,
)
from discord_node_player.domain.music.events import (
    NodeConnected,
    NodeDestroyed,
    PlayerDestroyed,
    TrackEnded,
    TrackStarted,
)
from discord_node_player.domain.music.services import QueueDomainService, TrackMatchingService
from discord_node_player.domain.music.value_objects import (
    LoopMode,
    NodeState,
    PlayerOptions,
    PlayerState,
    PlayOptions,
)

__all__ = [
    # Entities
    "Track",
    "TrackPartial",
    "SearchResult",
    # Value Objects
    "NodeState",
    "PlayerState",
    "LoopMode",
    "PlayOptions",
    "PlayerOptions",
    # Events
    "NodeConnected",
    "NodeDestroyed",
    "PlayerDestroyed",
    "TrackStarted",
    "TrackEnded",
    # Services
    "QueueDomainService",
    "TrackMatchingService",
]
