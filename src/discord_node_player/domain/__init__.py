"""
Domain Layer

Contains pure business logic:
- shared/: Cross-cutting types, exceptions, messages and the event bus
- music/: Tracks, search results, playback options and domain events
"""

from discord_node_player.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
