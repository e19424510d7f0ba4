from discord_node_player.infrastructure.spotify.client import SpotifyClient

__all__ = [
    "SpotifyClient",
]
