from discord_node_player.infrastructure.lavalink.models import NodeResponse, NodeStats
from discord_node_player.infrastructure.lavalink.node import Node

__all__ = [
    "Node",
    "NodeResponse",
    "NodeStats",
]
