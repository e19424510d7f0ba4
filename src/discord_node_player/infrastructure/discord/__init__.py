from discord_node_player.infrastructure.discord.voice_gateway import (
    DiscordVoiceGateway,
    NodeVoiceProtocol,
)

__all__ = [
    "DiscordVoiceGateway",
    "NodeVoiceProtocol",
]
