"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters.
"""

from discord_node_player.application.interfaces.voice_gateway import VoiceGateway

__all__ = [
    "VoiceGateway",
]
