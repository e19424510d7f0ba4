"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Audio nodes (aiohttp WebSocket, httpx REST)
- Spotify Web API (httpx)
- Discord voice signalling (discord.py)
"""
