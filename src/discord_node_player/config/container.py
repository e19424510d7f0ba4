"""Dependency Injection Container

Wires settings, the event bus, the Spotify client, the Discord voice gateway
and the session manager together. Components are created on first access and
cached for reuse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    import discord

    from ..application.interfaces.voice_gateway import VoiceGateway
    from ..application.services.session_manager import SessionManager
    from ..domain.shared.events import EventBus
    from ..infrastructure.spotify.client import SpotifyClient
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    A bot (or another ``VoiceGateway``) must be supplied before the session
    manager is first accessed.
    """

    settings: Settings
    _bot: discord.Client | None = None

    _event_bus: EventBus | None = None
    _spotify_client: SpotifyClient | None = None
    _voice_gateway: VoiceGateway | None = None
    _session_manager: SessionManager | None = None

    def set_bot(self, bot: discord.Client) -> None:
        """Set the Discord client instance."""
        self._bot = bot

    def set_voice_gateway(self, gateway: VoiceGateway) -> None:
        """Use a custom voice gateway instead of the discord.py adapter."""
        self._voice_gateway = gateway

    @property
    def bot(self) -> discord.Client:
        """Get the Discord client instance."""
        if self._bot is None:
            raise RuntimeError("Bot not initialized. Call set_bot() first.")
        return self._bot

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import EventBus

            self._event_bus = EventBus()
        return self._event_bus

    @property
    def spotify_client(self) -> SpotifyClient | None:
        """The Spotify client, or ``None`` when no credentials are configured."""
        if self._spotify_client is None and self.settings.spotify.enabled:
            from ..infrastructure.spotify.client import SpotifyClient

            self._spotify_client = SpotifyClient(self.settings.spotify)
        return self._spotify_client

    @property
    def voice_gateway(self) -> VoiceGateway:
        if self._voice_gateway is None:
            from ..infrastructure.discord.voice_gateway import DiscordVoiceGateway

            self._voice_gateway = DiscordVoiceGateway(self.bot)
        return self._voice_gateway

    @property
    def session_manager(self) -> SessionManager:
        if self._session_manager is None:
            from ..application.services.session_manager import SessionManager

            self._session_manager = SessionManager(
                self.voice_gateway,
                self.settings.nodes,
                manager_settings=self.settings.manager,
                player_settings=self.settings.player,
                spotify_settings=self.settings.spotify,
                spotify_client=self.spotify_client,
                events=self.event_bus,
            )
        return self._session_manager

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Connect every configured node and start the Spotify credential loop."""
        await self.session_manager.connect_nodes()

    async def shutdown(self) -> None:
        """Shutdown and cleanup all resources."""
        if self._session_manager is not None:
            try:
                await self._session_manager.close()
            except Exception as exc:
                logger.warning("Failed closing session manager: %r", exc)

        if self._spotify_client is not None:
            await self._spotify_client.close()

        if self._event_bus is not None:
            self._event_bus.clear()

        self._session_manager = None
        self._spotify_client = None


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
