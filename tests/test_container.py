"""
Unit Tests for Dependency Injection Container

Tests for:
- Lazy initialization and caching of properties
- Bot instance management (set_bot, bot property, error when not set)
- Optional Spotify client
- Session manager wiring
- Lifecycle methods (initialize, shutdown)
"""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from conftest import BOT_USER_ID
from discord_node_player.application.services.session_manager import SessionManager
from discord_node_player.config.container import Container, create_container
from discord_node_player.config.settings import (
    ManagerSettings,
    NodeSettings,
    PlayerSettings,
    Settings,
    SpotifySettings,
)
from discord_node_player.infrastructure.discord.voice_gateway import DiscordVoiceGateway
from discord_node_player.infrastructure.spotify.client import SpotifyClient


@pytest.fixture
def mock_settings():
    """Settings double carrying real nested settings."""
    settings = Mock(spec=Settings)
    settings.nodes = (NodeSettings(),)
    settings.manager = ManagerSettings()
    settings.player = PlayerSettings()
    settings.spotify = SpotifySettings()
    return settings


@pytest.fixture
def container(mock_settings):
    return Container(settings=mock_settings)


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.user = MagicMock()
    bot.user.id = BOT_USER_ID
    return bot


class TestContainerInitialization:
    """Unit tests for Container initialization."""

    def test_create_container(self, mock_settings):
        container = create_container(mock_settings)

        assert container.settings is mock_settings
        assert container._session_manager is None

    def test_bot_not_set(self, container):
        with pytest.raises(RuntimeError, match="set_bot"):
            _ = container.bot

    def test_set_bot(self, container, mock_bot):
        container.set_bot(mock_bot)

        assert container.bot is mock_bot


class TestLazyProperties:
    """Tests for lazily created, cached components."""

    def test_event_bus_cached(self, container):
        assert container.event_bus is container.event_bus

    def test_spotify_disabled_without_credentials(self, container):
        assert container.spotify_client is None

    def test_spotify_enabled_with_credentials(self, container, mock_settings):
        mock_settings.spotify = SpotifySettings(client_id="id", client_secret="secret")

        client = container.spotify_client

        assert isinstance(client, SpotifyClient)
        assert container.spotify_client is client

    def test_voice_gateway_wraps_bot(self, container, mock_bot):
        container.set_bot(mock_bot)

        gateway = container.voice_gateway

        assert isinstance(gateway, DiscordVoiceGateway)
        assert gateway.user_id == BOT_USER_ID

    def test_custom_voice_gateway(self, container, fake_gateway):
        container.set_voice_gateway(fake_gateway)

        assert container.voice_gateway is fake_gateway

    @pytest.mark.asyncio
    async def test_session_manager_shares_event_bus(self, container, fake_gateway):
        container.set_voice_gateway(fake_gateway)

        manager = container.session_manager

        assert isinstance(manager, SessionManager)
        assert manager.events is container.event_bus
        assert container.session_manager is manager
        await container.shutdown()


class TestLifecycle:
    """Tests for initialize() and shutdown()."""

    @pytest.mark.asyncio
    async def test_initialize_connects_nodes(self, container):
        manager = MagicMock()
        manager.connect_nodes = AsyncMock(return_value=[])
        container._session_manager = manager

        await container.initialize()

        manager.connect_nodes.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_closes_components(self, container):
        manager = MagicMock()
        manager.close = AsyncMock()
        spotify = MagicMock()
        spotify.close = AsyncMock()
        container._session_manager = manager
        container._spotify_client = spotify
        bus = container.event_bus

        with patch.object(bus, "clear") as mock_clear:
            await container.shutdown()

        manager.close.assert_awaited_once()
        spotify.close.assert_awaited_once()
        mock_clear.assert_called_once()
        assert container._session_manager is None
        assert container._spotify_client is None

    @pytest.mark.asyncio
    async def test_shutdown_tolerates_manager_failure(self, container):
        manager = MagicMock()
        manager.close = AsyncMock(side_effect=RuntimeError("boom"))
        container._session_manager = manager

        await container.shutdown()

        assert container._session_manager is None

    @pytest.mark.asyncio
    async def test_shutdown_without_components(self, container):
        await container.shutdown()
