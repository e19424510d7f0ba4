"""
Unit Tests for Application Settings Configuration

Tests for:
- Default values for node, player, manager and Spotify settings
- The connection timeout / retry delay constraint
- Legacy field aliases
- Loading nested settings from environment variables
- Custom validators (log level, user id)
- Settings caching and clearing
"""

import pytest
from pydantic import ValidationError

from discord_node_player.config.settings import (
    ManagerSettings,
    NodeSettings,
    PlayerSettings,
    Settings,
    SpotifySettings,
    clear_settings_cache,
    get_settings,
)
from discord_node_player.domain.music.value_objects import (
    LoadBalanceMetric,
    MoveBehavior,
    SearchSource,
)

# =============================================================================
# NodeSettings Tests
# =============================================================================


class TestNodeSettings:
    """Unit tests for NodeSettings."""

    def test_create_with_defaults(self):
        """Should create NodeSettings with the documented defaults."""
        node = NodeSettings()

        assert node.host == "localhost"
        assert node.port == 2333
        assert node.password.get_secret_value() == "youshallnotpass"
        assert node.secure is False
        assert node.connection_timeout == 15.0
        assert node.request_timeout == 15.0
        assert node.max_retries == 10
        assert node.retry_delay == 30.0

    def test_timeout_must_be_below_retry_delay(self):
        """Should reject a connection timeout equal to the retry delay."""
        with pytest.raises(ValidationError) as exc_info:
            NodeSettings(connection_timeout=30.0, retry_delay=30.0)

        assert "must be less than the reconnect retry delay" in str(exc_info.value)

    def test_timeout_above_retry_delay_rejected(self):
        """Should reject a connection timeout longer than the retry delay."""
        with pytest.raises(ValidationError):
            NodeSettings(connection_timeout=40.0, retry_delay=30.0)

    def test_timeout_below_retry_delay_accepted(self):
        """Should accept a connection timeout shorter than the retry delay."""
        node = NodeSettings(connection_timeout=5.0, retry_delay=6.0)

        assert node.connection_timeout < node.retry_delay

    def test_legacy_aliases(self):
        """Should accept ``authorization`` and ``max_retrys`` spellings."""
        node = NodeSettings.model_validate({"authorization": "pw", "max_retrys": 4})

        assert node.password.get_secret_value() == "pw"
        assert node.max_retries == 4

    def test_zero_retries_allowed(self):
        """Zero retries means retry forever and must be valid."""
        assert NodeSettings(max_retries=0).max_retries == 0

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            NodeSettings(max_retries=-1)

    @pytest.mark.parametrize("port", [0, 65536])
    def test_invalid_port_rejected(self, port):
        with pytest.raises(ValidationError):
            NodeSettings(port=port)

    def test_password_hidden_in_repr(self):
        """Should not leak the node password in repr."""
        assert "youshallnotpass" not in repr(NodeSettings())

    def test_is_frozen(self):
        node = NodeSettings()

        with pytest.raises(ValidationError):
            node.host = "other"


# =============================================================================
# PlayerSettings / ManagerSettings / SpotifySettings Tests
# =============================================================================


class TestPlayerSettings:
    """Unit tests for PlayerSettings."""

    def test_defaults(self):
        player = PlayerSettings()

        assert player.self_mute is False
        assert player.self_deafen is True
        assert player.connection_timeout == 15.0
        assert player.become_speaker is True
        assert player.move_behavior == MoveBehavior.DESTROY
        assert player.stage_move_behavior == MoveBehavior.PAUSE


class TestManagerSettings:
    """Unit tests for ManagerSettings."""

    def test_defaults(self):
        manager = ManagerSettings()

        assert manager.enabled_sources == (SearchSource.YOUTUBE, SearchSource.SOUNDCLOUD)
        assert manager.default_source == SearchSource.YOUTUBE
        assert manager.balance_by == LoadBalanceMetric.SYSTEM

    def test_comma_separated_sources(self):
        """Should split a comma-separated sources string."""
        manager = ManagerSettings(enabled_sources="soundcloud, youtube")

        assert manager.enabled_sources == (SearchSource.SOUNDCLOUD, SearchSource.YOUTUBE)

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            ManagerSettings(enabled_sources="bandcamp")


class TestSpotifySettings:
    """Unit tests for SpotifySettings."""

    def test_disabled_by_default(self):
        spotify = SpotifySettings()

        assert spotify.enabled is False
        assert spotify.partially_configured is False

    def test_enabled_with_both_credentials(self):
        spotify = SpotifySettings(client_id="id", client_secret="secret")

        assert spotify.enabled is True
        assert spotify.partially_configured is False

    def test_partially_configured(self):
        """Only one credential given is a partial configuration."""
        spotify = SpotifySettings(client_id="id")

        assert spotify.enabled is False
        assert spotify.partially_configured is True


# =============================================================================
# Settings Tests
# =============================================================================


class TestSettings:
    """Unit tests for the root Settings container."""

    @pytest.fixture(autouse=True)
    def isolate_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for key in ("LOG_LEVEL", "USER_ID", "BOT_USER_ID", "NODES", "ENVIRONMENT"):
            monkeypatch.delenv(key, raising=False)
        clear_settings_cache()
        yield
        clear_settings_cache()

    def test_defaults(self):
        settings = Settings()

        assert settings.environment == "development"
        assert settings.log_level == "INFO"
        assert settings.user_id is None
        assert len(settings.nodes) == 1
        assert settings.nodes[0].host == "localhost"

    def test_log_level_normalized(self):
        """Should upper-case a valid log level."""
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_invalid_user_id(self):
        with pytest.raises(ValidationError):
            Settings(user_id=0)

    def test_nodes_from_env(self, monkeypatch):
        """Should parse NODES as a JSON array."""
        monkeypatch.setenv(
            "NODES", '[{"host": "a.example", "port": 2444}, {"host": "b.example"}]'
        )

        settings = Settings()

        assert [n.host for n in settings.nodes] == ["a.example", "b.example"]
        assert settings.nodes[0].port == 2444

    def test_nested_env(self, monkeypatch):
        """Should read nested settings via the ``__`` delimiter."""
        monkeypatch.setenv("PLAYER__MOVE_BEHAVIOR", "pause")
        monkeypatch.setenv("MANAGER__BALANCE_BY", "lavalink")
        monkeypatch.setenv("USER_ID", "123456789012345678")

        settings = Settings()

        assert settings.player.move_behavior == MoveBehavior.PAUSE
        assert settings.manager.balance_by == LoadBalanceMetric.LAVALINK
        assert settings.user_id == 123456789012345678

    def test_invalid_node_in_env(self, monkeypatch):
        monkeypatch.setenv("NODES", '[{"connection_timeout": 60, "retry_delay": 30}]')

        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self):
        first = get_settings()
        clear_settings_cache()

        assert get_settings() is not first
