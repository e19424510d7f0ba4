"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.music.value_objects import (
    LoadBalanceMetric,
    MoveBehavior,
    SearchSource,
)
from ..domain.shared.messages import ErrorMessages
from ..domain.shared.types import (
    DiscordSnowflake,
    NonEmptyStr,
    NonNegativeFloat,
    NonNegativeInt,
    PortInt,
    PositiveFloat,
)
from ..domain.shared.validators import validate_discord_snowflake


class NodeSettings(BaseModel):
    """Connection settings for one audio node. Times are in seconds."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    host: NonEmptyStr = "localhost"
    port: PortInt = 2333
    password: SecretStr = Field(
        default=SecretStr("youshallnotpass"),
        validation_alias=AliasChoices("password", "authorization"),
    )
    secure: bool = False
    client_name: NonEmptyStr = "discord-node-player"
    connection_timeout: PositiveFloat = 15.0
    request_timeout: PositiveFloat = 15.0
    max_retries: NonNegativeInt = Field(
        default=10, validation_alias=AliasChoices("max_retries", "max_retrys")
    )
    """Connect / reconnect attempts before giving up; 0 retries forever."""
    retry_delay: PositiveFloat = 30.0

    @model_validator(mode="after")
    def validate_timeouts(self) -> NodeSettings:
        """A hung connect attempt must finish before the next retry tick."""
        if not self.connection_timeout < self.retry_delay:
            raise ValueError(
                ErrorMessages.CONNECTION_TIMEOUT_NOT_BELOW_RETRY_DELAY.format(
                    timeout=self.connection_timeout, delay=self.retry_delay
                )
            )
        return self


class PlayerSettings(BaseModel):
    """Defaults applied to every player the manager creates."""

    model_config = SettingsConfigDict(frozen=True)

    self_mute: bool = False
    self_deafen: bool = True
    connection_timeout: PositiveFloat = 15.0
    become_speaker: bool = True
    move_behavior: MoveBehavior = MoveBehavior.DESTROY
    stage_move_behavior: MoveBehavior = MoveBehavior.PAUSE


class SpotifySettings(BaseModel):
    """Spotify client-credentials configuration. Leave both blank to disable."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    client_id: str = Field(
        default="", validation_alias=AliasChoices("client_id", "spotify_client_id")
    )
    client_secret: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("client_secret", "spotify_client_secret"),
    )
    refresh_margin: NonNegativeFloat = 60.0
    """Renew this many seconds before the token expires."""
    retry_delay: PositiveFloat = 5.0
    """Pause after a failed renewal before trying again."""

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret.get_secret_value())

    @property
    def partially_configured(self) -> bool:
        return bool(self.client_id) != bool(self.client_secret.get_secret_value())


class ManagerSettings(BaseModel):
    """Search sources and node selection."""

    model_config = SettingsConfigDict(frozen=True)

    enabled_sources: tuple[SearchSource, ...] = (SearchSource.YOUTUBE, SearchSource.SOUNDCLOUD)
    default_source: SearchSource = SearchSource.YOUTUBE
    balance_by: LoadBalanceMetric = LoadBalanceMetric.SYSTEM

    @field_validator("enabled_sources", mode="before")
    @classmethod
    def split_sources(cls, v: object) -> object:
        """Accept a comma-separated string."""
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL, USER_ID (top-level)
    - NODES as a JSON array of node objects
    - PLAYER__MOVE_BEHAVIOR, MANAGER__DEFAULT_SOURCE, etc. (nested)
    - SPOTIFY__CLIENT_ID / SPOTIFY__CLIENT_SECRET
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    user_id: DiscordSnowflake | None = Field(
        default=None, validation_alias=AliasChoices("user_id", "bot_user_id")
    )
    nodes: tuple[NodeSettings, ...] = Field(default_factory=lambda: (NodeSettings(),))
    player: PlayerSettings = Field(default_factory=PlayerSettings)
    manager: ManagerSettings = Field(default_factory=ManagerSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: int | None) -> int | None:
        if v is None:
            return v
        return validate_discord_snowflake(v)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
