"""Port interface for host voice signalling."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from discord_node_player.domain.music.value_objects import (
    StagePermissions,
    VoiceServerUpdate,
    VoiceStateUpdate,
)
from discord_node_player.domain.shared.types import ChannelIdField, DiscordSnowflake

VoiceServerCallback = Callable[[VoiceServerUpdate], Awaitable[None]]
VoiceStateCallback = Callable[[VoiceStateUpdate], Awaitable[None]]


class VoiceGateway(ABC):
    """Interface for the host application's voice channel signalling.

    Players only ever talk to the host through this port; join and leave are
    intents, the outcome arrives later as voice state updates.
    """

    @property
    @abstractmethod
    def user_id(self) -> DiscordSnowflake:
        """The host application's own user id."""
        ...

    @abstractmethod
    async def join(
        self,
        guild_id: DiscordSnowflake,
        channel_id: ChannelIdField,
        *,
        self_mute: bool = False,
        self_deaf: bool = True,
    ) -> None:
        """Request to join a voice channel."""
        ...

    @abstractmethod
    async def leave(self, guild_id: DiscordSnowflake) -> None:
        """Request to leave voice in a guild."""
        ...

    @abstractmethod
    def is_stage_channel(self, guild_id: DiscordSnowflake, channel_id: ChannelIdField) -> bool:
        ...

    @abstractmethod
    def get_stage_permissions(
        self, guild_id: DiscordSnowflake, channel_id: ChannelIdField
    ) -> StagePermissions:
        ...

    @abstractmethod
    async def become_speaker(self, guild_id: DiscordSnowflake, channel_id: ChannelIdField) -> None:
        """Un-suppress the host user in a stage channel."""
        ...

    @abstractmethod
    async def request_to_speak(
        self, guild_id: DiscordSnowflake, channel_id: ChannelIdField
    ) -> None:
        """Raise the host user's hand in a stage channel."""
        ...

    @abstractmethod
    def set_voice_update_callbacks(
        self,
        on_server_update: VoiceServerCallback,
        on_state_update: VoiceStateCallback,
    ) -> None:
        """Set callbacks for voice server and voice state updates."""
        ...
