"""discord.py implementation of the VoiceGateway port.

The library never opens a voice connection of its own: ``NodeVoiceProtocol``
only asks the Discord gateway to move the bot user and relays the resulting
voice server and voice state updates so that the audio node can connect
instead.
"""

from __future__ import annotations

import logging
from typing import Any

import discord

from discord_node_player.application.interfaces.voice_gateway import (
    VoiceGateway,
    VoiceServerCallback,
    VoiceStateCallback,
)
from discord_node_player.domain.music.value_objects import (
    StagePermissions,
    VoiceServerUpdate,
    VoiceStateUpdate,
)
from discord_node_player.domain.shared.exceptions import ValidationError
from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

VoiceChannel = discord.VoiceChannel | discord.StageChannel


class NodeVoiceProtocol(discord.VoiceProtocol):
    """Voice client that signals Discord but streams nothing locally."""

    def __init__(
        self, client: discord.Client, channel: discord.abc.Connectable, gateway: DiscordVoiceGateway
    ) -> None:
        super().__init__(client, channel)
        self.gateway = gateway
        self.guild_id: int = channel.guild.id  # type: ignore[attr-defined]
        self.session_id: str | None = None

    @property
    def guild(self) -> discord.Guild:
        return self.channel.guild  # type: ignore[attr-defined]

    async def connect(
        self,
        *,
        timeout: float,
        reconnect: bool,
        self_deaf: bool = False,
        self_mute: bool = False,
    ) -> None:
        await self.guild.change_voice_state(
            channel=self.channel,  # type: ignore[arg-type]
            self_mute=self_mute,
            self_deaf=self_deaf,
        )

    async def disconnect(self, *, force: bool = False) -> None:
        await self.guild.change_voice_state(channel=None)
        self.cleanup()

    async def on_voice_state_update(self, data: dict[str, Any]) -> None:  # type: ignore[override]
        self.session_id = data.get("session_id")
        raw_channel = data.get("channel_id")
        channel_id = int(raw_channel) if raw_channel else None

        if channel_id is not None:
            channel = self.guild.get_channel(channel_id)
            if channel is not None:
                self.channel = channel  # type: ignore[assignment]

        update = VoiceStateUpdate(
            guild_id=self.guild_id,
            user_id=int(data["user_id"]),
            channel_id=channel_id,
            session_id=self.session_id,
            suppress=bool(data.get("suppress", False)),
        )
        await self.gateway.dispatch_state_update(update)

        if channel_id is None:
            self.cleanup()

    async def on_voice_server_update(self, data: dict[str, Any]) -> None:  # type: ignore[override]
        update = VoiceServerUpdate(
            guild_id=int(data["guild_id"]),
            endpoint=data.get("endpoint"),
            token=data["token"],
            session_id=self.session_id,
        )
        await self.gateway.dispatch_server_update(update)


class DiscordVoiceGateway(VoiceGateway):
    def __init__(self, bot: discord.Client) -> None:
        self._bot = bot
        self._on_server_update: VoiceServerCallback | None = None
        self._on_state_update: VoiceStateCallback | None = None

    @property
    def user_id(self) -> int:
        if self._bot.user is None:
            raise ValidationError(ErrorMessages.HOST_USER_UNAVAILABLE, field="user_id")
        return self._bot.user.id

    def _get_guild(self, guild_id: int) -> discord.Guild:
        guild = self._bot.get_guild(guild_id)
        if guild is None:
            logger.warning(LogTemplates.GUILD_NOT_FOUND, guild_id)
            raise ValidationError(
                ErrorMessages.GUILD_NOT_FOUND.format(guild_id=guild_id), field="guild_id"
            )
        return guild

    def _get_voice_channel(self, guild_id: int, channel_id: int) -> VoiceChannel:
        guild = self._get_guild(guild_id)
        channel = guild.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            logger.warning(LogTemplates.CHANNEL_NOT_VOICE, channel_id)
            raise ValidationError(
                ErrorMessages.CHANNEL_NOT_VOICE.format(channel_id=channel_id), field="channel_id"
            )
        return channel

    def _make_protocol(
        self, client: discord.Client, channel: discord.abc.Connectable
    ) -> NodeVoiceProtocol:
        return NodeVoiceProtocol(client, channel, self)

    async def join(
        self,
        guild_id: int,
        channel_id: int,
        *,
        self_mute: bool = False,
        self_deaf: bool = True,
    ) -> None:
        channel = self._get_voice_channel(guild_id, channel_id)
        logger.debug(LogTemplates.VOICE_JOIN_REQUESTED, guild_id, channel_id)

        if isinstance(channel.guild.voice_client, NodeVoiceProtocol):
            await channel.guild.change_voice_state(
                channel=channel, self_mute=self_mute, self_deaf=self_deaf
            )
            return

        await channel.connect(cls=self._make_protocol, self_mute=self_mute, self_deaf=self_deaf)

    async def leave(self, guild_id: int) -> None:
        guild = self._get_guild(guild_id)
        logger.debug(LogTemplates.VOICE_LEAVE_REQUESTED, guild_id)

        if guild.voice_client is not None:
            await guild.voice_client.disconnect(force=True)
        else:
            await guild.change_voice_state(channel=None)

    def is_stage_channel(self, guild_id: int, channel_id: int) -> bool:
        guild = self._bot.get_guild(guild_id)
        if guild is None:
            return False
        return isinstance(guild.get_channel(channel_id), discord.StageChannel)

    def get_stage_permissions(self, guild_id: int, channel_id: int) -> StagePermissions:
        channel = self._get_voice_channel(guild_id, channel_id)
        permissions = channel.permissions_for(channel.guild.me)
        return StagePermissions(
            become_speaker=permissions.mute_members,
            request_to_speak=permissions.request_to_speak,
        )

    async def become_speaker(self, guild_id: int, channel_id: int) -> None:
        guild = self._get_guild(guild_id)
        await guild.me.edit(suppress=False)

    async def request_to_speak(self, guild_id: int, channel_id: int) -> None:
        guild = self._get_guild(guild_id)
        await guild.me.request_to_speak()

    def set_voice_update_callbacks(
        self,
        on_server_update: VoiceServerCallback,
        on_state_update: VoiceStateCallback,
    ) -> None:
        self._on_server_update = on_server_update
        self._on_state_update = on_state_update

    async def dispatch_server_update(self, update: VoiceServerUpdate) -> None:
        if self._on_server_update is None:
            return
        try:
            await self._on_server_update(update)
        except Exception:
            logger.exception(LogTemplates.VOICE_CALLBACK_ERROR, update.guild_id)

    async def dispatch_state_update(self, update: VoiceStateUpdate) -> None:
        if self._on_state_update is None:
            return
        try:
            await self._on_state_update(update)
        except Exception:
            logger.exception(LogTemplates.VOICE_CALLBACK_ERROR, update.guild_id)
