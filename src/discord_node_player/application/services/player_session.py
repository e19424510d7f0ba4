"""Per-guild player: queue, loop mode, playback and voice state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from discord_node_player.application.interfaces.voice_gateway import VoiceGateway
from discord_node_player.domain.music.entities import QueueEntry, Track, TrackPartial
from discord_node_player.domain.music.events import (
    PlayerConnected,
    PlayerDestroyed,
    PlayerErrored,
    PlayerMoved,
    PlayerPaused,
    PlayerResumed,
    TrackEnded,
    TrackExceptionRaised,
    TrackStarted,
    TrackStuck,
)
from discord_node_player.domain.music.services import QueueDomainService
from discord_node_player.domain.music.value_objects import (
    LoopMode,
    MoveBehavior,
    PlayerOptions,
    PlayerState,
    PlayOptions,
    TrackEndReason,
    VoiceServerUpdate,
    VoiceStateUpdate,
)
from discord_node_player.domain.shared.events import DomainEvent, EventBus
from discord_node_player.domain.shared.exceptions import (
    DomainError,
    InvalidOperationError,
    InvalidTrackError,
    PlayerConnectError,
    ValidationError,
)
from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_node_player.domain.shared.types import VOLUME_DEFAULT
from discord_node_player.domain.shared.validators import is_valid_volume

if TYPE_CHECKING:
    from discord_node_player.infrastructure.lavalink.node import Node

logger = logging.getLogger(__name__)

DEFAULT_DESTROY_REASON = "Manual destroy"


class TrackResolver(Protocol):
    """Lookups a player delegates to its manager."""

    async def resolve_track(self, partial: TrackPartial) -> Track: ...

    async def decode_tracks(self, handles: list[str]) -> list[Track]: ...


class PlayerSession:
    """Playback state for one guild, bound to one node for its whole life.

    Playback commands are valid only while the player is CONNECTED, PAUSED
    or PLAYING. Voice membership changes reported by the host arrive through
    ``handle_voice_state_update``; node frames arrive through
    ``handle_node_frame``.
    """

    def __init__(
        self,
        options: PlayerOptions,
        node: Node,
        *,
        gateway: VoiceGateway,
        resolver: TrackResolver,
        events: EventBus,
        on_destroyed: Callable[[PlayerSession], None] | None = None,
    ) -> None:
        self.options = options
        self.node = node
        self._gateway = gateway
        self._resolver = resolver
        self._events = events
        self._on_destroyed = on_destroyed

        self._state = PlayerState.DISCONNECTED
        self.queue: list[QueueEntry] = []
        self.queue_position: int | None = None
        self.loop = LoopMode.OFF
        self.volume = VOLUME_DEFAULT
        self.filters: dict[str, Any] = {}
        self.position_ms: int | None = None

        self.current_voice_channel_id: int | None = None
        self.last_voice_state: VoiceStateUpdate | None = None
        self.is_speaker: bool | None = None
        self.is_stage: bool | None = None

        self._sent_paused_play = False
        self._connect_waiter: asyncio.Future[None] | None = None

        node.subscribe(options.guild_id, self)

    # ── Properties ──────────────────────────────────────────────────

    @property
    def guild_id(self) -> int:
        return self.options.guild_id

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def paused(self) -> bool:
        return self._state is PlayerState.PAUSED

    @property
    def playing(self) -> bool:
        return self._state is PlayerState.PLAYING

    @property
    def current_track(self) -> QueueEntry | None:
        if self.queue_position is None or self.queue_position >= len(self.queue):
            return None
        return self.queue[self.queue_position]

    def _require_active(self, operation: str) -> None:
        if not self._state.is_active:
            raise InvalidOperationError(
                operation,
                self._state.value,
                ErrorMessages.PLAYER_INACTIVE.format(operation=operation),
            )

    async def _publish(self, event: DomainEvent) -> None:
        await self._events.publish(event)

    # ── Voice connection ────────────────────────────────────────────

    async def connect(self) -> None:
        """Join the bound voice channel.

        Returns once the host reports the host user in the bound channel,
        after stage speaker negotiation when that applies.

        Raises:
            InvalidOperationError: The player is not DISCONNECTED.
            PlayerConnectError: Timed out, destroyed while connecting, or
                lacking stage permissions.
        """
        if self._state is not PlayerState.DISCONNECTED:
            raise InvalidOperationError(
                "connect", self._state.value, ErrorMessages.PLAYER_CANNOT_CONNECT
            )

        guild_id = self.guild_id
        channel_id = self.options.voice_channel_id
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._connect_waiter = waiter
        self._state = PlayerState.CONNECTING
        logger.info(LogTemplates.PLAYER_CONNECTING, guild_id, channel_id)

        try:
            await self._gateway.join(
                guild_id,
                channel_id,
                self_mute=self.options.self_mute,
                self_deaf=self.options.self_deafen,
            )
        except Exception as e:
            self._connect_waiter = None
            self._state = PlayerState.DISCONNECTED
            error = PlayerConnectError(guild_id, str(e))
            await self._publish(PlayerErrored(guild_id=guild_id, error=error))
            raise error from e

        try:
            async with asyncio.timeout(self.options.connection_timeout):
                await waiter
        except TimeoutError as e:
            logger.warning(LogTemplates.PLAYER_CONNECT_TIMEOUT, guild_id, channel_id)
            error = PlayerConnectError(guild_id, ErrorMessages.PLAYER_CONNECT_TIMEOUT)
            if self._state is PlayerState.CONNECTING:
                self._state = PlayerState.DISCONNECTED
                await self._leave_voice()
            await self._publish(PlayerErrored(guild_id=guild_id, error=error))
            raise error from e
        except PlayerConnectError as e:
            await self._publish(PlayerErrored(guild_id=guild_id, error=e))
            raise
        finally:
            self._connect_waiter = None

        if self.options.become_speaker:
            await self._negotiate_stage()

    async def _negotiate_stage(self) -> None:
        guild_id = self.guild_id
        channel_id = self.options.voice_channel_id

        if not self._gateway.is_stage_channel(guild_id, channel_id):
            self.is_stage = False
            return

        self.is_stage = True
        self.is_speaker = False
        permissions = self._gateway.get_stage_permissions(guild_id, channel_id)

        if permissions.become_speaker:
            await self._gateway.become_speaker(guild_id, channel_id)
            self.is_speaker = True
            logger.info(LogTemplates.PLAYER_STAGE_SPEAKER, guild_id)
        elif permissions.request_to_speak:
            await self._gateway.request_to_speak(guild_id, channel_id)
            logger.info(LogTemplates.PLAYER_STAGE_REQUEST, guild_id)
        else:
            error = PlayerConnectError(guild_id, ErrorMessages.PLAYER_STAGE_NO_PERMISSION)
            await self._publish(PlayerErrored(guild_id=guild_id, error=error))
            await self.destroy(error.message)
            raise error

    async def _leave_voice(self) -> None:
        try:
            await self._gateway.leave(self.guild_id)
        except Exception as e:
            logger.warning(LogTemplates.PLAYER_LEAVE_FAILED, self.guild_id, e)
        self.current_voice_channel_id = None

    async def destroy(self, reason: str = DEFAULT_DESTROY_REASON) -> None:
        """Tear the player down. Calling it again has no effect."""
        if self._state is PlayerState.DESTROYED:
            return

        self._state = PlayerState.DESTROYED
        self.node.unsubscribe(self.guild_id)
        if self._on_destroyed is not None:
            self._on_destroyed(self)

        if self.current_voice_channel_id is not None:
            await self._leave_voice()

        try:
            await self.node.send({"op": "destroy", "guildId": str(self.guild_id)})
        except DomainError as e:
            logger.debug(LogTemplates.PLAYER_DESTROY_FRAME_FAILED, self.guild_id, e)

        self.queue.clear()
        self.queue_position = None
        self.position_ms = None

        waiter = self._connect_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(
                PlayerConnectError(
                    self.guild_id,
                    ErrorMessages.PLAYER_DESTROYED_WHILE_CONNECTING.format(reason=reason),
                )
            )

        logger.info(LogTemplates.PLAYER_DESTROYED, self.guild_id, reason)
        await self._publish(PlayerDestroyed(guild_id=self.guild_id, reason=reason))

    # ── Playback commands ───────────────────────────────────────────

    async def play(
        self,
        tracks: QueueEntry | Sequence[QueueEntry],
        options: PlayOptions | None = None,
    ) -> None:
        """Append to the queue, starting the first new entry if nothing is playing."""
        self._require_active("play")
        if options is not None and options.volume is not None and not is_valid_volume(options.volume):
            raise ValidationError(ErrorMessages.VOLUME_OUT_OF_RANGE, field="volume")

        entries = [tracks] if isinstance(tracks, Track | TrackPartial) else list(tracks)
        idle = self._state is PlayerState.CONNECTED
        start = len(self.queue)
        self.queue.extend(entries)

        if idle and entries:
            track = await self._resolve_at(start)
            await self._play(track, options)
            self.queue_position = start

    async def skip(self, index: int | None = None) -> None:
        """Stop the current track and play ``index``, or advance the queue."""
        self._require_active("skip")
        if index is not None and not 0 <= index < len(self.queue):
            raise ValidationError(ErrorMessages.INVALID_INDEX, field="index")

        await self._stop()
        if index is None:
            await self._advance_queue()
            return

        track = await self._resolve_at(index)
        await self._play(track)
        self.queue_position = index

    async def shuffle(self) -> None:
        """Stop, shuffle the whole queue and play the new first entry."""
        self._require_active("shuffle")
        await self._stop()
        QueueDomainService.shuffle(self.queue)
        self.queue_position = None
        if not self.queue:
            return

        track = await self._resolve_at(0, ErrorMessages.INVALID_TRACK_AT_ZERO)
        await self._play(track)
        self.queue_position = 0

    async def seek(self, position_ms: int) -> None:
        self._require_active("seek")
        if position_ms < 0:
            raise ValidationError(ErrorMessages.NEGATIVE_POSITION, field="position")
        await self.node.send({"op": "seek", "guildId": str(self.guild_id), "position": position_ms})

    async def pause(self, reason: str = "Manual pause") -> None:
        self._require_active("pause")
        await self.node.send({"op": "pause", "guildId": str(self.guild_id), "pause": True})
        self._state = PlayerState.PAUSED
        logger.info(LogTemplates.PLAYBACK_PAUSED, self.guild_id, reason)
        await self._publish(PlayerPaused(guild_id=self.guild_id, reason=reason))

    async def resume(self, reason: str = "Manual resume") -> None:
        self._require_active("resume")
        await self.node.send({"op": "pause", "guildId": str(self.guild_id), "pause": False})
        self._state = PlayerState.PLAYING
        logger.info(LogTemplates.PLAYBACK_RESUMED, self.guild_id, reason)
        await self._publish(PlayerResumed(guild_id=self.guild_id, reason=reason))

    async def stop(self) -> None:
        self._require_active("stop")
        await self._stop()
        self.queue_position = None

    async def clear(self, stop: bool = False) -> None:
        """Empty the queue.

        Without ``stop`` the current track is kept as the only entry.
        """
        if stop:
            await self.stop()

        current = self.current_track
        if current is None:
            self.queue = []
            self.queue_position = None
        else:
            self.queue = [current]
            self.queue_position = 0

    def set_loop(self, mode: LoopMode | str) -> None:
        try:
            self.loop = LoopMode(mode)
        except ValueError as e:
            raise ValidationError(str(e), field="loop") from e

    async def set_volume(self, volume: int) -> None:
        self._require_active("set volume")
        if not is_valid_volume(volume):
            raise ValidationError(ErrorMessages.VOLUME_OUT_OF_RANGE, field="volume")
        self.volume = volume
        await self.node.send({"op": "volume", "guildId": str(self.guild_id), "volume": volume})

    async def set_filters(self, filters: dict[str, Any]) -> None:
        """Forward a filter document verbatim; an empty document clears filters."""
        self._require_active("set filters")
        await self.node.send({**filters, "op": "filters", "guildId": str(self.guild_id)})
        self.filters = dict(filters)

    # ── Internals ───────────────────────────────────────────────────

    async def _resolve_at(self, index: int, message: str = ErrorMessages.INVALID_TRACK) -> Track:
        """Return the Track at ``index``, resolving a partial in place."""
        entry = self.queue[index]
        if isinstance(entry, TrackPartial):
            resolved = await self._resolver.resolve_track(entry)
            if index < len(self.queue) and self.queue[index] is entry:
                self.queue[index] = resolved
            entry = resolved
        if not isinstance(entry, Track):
            raise InvalidTrackError(message)
        return entry

    async def _play(self, track: Track, options: PlayOptions | None = None) -> None:
        self._require_active("play")
        frame: dict[str, Any] = {"op": "play", "guildId": str(self.guild_id), "track": track.encoded}
        pause = False

        if options is not None:
            if options.start_time_ms is not None:
                frame["startTime"] = options.start_time_ms
            if options.end_time_ms is not None:
                frame["endTime"] = options.end_time_ms
            pause = options.pause

        if options is not None and options.volume is not None:
            if not is_valid_volume(options.volume):
                raise ValidationError(ErrorMessages.VOLUME_OUT_OF_RANGE, field="volume")
            self.volume = options.volume
            if options.volume != VOLUME_DEFAULT:
                frame["volume"] = options.volume
        elif self.volume != VOLUME_DEFAULT:
            frame["volume"] = self.volume

        # Audience members cannot transmit; start paused until promoted.
        if self.is_stage and not self.is_speaker:
            pause = True

        if pause:
            frame["pause"] = True
            self._sent_paused_play = True

        await self.node.send(frame)
        logger.info(LogTemplates.PLAYBACK_STARTED, track.title, self.guild_id)

    async def _stop(self) -> None:
        await self.node.send({"op": "stop", "guildId": str(self.guild_id)})
        self.position_ms = None
        self._state = PlayerState.CONNECTED
        logger.debug(LogTemplates.PLAYBACK_STOPPED, self.guild_id)

    async def _advance_queue(self) -> None:
        """Move to the next playable entry according to the loop mode.

        Entries that fail to resolve or play are reported and stepped past.
        Gives up after one pass over the queue.
        """
        if not self._state.is_active:
            error = InvalidOperationError(
                "advance the queue",
                self._state.value,
                ErrorMessages.PLAYER_INACTIVE.format(operation="advance the queue"),
            )
            await self._publish(PlayerErrored(guild_id=self.guild_id, error=error))
            return

        position = self.queue_position
        for _ in range(len(self.queue) + 1):
            index = QueueDomainService.next_index(position, self.loop, len(self.queue))
            if index is None:
                break

            try:
                track = await self._resolve_at(index, ErrorMessages.PLAYER_ADVANCE_UNRESOLVED)
                await self._play(track)
            except DomainError as e:
                logger.warning(LogTemplates.PLAYER_ADVANCE_FAILED, self.guild_id, index, e)
                await self._publish(PlayerErrored(guild_id=self.guild_id, error=e))
                if not self._state.is_active:
                    return
                # SINGLE would retry the same entry forever.
                position = index + 1 if self.loop == LoopMode.SINGLE else index
                continue

            self.queue_position = index
            return

        self.queue_position = None
        logger.debug(LogTemplates.PLAYER_QUEUE_EXHAUSTED, self.guild_id)

    # ── Node frames ─────────────────────────────────────────────────

    async def handle_node_frame(self, frame: dict[str, Any]) -> None:
        if self._state is PlayerState.DESTROYED:
            return

        op = frame.get("op")
        if op == "playerUpdate":
            state = frame.get("state") or {}
            self.position_ms = state.get("position")
        elif op == "event":
            await self._handle_event(frame)

    async def _handle_event(self, frame: dict[str, Any]) -> None:
        guild_id = self.guild_id
        event_type = frame.get("type")
        track = await self._decode_event_track(frame.get("track"))

        if event_type == "TrackStartEvent":
            if self._sent_paused_play:
                self._state = PlayerState.PAUSED
                self._sent_paused_play = False
            else:
                self._state = PlayerState.PLAYING
            await self._publish(TrackStarted(guild_id=guild_id, track=track))

        elif event_type == "TrackEndEvent":
            reason = str(frame.get("reason") or "")
            self.position_ms = None
            if self._state.is_active:
                self._state = PlayerState.CONNECTED
            logger.debug(LogTemplates.PLAYBACK_TRACK_END, guild_id, reason)
            await self._publish(TrackEnded(guild_id=guild_id, track=track, reason=reason))

            try:
                advance = TrackEndReason(reason).may_start_next
            except ValueError:
                advance = True
            if advance:
                await self._advance_queue()

        elif event_type == "TrackExceptionEvent":
            exception = frame.get("exception") or {}
            logger.warning(LogTemplates.PLAYBACK_TRACK_EXCEPTION, guild_id, exception.get("message"))
            await self._publish(
                TrackExceptionRaised(
                    guild_id=guild_id,
                    track=track,
                    message=exception.get("message") or "",
                    severity=exception.get("severity") or "",
                    cause=exception.get("cause") or "",
                )
            )

        elif event_type == "TrackStuckEvent":
            threshold = int(frame.get("thresholdMs") or 0)
            logger.warning(LogTemplates.PLAYBACK_TRACK_STUCK, guild_id, threshold)
            await self._publish(TrackStuck(guild_id=guild_id, track=track, threshold_ms=threshold))
            try:
                await self._stop()
            except DomainError as e:
                logger.warning(LogTemplates.PLAYER_STOP_FAILED, guild_id, e)
            await self._advance_queue()

    async def _decode_event_track(self, encoded: Any) -> Track | None:
        """Decode the frame's track and attribute it to the queued requester."""
        if not isinstance(encoded, str) or not encoded:
            return None

        try:
            decoded = await self._resolver.decode_tracks([encoded])
        except DomainError as e:
            logger.warning(LogTemplates.PLAYER_DECODE_FAILED, self.guild_id, e)
            return None
        if not decoded:
            return None

        track = decoded[0]
        current = self.current_track
        if current is not None and current.title == track.title:
            source = current
        else:
            source = next((entry for entry in self.queue if entry.title == track.title), None)
        return track.with_requester(source.requester) if source is not None else track

    # ── Voice updates ───────────────────────────────────────────────

    async def forward_voice_server_update(self, update: VoiceServerUpdate) -> None:
        """Relay a voice server assignment to the node as a ``voiceUpdate`` frame."""
        session_id = update.session_id
        if session_id is None and self.last_voice_state is not None:
            session_id = self.last_voice_state.session_id
        if session_id is None:
            logger.debug(LogTemplates.VOICE_SESSION_ID_MISSING, self.guild_id)
            return

        await self.node.send(
            {
                "op": "voiceUpdate",
                "guildId": str(self.guild_id),
                "sessionId": session_id,
                "event": update.to_event_payload(),
            }
        )

    async def handle_voice_state_update(self, update: VoiceStateUpdate) -> None:
        """Reconcile the player with the host user's reported voice state.

        The first snapshot only seeds ``last_voice_state``; stage speaker
        changes are judged against the previous snapshot.
        """
        if self._state is PlayerState.DESTROYED:
            return

        old_channel = self.current_voice_channel_id
        new_channel = update.channel_id
        expected = self.options.voice_channel_id
        previous = self.last_voice_state

        was_correct = old_channel == expected
        now_correct = new_channel == expected
        was_suppressed = previous.suppress if previous is not None else False
        now_suppressed = update.suppress

        self.current_voice_channel_id = new_channel
        self.last_voice_state = update

        if new_channel != old_channel:
            logger.info(LogTemplates.PLAYER_MOVED, self.guild_id, old_channel, new_channel)
            await self._publish(
                PlayerMoved(
                    guild_id=self.guild_id, old_channel_id=old_channel, new_channel_id=new_channel
                )
            )

        if self._state is PlayerState.CONNECTING:
            if now_correct:
                self._state = PlayerState.CONNECTED
                logger.info(LogTemplates.PLAYER_CONNECTED, self.guild_id, new_channel)
                await self._publish(PlayerConnected(guild_id=self.guild_id, channel_id=expected))
                if self._connect_waiter is not None and not self._connect_waiter.done():
                    self._connect_waiter.set_result(None)
            else:
                await self.destroy("Connected to incorrect channel")
            return

        if not self._state.is_active:
            return

        try:
            await self._reconcile_channel(was_correct, now_correct)
            if self._state.is_active and previous is not None:
                await self._reconcile_stage(was_suppressed, now_suppressed)
        except DomainError as e:
            await self._publish(PlayerErrored(guild_id=self.guild_id, error=e))

    async def _reconcile_channel(self, was_correct: bool, now_correct: bool) -> None:
        if self.options.move_behavior == MoveBehavior.DESTROY:
            if not now_correct:
                await self.destroy("Player was moved out of the voice channel")
            return

        if self._state is PlayerState.PAUSED and not was_correct and now_correct:
            await self.resume("Moved into the voice channel")
        elif self._state is PlayerState.PLAYING and was_correct and not now_correct:
            await self.pause("Moved out of the voice channel")

    async def _reconcile_stage(self, was_suppressed: bool, now_suppressed: bool) -> None:
        if not (self.is_stage and self.options.become_speaker):
            return

        self.is_speaker = not now_suppressed
        demoted = not was_suppressed and now_suppressed

        if self.options.stage_move_behavior == MoveBehavior.DESTROY:
            if demoted:
                await self.destroy("Player was moved to the audience")
            return

        if self._state is PlayerState.PAUSED and was_suppressed and not now_suppressed:
            await self.resume("Became a speaker")
        elif self._state is PlayerState.PLAYING and demoted:
            await self.pause("Moved to the audience")
            await self._renegotiate_speaker()

    async def _renegotiate_speaker(self) -> None:
        guild_id = self.guild_id
        channel_id = self.options.voice_channel_id
        try:
            permissions = self._gateway.get_stage_permissions(guild_id, channel_id)
            if permissions.request_to_speak:
                await self._gateway.request_to_speak(guild_id, channel_id)
            elif permissions.become_speaker:
                await self._gateway.become_speaker(guild_id, channel_id)
        except Exception as e:
            logger.warning(LogTemplates.PLAYER_STAGE_RENEGOTIATE_FAILED, guild_id, e)

    def __repr__(self) -> str:
        return (
            f"PlayerSession(guild_id={self.guild_id}, state={self._state.name}, "
            f"node={self.node.identifier}, queue={len(self.queue)})"
        )
