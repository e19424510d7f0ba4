"""Top-level façade: node pool, player registry, search and track resolution."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any, Final

from pydantic import ValidationError as PydanticValidationError

from discord_node_player.application.interfaces.voice_gateway import VoiceGateway
from discord_node_player.application.services.player_session import PlayerSession
from discord_node_player.config.settings import (
    ManagerSettings,
    NodeSettings,
    PlayerSettings,
    SpotifySettings,
)
from discord_node_player.domain.music.entities import (
    LoadException,
    PlaylistInfo,
    SearchResult,
    Track,
    TrackPartial,
)
from discord_node_player.domain.music.events import (
    NodeCreated,
    NodeErrored,
    PlayerCreated,
    SpotifyAuthFailed,
)
from discord_node_player.domain.music.services import TrackMatchingService
from discord_node_player.domain.music.value_objects import (
    LoadBalanceMetric,
    LoadType,
    NodeState,
    PlayerOptions,
    SearchSource,
    VoiceServerUpdate,
    VoiceStateUpdate,
)
from discord_node_player.domain.shared.events import EventBus
from discord_node_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    CatalogRequestError,
    ConfigurationError,
    DomainError,
    InvalidTrackError,
    NoAvailableNodesError,
    NodeConnectionError,
    NodeRequestError,
    NoResultsError,
    ValidationError,
)
from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_node_player.domain.shared.types import DiscordSnowflake
from discord_node_player.infrastructure.lavalink.node import Node
from discord_node_player.infrastructure.spotify.client import SpotifyClient, SpotifyReference

logger = logging.getLogger(__name__)

URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^https?://")
MANAGER_CLOSED_REASON = "Manager closed"

NodeFactory = Callable[[int, NodeSettings], Node]


class SessionManager:
    """Owns the node pool and every guild's player.

    One event bus is shared by the manager, its nodes and its players;
    subscribe to ``manager.events`` to observe all of them.
    """

    def __init__(
        self,
        gateway: VoiceGateway,
        nodes: Sequence[NodeSettings],
        *,
        manager_settings: ManagerSettings | None = None,
        player_settings: PlayerSettings | None = None,
        spotify_settings: SpotifySettings | None = None,
        spotify_client: SpotifyClient | None = None,
        events: EventBus | None = None,
        node_factory: NodeFactory | None = None,
    ) -> None:
        self._settings = manager_settings or ManagerSettings()
        self._player_settings = player_settings or PlayerSettings()
        self._spotify_settings = spotify_settings or SpotifySettings()

        if not nodes:
            raise ConfigurationError(ErrorMessages.NO_NODES_CONFIGURED)
        if self._settings.default_source not in self._settings.enabled_sources:
            raise ConfigurationError(ErrorMessages.DEFAULT_SOURCE_NOT_ENABLED)
        if self._spotify_settings.partially_configured:
            raise ConfigurationError(ErrorMessages.SPOTIFY_AUTH_INCOMPLETE)

        self._gateway = gateway
        self.events = events or EventBus()

        self._spotify = spotify_client
        self._owns_spotify = spotify_client is None
        if self._spotify is None and self._spotify_settings.enabled:
            self._spotify = SpotifyClient(self._spotify_settings)
        self._credential_task: asyncio.Task[None] | None = None

        factory = node_factory or self._build_node
        self._nodes: dict[int, Node] = {}
        for identifier, node_settings in enumerate(nodes):
            self._nodes[identifier] = factory(identifier, node_settings)
        self._nodes_announced = False

        self._sessions: dict[int, PlayerSession] = {}

        gateway.set_voice_update_callbacks(
            self.handle_voice_server_update, self.handle_voice_state_update
        )

    def _build_node(self, identifier: int, settings: NodeSettings) -> Node:
        return Node(
            identifier,
            settings,
            user_id=lambda: self._gateway.user_id,
            events=self.events,
            on_destroyed=self._remove_node,
        )

    # ── Accessors ───────────────────────────────────────────────────

    @property
    def nodes(self) -> dict[int, Node]:
        return dict(self._nodes)

    @property
    def sessions(self) -> dict[int, PlayerSession]:
        return dict(self._sessions)

    @property
    def spotify(self) -> SpotifyClient | None:
        return self._spotify

    def get_session(self, guild_id: DiscordSnowflake) -> PlayerSession | None:
        return self._sessions.get(guild_id)

    def _remove_node(self, node: Node) -> None:
        if self._nodes.get(node.identifier) is node:
            del self._nodes[node.identifier]

    def _remove_session(self, session: PlayerSession) -> None:
        if self._sessions.get(session.guild_id) is session:
            del self._sessions[session.guild_id]

    # ── Nodes ───────────────────────────────────────────────────────

    @property
    def least_load_nodes(self) -> list[Node]:
        """Connected nodes, least loaded first; ties keep pool order."""
        connected = [node for node in self._nodes.values() if node.state is NodeState.CONNECTED]
        if self._settings.balance_by == LoadBalanceMetric.LAVALINK:
            return sorted(connected, key=lambda node: node.lavalink_load)
        return sorted(connected, key=lambda node: node.load)

    def least_loaded_node(self, message: str = ErrorMessages.NO_NODES_AVAILABLE) -> Node:
        candidates = self.least_load_nodes
        if not candidates:
            raise NoAvailableNodesError(message)
        return candidates[0]

    async def connect_nodes(self) -> list[Node | BaseException]:
        """Connect every node concurrently.

        Each node retries on its own interval until its own retry cap; one
        node giving up does not affect the others.

        The first Spotify token is requested before any node connects, so a
        search issued right after this returns can already use the catalog.
        Nodes that are already connected are returned as they are.

        Returns:
            Per node, in pool order, the connected node or the final error.
        """
        if self._spotify is not None and not self._credential_loop_running():
            self.start_credential_loop(await self._renew_spotify_token())

        nodes = list(self._nodes.values())
        if not self._nodes_announced:
            self._nodes_announced = True
            for node in nodes:
                await self.events.publish(NodeCreated(node_id=node.identifier))

        logger.info(LogTemplates.MANAGER_CONNECTING_NODES, len(nodes))
        results = await asyncio.gather(
            *(self._connect_with_retries(node) for node in nodes), return_exceptions=True
        )
        return list(results)

    async def _connect_with_retries(self, node: Node) -> Node:
        if node.state is NodeState.CONNECTED:
            return node

        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        attempts = 0
        max_retries = node.settings.max_retries

        while True:
            if max_retries != 0 and attempts >= max_retries:
                logger.error(LogTemplates.MANAGER_NODE_CONNECT_GAVE_UP, node.identifier, attempts)
                error = NodeConnectionError(
                    ErrorMessages.NODE_CONNECT_EXHAUSTED.format(attempts=attempts),
                    node.identifier,
                )
                await self.events.publish(NodeErrored(node_id=node.identifier, error=error))
                raise error

            try:
                await node.connect()
            except NodeConnectionError:
                attempts += 1
            else:
                return node

            next_tick += node.settings.retry_delay
            await asyncio.sleep(max(next_tick - loop.time(), 0))

    # ── Players ─────────────────────────────────────────────────────

    async def create_session(
        self,
        guild_id: DiscordSnowflake,
        text_channel_id: DiscordSnowflake,
        voice_channel_id: DiscordSnowflake,
        **overrides: Any,
    ) -> PlayerSession:
        """Create and register a player on the least-loaded node.

        Keyword overrides replace the configured player defaults.

        Raises:
            ValidationError: An id or override is invalid.
            BusinessRuleViolationError: The guild already has a player.
            NoAvailableNodesError: No node is connected.
        """
        try:
            options = PlayerOptions(
                **{
                    **self._player_settings.model_dump(),
                    **overrides,
                    "guild_id": guild_id,
                    "text_channel_id": text_channel_id,
                    "voice_channel_id": voice_channel_id,
                }
            )
        except PydanticValidationError as e:
            raise ValidationError(str(e)) from e

        if options.guild_id in self._sessions:
            raise BusinessRuleViolationError(
                "one_player_per_guild", ErrorMessages.PLAYER_ALREADY_EXISTS
            )

        node = self.least_loaded_node(ErrorMessages.NO_NODES_FOR_PLAYER)
        session = PlayerSession(
            options,
            node,
            gateway=self._gateway,
            resolver=self,
            events=self.events,
            on_destroyed=self._remove_session,
        )
        self._sessions[options.guild_id] = session

        logger.info(LogTemplates.PLAYER_CREATED, options.guild_id, node.identifier)
        await self.events.publish(PlayerCreated(guild_id=options.guild_id, node_id=node.identifier))
        return session

    # ── Search ──────────────────────────────────────────────────────

    async def search(
        self,
        query: str,
        requester: str,
        source: SearchSource | str | None = None,
    ) -> SearchResult:
        """Look up a query or URL.

        Spotify links go to Spotify when a token is held and come back as
        ``TrackPartial`` entries. Everything else goes to the least-loaded
        node; bare URLs pass through, other queries get the source prefix.
        """
        try:
            search_source = (
                SearchSource(source) if source is not None else self._settings.default_source
            )
        except ValueError as e:
            raise ValidationError(ErrorMessages.SOURCE_NOT_ENABLED, field="source") from e
        if search_source not in self._settings.enabled_sources:
            raise ValidationError(ErrorMessages.SOURCE_NOT_ENABLED, field="source")

        if self._spotify is not None and self._spotify.has_token:
            reference = SpotifyClient.match(query)
            if reference is not None:
                return await self._search_spotify(reference, requester)

        node = self.least_loaded_node(ErrorMessages.NO_NODES_FOR_SEARCH)
        identifier = query if URL_PATTERN.match(query) else f"{search_source.prefix}{query}"

        logger.debug(LogTemplates.SEARCH_STARTED, query, search_source.value, node.identifier)
        response = await node.request("GET", "/loadtracks", query={"identifier": identifier})
        if not isinstance(response.json_body, dict):
            raise NodeRequestError(ErrorMessages.NO_SEARCH_RESPONSE, node.identifier)
        return self._parse_search_result(response.json_body, requester, node.identifier)

    @staticmethod
    def _parse_search_result(
        data: dict[str, Any], requester: str, node_id: int | None = None
    ) -> SearchResult:
        try:
            load_type = LoadType(data.get("loadType"))
        except ValueError as e:
            raise NodeRequestError(ErrorMessages.NO_SEARCH_RESPONSE, node_id) from e

        tracks: list[Track] = []
        for item in data.get("tracks") or []:
            try:
                tracks.append(Track.from_payload(item, requester))
            except InvalidTrackError:
                logger.debug(LogTemplates.SEARCH_ENTRY_SKIPPED, item)

        playlist_info = None
        raw_playlist = data.get("playlistInfo")
        if isinstance(raw_playlist, dict) and raw_playlist:
            selected = raw_playlist.get("selectedTrack")
            playlist_info = PlaylistInfo(
                name=raw_playlist.get("name") or raw_playlist.get("Name") or "",
                selected_track=(
                    tracks[selected]
                    if isinstance(selected, int) and 0 <= selected < len(tracks)
                    else None
                ),
            )

        exception = None
        raw_exception = data.get("exception")
        if isinstance(raw_exception, dict):
            exception = LoadException(
                message=raw_exception.get("message") or "",
                severity=raw_exception.get("severity") or "COMMON",
            )

        return SearchResult(
            load_type=load_type,
            tracks=tracks,
            playlist_info=playlist_info,
            exception=exception,
        )

    async def _search_spotify(self, reference: SpotifyReference, requester: str) -> SearchResult:
        assert self._spotify is not None

        if reference.kind == "track":
            partial = await self._spotify.get_track(reference.id, requester)
            if partial is None:
                return self._no_spotify_tracks()
            return SearchResult(load_type=LoadType.TRACK_LOADED, tracks=[partial])

        name, partials = await self._spotify.get_collection(reference.kind, reference.id, requester)
        if not partials:
            return self._no_spotify_tracks()
        return SearchResult(
            load_type=LoadType.PLAYLIST_LOADED,
            tracks=partials,
            playlist_info=PlaylistInfo(name=name),
        )

    @staticmethod
    def _no_spotify_tracks() -> SearchResult:
        return SearchResult(
            load_type=LoadType.LOAD_FAILED,
            exception=LoadException(message=ErrorMessages.NO_SPOTIFY_TRACKS, severity="COMMON"),
        )

    async def decode_tracks(self, handles: list[str]) -> list[Track]:
        """Decode raw track handles; the requester is unknown, so it is a placeholder."""
        if not handles:
            return []

        node = self.least_loaded_node(ErrorMessages.NO_NODES_FOR_DECODE)
        response = await node.request("POST", "/decodetracks", body=list(handles))
        if not isinstance(response.json_body, list):
            raise NodeRequestError(ErrorMessages.NO_DECODE_RESPONSE, node.identifier)
        return [Track.from_payload(item) for item in response.json_body]

    async def resolve_track(self, partial: TrackPartial) -> Track:
        """Find the best primary-search match for an unresolved entry.

        Raises:
            NoResultsError: The search was not a plain search result or was empty.
        """
        query = partial.search_query
        result = await self.search(query, partial.requester)
        candidates = result.resolved_tracks
        if result.load_type != LoadType.SEARCH_RESULT or not candidates:
            raise NoResultsError(query, ErrorMessages.NO_RESULTS_FOUND)

        best = TrackMatchingService.pick_best(candidates, partial)
        assert best is not None
        logger.debug(LogTemplates.SEARCH_RESOLVED, query, best.title, best.author)
        return best

    # ── Spotify credentials ─────────────────────────────────────────

    def start_credential_loop(self, delay: float = 0.0) -> None:
        """Start renewing the Spotify token in the background, if configured.

        The first renewal runs after ``delay`` seconds.
        """
        if self._spotify is None or self._credential_loop_running():
            return
        self._credential_task = asyncio.create_task(
            self._credential_loop(delay), name="spotify-credentials"
        )

    def _credential_loop_running(self) -> bool:
        return self._credential_task is not None and not self._credential_task.done()

    async def _renew_spotify_token(self) -> float:
        """Request a fresh token and return the seconds until the next renewal."""
        assert self._spotify is not None
        settings = self._spotify_settings
        try:
            expires_in = await self._spotify.authenticate()
        except CatalogRequestError as e:
            logger.warning(LogTemplates.SPOTIFY_TOKEN_FAILED, e)
            await self.events.publish(SpotifyAuthFailed(error=e))
            return settings.retry_delay

        delay = max(expires_in - settings.refresh_margin, settings.retry_delay)
        logger.info(LogTemplates.SPOTIFY_TOKEN_RENEWED, delay)
        return delay

    async def _credential_loop(self, delay: float) -> None:
        logger.info(LogTemplates.SPOTIFY_LOOP_STARTED)
        while True:
            await asyncio.sleep(delay)
            delay = await self._renew_spotify_token()

    # ── Voice intake ────────────────────────────────────────────────

    async def handle_voice_server_update(self, update: VoiceServerUpdate) -> None:
        session = self._sessions.get(update.guild_id)
        if session is None:
            logger.debug(LogTemplates.VOICE_UPDATE_NO_PLAYER, update.guild_id)
            return

        try:
            await session.forward_voice_server_update(update)
        except DomainError as e:
            logger.warning(LogTemplates.VOICE_SERVER_FORWARD_FAILED, update.guild_id, e)

    async def handle_voice_state_update(self, update: VoiceStateUpdate) -> None:
        if update.user_id != self._gateway.user_id:
            return

        session = self._sessions.get(update.guild_id)
        if session is None:
            logger.debug(LogTemplates.VOICE_UPDATE_NO_PLAYER, update.guild_id)
            return

        await session.handle_voice_state_update(update)

    # ── Shutdown ────────────────────────────────────────────────────

    async def close(self) -> None:
        """Stop the credential loop and destroy every node and player."""
        task, self._credential_task = self._credential_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info(LogTemplates.SPOTIFY_LOOP_STOPPED)

        for node in list(self._nodes.values()):
            await node.destroy(MANAGER_CLOSED_REASON)

        for session in list(self._sessions.values()):
            await session.destroy(MANAGER_CLOSED_REASON)

        if self._spotify is not None and self._owns_spotify:
            await self._spotify.close()

        logger.info(LogTemplates.MANAGER_CLOSED)
