"""Connection to a single audio node: WebSocket control channel plus REST."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp
import httpx
from pydantic import ValidationError as PydanticValidationError

from discord_node_player.domain.music.events import (
    NodeConnected,
    NodeDestroyed,
    NodeDisconnected,
    NodeErrored,
    NodeRaw,
    NodeReconnecting,
)
from discord_node_player.domain.music.value_objects import NodeState
from discord_node_player.domain.shared.events import DomainEvent, EventBus
from discord_node_player.domain.shared.exceptions import (
    InvalidOperationError,
    NodeConnectionError,
    NodeNotConnectedError,
    NodeRequestError,
    NodeRequestTimeoutError,
    ProtocolError,
)
from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates
from discord_node_player.domain.shared.types import DiscordSnowflake
from discord_node_player.infrastructure.lavalink.models import (
    CLOSE_CODE_NORMAL,
    CLOSE_REASON_DESTROY,
    NodeResponse,
    NodeStats,
)

if TYPE_CHECKING:
    from discord_node_player.config.settings import NodeSettings

logger = logging.getLogger(__name__)

ATTACHED_NODE_DESTROYED = "Attached node destroyed"
DEFAULT_DESTROY_REASON = "Manual destroy"
NO_CLOSE_REASON = "No reason specified"


class NodeSubscriber(Protocol):
    """What a node needs from a player bound to it."""

    async def handle_node_frame(self, frame: dict[str, Any]) -> None: ...

    async def destroy(self, reason: str = ...) -> None: ...


class Node:
    """One audio node.

    Owns a WebSocket for control frames and an HTTP client for REST lookups.
    Players bound to the node subscribe by guild id and receive only the
    ``playerUpdate`` and ``event`` frames addressed to their guild.
    """

    def __init__(
        self,
        identifier: int,
        settings: NodeSettings,
        *,
        user_id: DiscordSnowflake | Callable[[], DiscordSnowflake],
        events: EventBus,
        on_destroyed: Callable[[Node], None] | None = None,
        session: aiohttp.ClientSession | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.identifier = identifier
        self.settings = settings
        self._user_id = user_id
        self._events = events
        self._on_destroyed = on_destroyed

        self._session = session
        self._owns_session = session is None
        self._http = http_client
        self._owns_http = http_client is None

        self._state = NodeState.DISCONNECTED
        self._destroying = False
        self._stats = NodeStats()
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._listener_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempts = 0
        self._subscribers: dict[int, NodeSubscriber] = {}

        logger.debug(LogTemplates.NODE_CREATED, identifier, self.ws_url)

    # ── Properties ──────────────────────────────────────────────────

    @property
    def user_id(self) -> DiscordSnowflake:
        """Host user id sent in the handshake; resolved lazily."""
        return self._user_id() if callable(self._user_id) else self._user_id

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def stats(self) -> NodeStats:
        return self._stats

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def load(self) -> float:
        """System CPU load per core, used for least-load selection."""
        return self._stats.system_load

    @property
    def lavalink_load(self) -> float:
        return self._stats.lavalink_load

    @property
    def ws_url(self) -> str:
        scheme = "wss" if self.settings.secure else "ws"
        return f"{scheme}://{self.settings.host}:{self.settings.port}/"

    @property
    def rest_url(self) -> str:
        scheme = "https" if self.settings.secure else "http"
        return f"{scheme}://{self.settings.host}:{self.settings.port}"

    @property
    def subscribed_guild_ids(self) -> list[int]:
        return list(self._subscribers)

    # ── Subscriptions ───────────────────────────────────────────────

    def subscribe(self, guild_id: DiscordSnowflake, subscriber: NodeSubscriber) -> None:
        self._subscribers[guild_id] = subscriber

    def unsubscribe(self, guild_id: DiscordSnowflake) -> None:
        self._subscribers.pop(guild_id, None)

    # ── Connection lifecycle ────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self.settings.password.get_secret_value(),
            "User-Id": str(self.user_id),
            "Client-Name": self.settings.client_name,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._http

    async def connect(self) -> None:
        """Open the WebSocket connection.

        Only valid from DISCONNECTED or RECONNECTING. A failed attempt made
        while reconnecting leaves the node in RECONNECTING so the retry loop
        keeps its place.

        Raises:
            InvalidOperationError: The node is not in a connectable state.
            NodeConnectionError: The handshake failed or timed out.
        """
        if not self._state.can_connect:
            raise InvalidOperationError(
                "connect", self._state.value, ErrorMessages.NODE_CANNOT_CONNECT
            )

        reconnecting = self._state is NodeState.RECONNECTING
        if not reconnecting:
            self._state = NodeState.CONNECTING

        logger.info(LogTemplates.NODE_CONNECTING, self.identifier, self.ws_url)

        try:
            async with asyncio.timeout(self.settings.connection_timeout):
                ws = await self._get_session().ws_connect(self.ws_url, headers=self._headers())
        except TimeoutError as e:
            await self._connect_failed(
                NodeConnectionError(ErrorMessages.NODE_CONNECT_TIMEOUT, self.identifier),
                reconnecting,
                e,
            )
        except (aiohttp.ClientError, OSError) as e:
            await self._connect_failed(
                NodeConnectionError(
                    ErrorMessages.NODE_HANDSHAKE_FAILED.format(error=e), self.identifier
                ),
                reconnecting,
                e,
            )

        if self._state is NodeState.DESTROYED:
            await ws.close(code=CLOSE_CODE_NORMAL, message=CLOSE_REASON_DESTROY.encode())
            raise NodeConnectionError(
                ErrorMessages.NODE_HANDSHAKE_FAILED.format(error="node destroyed"), self.identifier
            )

        self._ws = ws
        self._state = NodeState.CONNECTED
        self._listener_task = asyncio.create_task(
            self._listen(ws), name=f"node-{self.identifier}-listener"
        )

        logger.info(LogTemplates.NODE_CONNECTED, self.identifier)
        await self._publish(NodeConnected(node_id=self.identifier))

    async def _connect_failed(
        self, error: NodeConnectionError, reconnecting: bool, cause: BaseException
    ) -> None:
        if not reconnecting and self._state is not NodeState.DESTROYED:
            self._state = NodeState.DISCONNECTED
        logger.warning(LogTemplates.NODE_CONNECT_FAILED, self.identifier, error.message)
        await self._publish(NodeErrored(node_id=self.identifier, error=error))
        raise error from cause

    async def destroy(self, reason: str = DEFAULT_DESTROY_REASON) -> None:
        """Close the connection and tear down every bound player.

        Safe to call more than once; only the first call has any effect.
        """
        if self._destroying or self._state is NodeState.DESTROYED:
            return
        self._destroying = True

        ws, self._ws = self._ws, None
        self._cancel_task(self._listener_task)
        self._listener_task = None
        self._cancel_task(self._reconnect_task)
        self._reconnect_task = None
        self._reconnect_attempts = 0

        if ws is not None and not ws.closed:
            await ws.close(code=CLOSE_CODE_NORMAL, message=CLOSE_REASON_DESTROY.encode())

        for subscriber in list(self._subscribers.values()):
            await subscriber.destroy(ATTACHED_NODE_DESTROYED)
        self._subscribers.clear()

        self._state = NodeState.DESTROYED
        logger.info(LogTemplates.NODE_DESTROYED, self.identifier, reason)
        await self._publish(NodeDestroyed(node_id=self.identifier, reason=reason))

        if self._owns_session and self._session is not None:
            await self._session.close()
        if self._owns_http and self._http is not None:
            await self._http.aclose()

        if self._on_destroyed is not None:
            self._on_destroyed(self)

    @staticmethod
    def _cancel_task(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()

    # ── Reconnection ────────────────────────────────────────────────

    def _start_reconnect(self) -> None:
        self._state = NodeState.RECONNECTING
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(
                self._reconnect_loop(), name=f"node-{self.identifier}-reconnect"
            )

    async def _reconnect_loop(self) -> None:
        """Retry on a fixed interval until connected, exhausted or destroyed.

        Ticks are scheduled from the loop clock, so a slow attempt does not
        push back the next one.
        """
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        max_retries = self.settings.max_retries

        while self._state is NodeState.RECONNECTING:
            next_tick += self.settings.retry_delay
            await asyncio.sleep(max(next_tick - loop.time(), 0))
            if self._state is not NodeState.RECONNECTING:
                return

            if max_retries != 0 and self._reconnect_attempts >= max_retries:
                attempts = self._reconnect_attempts
                logger.error(LogTemplates.NODE_RECONNECT_EXHAUSTED, self.identifier, attempts)
                error = NodeConnectionError(
                    ErrorMessages.NODE_RECONNECT_EXHAUSTED.format(attempts=attempts),
                    self.identifier,
                )
                await self._publish(NodeErrored(node_id=self.identifier, error=error))
                await self.destroy(error.message)
                return

            logger.info(LogTemplates.NODE_RECONNECTING, self.identifier, self._reconnect_attempts + 1)
            await self._publish(
                NodeReconnecting(node_id=self.identifier, attempt=self._reconnect_attempts + 1)
            )
            try:
                await self.connect()
            except NodeConnectionError:
                self._reconnect_attempts += 1
            else:
                self._reconnect_attempts = 0
                self._reconnect_task = None
                return

    # ── Inbound frames ──────────────────────────────────────────────

    async def _listen(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        close_reason = ""
        while True:
            msg = await ws.receive()
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                await self._handle_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.CLOSE:
                close_reason = msg.extra or ""
                break
            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = NodeConnectionError(str(ws.exception() or msg.data), self.identifier)
                await self._publish(NodeErrored(node_id=self.identifier, error=error))
                break
            elif msg.type in (aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                break

        await self._on_close(ws, ws.close_code, close_reason)

    async def _on_close(
        self, ws: aiohttp.ClientWebSocketResponse, code: int | None, reason: str
    ) -> None:
        if ws is not self._ws or self._state is NodeState.DESTROYED:
            return

        self._ws = None
        self._listener_task = None
        self._state = NodeState.DISCONNECTED
        reason = reason or NO_CLOSE_REASON

        logger.warning(LogTemplates.NODE_DISCONNECTED, self.identifier, code, reason)
        await self._publish(NodeDisconnected(node_id=self.identifier, code=code, reason=reason))

        if code != CLOSE_CODE_NORMAL and reason != CLOSE_REASON_DESTROY:
            self._start_reconnect()

    async def _handle_message(self, raw: str | bytes) -> None:
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("frame is not a JSON object")
        except ValueError as e:
            logger.warning(LogTemplates.NODE_MALFORMED_FRAME, self.identifier, raw)
            await self._protocol_error(ErrorMessages.NODE_MALFORMED_FRAME.format(error=e))
            return

        logger.debug(LogTemplates.NODE_RECEIVED, self.identifier, payload)
        await self._publish(NodeRaw(node_id=self.identifier, payload=payload))

        op = payload.get("op")
        if op == "stats":
            try:
                self._stats = NodeStats.model_validate(payload)
            except PydanticValidationError as e:
                await self._protocol_error(ErrorMessages.NODE_MALFORMED_FRAME.format(error=e))
                return
            logger.debug(
                LogTemplates.NODE_STATS_UPDATED,
                self.identifier,
                self._stats.players,
                self._stats.playing_players,
                self.load,
            )
        elif op in ("playerUpdate", "event"):
            await self._dispatch(payload)
        else:
            logger.warning(LogTemplates.NODE_UNEXPECTED_OP, self.identifier, op)
            await self._protocol_error(ErrorMessages.NODE_UNEXPECTED_OP.format(op=op))

    async def _dispatch(self, payload: dict[str, Any]) -> None:
        try:
            guild_id = int(payload.get("guildId"))
        except (TypeError, ValueError):
            await self._protocol_error(
                ErrorMessages.NODE_MALFORMED_FRAME.format(error="missing guildId")
            )
            return

        subscriber = self._subscribers.get(guild_id)
        if subscriber is None:
            logger.debug(LogTemplates.NODE_NO_SUBSCRIBER, self.identifier, guild_id)
            return

        try:
            await subscriber.handle_node_frame(payload)
        except Exception:
            logger.exception(LogTemplates.NODE_HANDLER_ERROR, self.identifier, guild_id)

    async def _protocol_error(self, message: str) -> None:
        error = ProtocolError(message, self.identifier)
        await self._publish(NodeErrored(node_id=self.identifier, error=error))

    async def _publish(self, event: DomainEvent) -> None:
        await self._events.publish(event)

    # ── Outbound ────────────────────────────────────────────────────

    async def send(self, frame: dict[str, Any]) -> None:
        """Serialize and write a control frame.

        Raises:
            NodeNotConnectedError: The node is not connected.
            NodeConnectionError: The write failed; node state is unchanged.
        """
        ws = self._ws
        if self._state is not NodeState.CONNECTED or ws is None or ws.closed:
            raise NodeNotConnectedError(self.identifier)

        logger.debug(LogTemplates.NODE_SEND, self.identifier, frame)
        try:
            await ws.send_str(json.dumps(frame))
        except (ConnectionError, aiohttp.ClientError, RuntimeError) as e:
            error = NodeConnectionError(ErrorMessages.NODE_SEND_FAILED.format(error=e), self.identifier)
            await self._publish(NodeErrored(node_id=self.identifier, error=error))
            raise error from e

    async def request(
        self,
        method: str,
        route: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> NodeResponse:
        """Make a REST call to the node.

        Raises:
            NodeRequestTimeoutError: No response within ``request_timeout``.
            NodeRequestError: Transport failure or undecodable body.
        """
        request_headers = {"Authorization": self.settings.password.get_secret_value()}
        if body is not None:
            request_headers["Content-Type"] = "application/json"
        if headers:
            request_headers.update(headers)

        url = f"{self.rest_url}/{route.lstrip('/')}"
        logger.debug(LogTemplates.NODE_REQUEST, self.identifier, method, url)

        try:
            response = await self._get_http().request(
                method,
                url,
                params=query,
                content=json.dumps(body) if body is not None else None,
                headers=request_headers,
                timeout=self.settings.request_timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(LogTemplates.NODE_REQUEST_TIMEOUT, self.identifier, method, route)
            raise NodeRequestTimeoutError(self.identifier) from e
        except httpx.HTTPError as e:
            logger.warning(LogTemplates.NODE_REQUEST_FAILED, self.identifier, method, route, e)
            raise NodeRequestError(
                ErrorMessages.NODE_REQUEST_FAILED.format(route=route, error=e), self.identifier
            ) from e

        if response.status_code == 204 or not response.content:
            return NodeResponse(status=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise NodeRequestError(
                ErrorMessages.NODE_REQUEST_FAILED.format(route=route, error=e), self.identifier
            ) from e
        return NodeResponse(status=response.status_code, json_body=data)

    def __repr__(self) -> str:
        return f"Node(identifier={self.identifier}, state={self._state.name}, url={self.ws_url!r})"
