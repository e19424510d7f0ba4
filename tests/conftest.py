import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from discord_node_player.application.interfaces.voice_gateway import VoiceGateway
from discord_node_player.config.settings import NodeSettings
from discord_node_player.domain.music.entities import Track, TrackPartial
from discord_node_player.domain.music.value_objects import StagePermissions
from discord_node_player.domain.shared.events import DomainEvent, EventBus

GUILD_ID = 111111111111111111
TEXT_CHANNEL_ID = 222222222222222222
VOICE_CHANNEL_ID = 333333333333333333
OTHER_CHANNEL_ID = 444444444444444444
BOT_USER_ID = 555555555555555555


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and listener tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` passes."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)


# ============================================================================
# Events
# ============================================================================


class EventRecorder:
    """Collects every event published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[DomainEvent] = []
        bus.subscribe(DomainEvent, self._record)

    async def _record(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


# ============================================================================
# Node Fixtures
# ============================================================================


class FakeWebSocket:
    """Stand-in for ``aiohttp.ClientWebSocketResponse`` driven by a queue."""

    def __init__(self) -> None:
        self._inbox: asyncio.Queue[aiohttp.WSMessage] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_calls: list[tuple[int, bytes]] = []
        self.send_error: BaseException | None = None

    async def receive(self) -> aiohttp.WSMessage:
        return await self._inbox.get()

    def feed(self, payload: Any) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, data, None))

    def feed_close(self, code: int, reason: str = "") -> None:
        self.close_code = code
        self.closed = True
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.CLOSE, code, reason))

    async def send_str(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(data))

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        self.close_calls.append((code, message))
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.CLOSED, None, None))
        return True

    def exception(self) -> BaseException | None:
        return None


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def ws_session(fake_ws):
    """aiohttp session whose ws_connect returns ``fake_ws``."""
    session = MagicMock()
    session.ws_connect = AsyncMock(return_value=fake_ws)
    session.close = AsyncMock()
    return session


@pytest.fixture
def node_settings():
    return NodeSettings(
        host="node.local",
        port=2333,
        password="secret",
        connection_timeout=0.05,
        request_timeout=1.0,
        max_retries=3,
        retry_delay=0.1,
    )


@pytest.fixture
def fake_node():
    """A connected node whose I/O is mocked out."""
    node = MagicMock()
    node.identifier = 0
    node.send = AsyncMock()
    node.request = AsyncMock()
    node.subscribe = MagicMock()
    node.unsubscribe = MagicMock()
    return node


# ============================================================================
# Voice Gateway Fixtures
# ============================================================================


@pytest.fixture
def fake_gateway():
    """VoiceGateway double: a plain voice channel, joins succeed."""
    gateway = MagicMock(spec=VoiceGateway)
    gateway.user_id = BOT_USER_ID
    gateway.join = AsyncMock()
    gateway.leave = AsyncMock()
    gateway.become_speaker = AsyncMock()
    gateway.request_to_speak = AsyncMock()
    gateway.is_stage_channel = MagicMock(return_value=False)
    gateway.get_stage_permissions = MagicMock(
        return_value=StagePermissions(become_speaker=True, request_to_speak=True)
    )
    return gateway


@pytest.fixture
def fake_resolver():
    resolver = MagicMock()
    resolver.resolve_track = AsyncMock()
    resolver.decode_tracks = AsyncMock(return_value=[])
    return resolver


# ============================================================================
# Domain Entity Fixtures
# ============================================================================


def make_track(
    name: str = "a",
    *,
    author: str = "Artist",
    length_ms: int = 180_000,
    requester: str = "user#1",
) -> Track:
    return Track(
        encoded=f"encoded-{name}",
        identifier=f"id-{name}",
        author=author,
        title=f"Track {name}",
        uri=f"https://youtube.com/watch?v={name}",
        source_name="youtube",
        length_ms=length_ms,
        requester=requester,
    )


def track_payload(name: str = "a", *, author: str = "Artist", length_ms: int = 180_000) -> dict:
    return {
        "track": f"encoded-{name}",
        "info": {
            "identifier": f"id-{name}",
            "isSeekable": True,
            "author": author,
            "length": length_ms,
            "isStream": False,
            "position": 0,
            "title": f"Track {name}",
            "uri": f"https://youtube.com/watch?v={name}",
            "sourceName": "youtube",
        },
    }


@pytest.fixture
def sample_track():
    """Create a sample track for testing."""
    return make_track("a")


@pytest.fixture
def sample_partial():
    return TrackPartial(title="Song", author="Artist", length_ms=200_000, requester="user#2")
