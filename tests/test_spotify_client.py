"""
Unit Tests for SpotifyClient

Tests for:
- Spotify URL/URI matching
- Client-credentials authentication
- Track lookup
- Album/playlist pagination
"""

import base64

import httpx
import pytest

from discord_node_player.config.settings import SpotifySettings
from discord_node_player.domain.shared.exceptions import CatalogAuthError, CatalogRequestError
from discord_node_player.infrastructure.spotify.client import (
    SPOTIFY_BASE_URL,
    SpotifyClient,
    SpotifyReference,
)


@pytest.fixture
def spotify_settings():
    return SpotifySettings(client_id="client", client_secret="shh")


def make_client(spotify_settings, handler) -> SpotifyClient:
    return SpotifyClient(
        spotify_settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


def token_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"access_token": "tok", "expires_in": 1800})


def spotify_track(name: str, *artists: str, duration_ms: int = 200_000) -> dict:
    return {
        "name": name,
        "artists": [{"name": a} for a in artists],
        "duration_ms": duration_ms,
    }


class TestMatch:
    """Tests for SpotifyClient.match()."""

    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("https://open.spotify.com/track/4uLU6hMC", SpotifyReference("track", "4uLU6hMC")),
            ("https://open.spotify.com/album/1DFixLWu", SpotifyReference("album", "1DFixLWu")),
            (
                "https://open.spotify.com/intl-de/playlist/37i9dQZF?si=x",
                SpotifyReference("playlist", "37i9dQZF"),
            ),
            ("spotify:track:4uLU6hMC", SpotifyReference("track", "4uLU6hMC")),
        ],
    )
    def test_matches_links(self, query, expected):
        assert SpotifyClient.match(query) == expected

    @pytest.mark.parametrize(
        "query", ["never gonna give you up", "https://www.youtube.com/watch?v=abc"]
    )
    def test_non_spotify_queries(self, query):
        assert SpotifyClient.match(query) is None


class TestAuthenticate:
    """Tests for the client-credentials grant."""

    @pytest.mark.asyncio
    async def test_stores_bearer_token(self, spotify_settings):
        seen = []

        def handler(request):
            seen.append(request)
            return token_handler(request)

        client = make_client(spotify_settings, handler)

        expires_in = await client.authenticate()

        assert expires_in == 1800
        assert client.has_token
        request = seen[0]
        assert request.method == "POST"
        assert request.url.host == "accounts.spotify.com"
        assert request.content == b"grant_type=client_credentials"
        expected = base64.b64encode(b"client:shh").decode()
        assert request.headers["authorization"] == f"Basic {expected}"
        await client.close()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, spotify_settings):
        client = make_client(
            spotify_settings, lambda request: httpx.Response(400, json={"error": "invalid"})
        )

        with pytest.raises(CatalogAuthError) as exc_info:
            await client.authenticate()

        assert exc_info.value.status_code == 400
        assert not client.has_token

    @pytest.mark.asyncio
    async def test_missing_token_in_response(self, spotify_settings):
        client = make_client(spotify_settings, lambda request: httpx.Response(200, json={}))

        with pytest.raises(CatalogAuthError):
            await client.authenticate()

    @pytest.mark.asyncio
    async def test_transport_failure(self, spotify_settings):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = make_client(spotify_settings, handler)

        with pytest.raises(CatalogRequestError) as exc_info:
            await client.authenticate()

        assert not isinstance(exc_info.value, CatalogAuthError)


class TestLookups:
    """Tests for get_track() and get_collection()."""

    @pytest.mark.asyncio
    async def test_lookup_requires_token(self, spotify_settings):
        client = make_client(spotify_settings, token_handler)

        with pytest.raises(CatalogAuthError, match="must be defined"):
            await client.get_track("abc", "user#1")

    @pytest.mark.asyncio
    async def test_get_track(self, spotify_settings):
        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            assert request.url.path == "/v1/tracks/abc"
            assert request.headers["authorization"] == "Bearer tok"
            return httpx.Response(200, json=spotify_track("Song", "A", "B"))

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        partial = await client.get_track("abc", "user#1")

        assert partial.title == "Song"
        assert partial.author == "A, B"
        assert partial.length_ms == 200_000
        assert partial.requester == "user#1"

    @pytest.mark.asyncio
    async def test_get_track_without_name(self, spotify_settings):
        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            return httpx.Response(200, json={})

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        assert await client.get_track("abc", "user#1") is None

    @pytest.mark.asyncio
    async def test_non_json_body_raises_request_error(self, spotify_settings):
        """A 200 response that is not JSON surfaces as CatalogRequestError."""

        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            return httpx.Response(200, text="<html>gateway</html>")

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        with pytest.raises(CatalogRequestError) as exc_info:
            await client.get_track("abc", "user#1")

        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_http_error(self, spotify_settings):
        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            return httpx.Response(404)

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        with pytest.raises(CatalogRequestError) as exc_info:
            await client.get_track("missing", "user#1")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_playlist_follows_next_pages(self, spotify_settings):
        """Should collect every page and unwrap playlist item wrappers."""
        page_two = f"{SPOTIFY_BASE_URL}/playlists/p1/tracks?offset=100"

        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            if request.url.path == "/v1/playlists/p1":
                return httpx.Response(
                    200,
                    json={
                        "name": "Road Trip",
                        "tracks": {
                            "items": [
                                {"track": spotify_track("One", "A")},
                                {"track": None},
                            ],
                            "next": page_two,
                        },
                    },
                )
            assert request.url.params["offset"] == "100"
            return httpx.Response(
                200,
                json={"items": [{"track": spotify_track("Two", "B")}], "next": None},
            )

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        name, partials = await client.get_collection("playlist", "p1", "user#1")

        assert name == "Road Trip"
        assert [p.title for p in partials] == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_album_items_are_tracks(self, spotify_settings):
        def handler(request):
            if request.url.host == "accounts.spotify.com":
                return token_handler(request)
            return httpx.Response(
                200,
                json={
                    "name": "Album",
                    "tracks": {"items": [spotify_track("Intro", "C", duration_ms=0)]},
                },
            )

        client = make_client(spotify_settings, handler)
        await client.authenticate()

        name, partials = await client.get_collection("album", "a1", "user#1")

        assert name == "Album"
        assert partials[0].author == "C"
        assert partials[0].length_ms is None

    @pytest.mark.asyncio
    async def test_close_forgets_token(self, spotify_settings):
        client = make_client(spotify_settings, token_handler)
        await client.authenticate()

        await client.close()

        assert not client.has_token
