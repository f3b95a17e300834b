#!/usr/bin/env python3
"""
Unit tests for the Spotify and Gemini API clients.
Requests are intercepted at ``_make_request``.
"""

import pytest
from unittest.mock import AsyncMock, patch

from tunesmith.api.base_client import (
    APIError,
    AuthenticationError,
    LLMResponseError,
    MissingTokenError,
    RateLimitError,
    format_catalog_error
)
from tunesmith.api.gemini_client import GeminiClient
from tunesmith.api.spotify_client import SpotifyClient

class TestErrors:
    """Error taxonomy."""

    def test_rate_limit_error(self):
        error = RateLimitError(headers={"Retry-After": "2"})
        assert error.status_code == 429
        assert error.headers == {"retry-after": "2"}

    def test_missing_token_is_an_authentication_error(self):
        assert isinstance(MissingTokenError(), AuthenticationError)
        assert AuthenticationError().status_code == 401

    def test_format_catalog_error(self):
        error = APIError("GET search failed", status_code=404,
                         body={"error": {"message": "Not found", "reason": "NO_SUCH"}})
        text = format_catalog_error(error)

        assert "Status: 404" in text
        assert "Details: Not found" in text
        assert "Reason: NO_SUCH" in text

class TestSpotifyClient:
    """Unit tests for SpotifyClient."""

    def test_requires_token(self):
        with pytest.raises(MissingTokenError):
            SpotifyClient()._get_auth_headers()

    def test_bearer_header(self):
        assert SpotifyClient("token-123")._get_auth_headers() == {"Authorization": "Bearer token-123"}

    @pytest.mark.asyncio
    async def test_search_tracks_params(self):
        client = SpotifyClient("token")
        with patch.object(client, "_make_request", new=AsyncMock(return_value={"tracks": {"items": []}})) as request:
            await client.search_tracks("track:Creep artist:Radiohead", limit=80, market="US")

        request.assert_awaited_once_with("GET", "search", params={
            "q": "track:Creep artist:Radiohead",
            "type": "track",
            "limit": 50,
            "market": "US"
        })

    @pytest.mark.asyncio
    async def test_get_artists_limits(self):
        client = SpotifyClient("token")
        with pytest.raises(ValueError):
            await client.get_artists([f"id{i}" for i in range(51)])

        with patch.object(client, "_make_request", new=AsyncMock()) as request:
            assert await client.get_artists([]) == {"artists": []}
            request.assert_not_awaited()

            await client.get_artists(["a", "b"])
            request.assert_awaited_once_with("GET", "artists", params={"ids": "a,b"})

    @pytest.mark.asyncio
    async def test_create_playlist_looks_up_user_once(self):
        client = SpotifyClient("token")
        responses = [{"id": "user-1"}, {"id": "pl-1"}, {"id": "pl-2"}]
        with patch.object(client, "_make_request", new=AsyncMock(side_effect=responses)) as request:
            first = await client.create_playlist("Mix", description="d")
            second = await client.create_playlist("Mix 2")

        assert first["id"] == "pl-1"
        assert second["id"] == "pl-2"
        assert request.await_args_list[0].args == ("GET", "me")
        assert request.await_args_list[1].args == ("POST", "users/user-1/playlists")
        assert request.await_args_list[1].kwargs["data"] == {"name": "Mix", "description": "d", "public": False}

    @pytest.mark.asyncio
    async def test_add_tracks_limit(self):
        client = SpotifyClient("token")
        with pytest.raises(ValueError):
            await client.add_tracks_to_playlist("pl", [f"spotify:track:{i}" for i in range(101)])

class TestGeminiClient:
    """Unit tests for GeminiClient."""

    def test_requires_api_key(self):
        with pytest.raises(APIError):
            GeminiClient(api_key=None)._get_auth_headers()

    @pytest.mark.asyncio
    async def test_generate_json(self):
        client = GeminiClient(api_key="key", default_model="gemini-1.5-flash")
        body = {"candidates": [{"content": {"parts": [{"text": "```json\n"}, {"text": '{"reply": "hi"}\n```'}]}}]}

        with patch.object(client, "_make_request", new=AsyncMock(return_value=body)) as request:
            result = await client.generate_json("prompt")

        assert result == {"reply": "hi"}
        assert request.await_args.args[:2] == ("POST", "models/gemini-1.5-flash:generateContent")
        payload = request.await_args.kwargs["data"]
        assert payload["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_model_override(self):
        client = GeminiClient(api_key="key")
        body = {"candidates": [{"content": {"parts": [{"text": "[]"}]}}]}

        with patch.object(client, "_make_request", new=AsyncMock(return_value=body)) as request:
            await client.generate_json("prompt", "models/gemini-pro")

        assert request.await_args.args[1] == "models/gemini-pro:generateContent"

    @pytest.mark.asyncio
    async def test_empty_candidates(self):
        client = GeminiClient(api_key="key")
        with patch.object(client, "_make_request", new=AsyncMock(return_value={"candidates": []})):
            with pytest.raises(LLMResponseError):
                await client.generate_text("prompt")

    @pytest.mark.asyncio
    async def test_list_models(self):
        client = GeminiClient(api_key="key", default_model="gemini-1.5-flash")
        body = {"models": [
            {"name": "models/zeta", "displayName": "Zeta", "supportedGenerationMethods": ["generateContent"]},
            {"name": "models/embed", "displayName": "Embed", "supportedGenerationMethods": ["embedContent"]},
            {"name": "models/alpha", "displayName": "Alpha", "supportedGenerationMethods": ["generateContent"]},
        ]}

        with patch.object(client, "_make_request", new=AsyncMock(return_value=body)):
            result = await client.list_models()

        assert [model["name"] for model in result["models"]] == ["models/alpha", "models/zeta"]
        assert result["default_model"] == "gemini-1.5-flash"
