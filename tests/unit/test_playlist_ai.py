#!/usr/bin/env python3
"""
Unit tests for playlist and chat generation.
"""

import pytest

from tunesmith.api.base_client import LLMResponseError
from tunesmith.models.song import Song
from tunesmith.models.chat import ChatMessage, ChatPlaylistContext
from tunesmith.services.playlist_ai import PlaylistAI
from tunesmith.utils.validators import ValidationError

class TestPlaylistAI:
    """Unit tests for PlaylistAI."""

    @pytest.mark.asyncio
    async def test_generate_playlists(self, mock_llm, liked_songs):
        mock_llm.generate_json.return_value = [
            {"name": "Moody", "description": "rainy", "songs": [
                {"title": "Creep", "artist": "Radiohead"},
                {"title": "No artist"},
            ]},
            {"name": "Bright", "songs": [{"name": "Dynamite", "artistName": "BTS"}]},
        ]

        playlists = await PlaylistAI(mock_llm).generate_playlists(liked_songs, "gemini-pro")

        assert [playlist.name for playlist in playlists] == ["Moody", "Bright"]
        assert playlists[0].songs == [Song("Creep", "Radiohead")]
        assert playlists[1].songs == [Song("Dynamite", "BTS")]
        prompt, model = mock_llm.generate_json.await_args.args
        assert "Paranoid Android" in prompt
        assert model == "gemini-pro"

    @pytest.mark.asyncio
    async def test_generate_playlists_rejects_wrong_shape(self, mock_llm, liked_songs):
        mock_llm.generate_json.return_value = {"reply": "I cannot do that"}

        with pytest.raises(LLMResponseError):
            await PlaylistAI(mock_llm).generate_playlists(liked_songs)

    @pytest.mark.asyncio
    async def test_custom_playlist(self, mock_llm):
        mock_llm.generate_json.return_value = {
            "name": "  Night Drive  ",
            "description": "Neon and rain",
            "songs": [{"title": "Nightcall", "artist": "Kavinsky", "country": "France"}]
        }

        playlist = await PlaylistAI(mock_llm).generate_custom_playlist("  synthwave for night driving ")

        assert playlist.name == "Night Drive"
        assert playlist.songs == [Song("Nightcall", "Kavinsky", country="France")]
        assert '"synthwave for night driving"' in mock_llm.generate_json.await_args.args[0]

    @pytest.mark.asyncio
    async def test_custom_playlist_requires_prompt(self, mock_llm):
        with pytest.raises(ValidationError):
            await PlaylistAI(mock_llm).generate_custom_playlist("   ")
        mock_llm.generate_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chat_reply_sanitizes_arrays(self, mock_llm):
        mock_llm.generate_json.return_value = {
            "reply": "Try these!",
            "themeTags": ["Cozy", "cozy", "Rainy"] + [f"tag {i}" for i in range(10)],
            "songExamples": "Creep - Radiohead",
        }
        context = ChatPlaylistContext(id="p1", name="Rainy Day", songs=[Song("Creep", "Radiohead")])

        result = await PlaylistAI(mock_llm).generate_chat_reply(
            [ChatMessage("user", "songs for a rainy day")], context
        )

        assert result.reply == "Try these!"
        assert result.theme_tags[:2] == ["Cozy", "Rainy"]
        assert len(result.theme_tags) == 8
        assert result.song_examples == []
        prompt = mock_llm.generate_json.await_args.args[0]
        assert "Name: Rainy Day" in prompt
        assert "User: songs for a rainy day" in prompt

    @pytest.mark.asyncio
    async def test_chat_reply_requires_reply(self, mock_llm):
        mock_llm.generate_json.return_value = {"themeTags": ["x"]}

        with pytest.raises(LLMResponseError):
            await PlaylistAI(mock_llm).generate_chat_reply([ChatMessage("user", "hi")])
