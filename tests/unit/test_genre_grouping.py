#!/usr/bin/env python3
"""
Unit tests for the genre grouping engine.
"""

import pytest

from tunesmith.api.base_client import APIError, AuthenticationError, RateLimitError
from tunesmith.config.settings import GenreConfig
from tunesmith.models.song import Song, LikedSong
from tunesmith.services.genre_grouping import (
    GenrePlaylistService,
    format_genre_name,
    group_by_genre,
    resolve_genre_group
)
from tunesmith.utils.cache_manager import CacheManager

class TestGenreRules:
    """Keyword bucketing."""

    def test_empty_tags_fall_back_to_no_genre(self):
        assert resolve_genre_group([]) == ("no-genre", "No genre")
        assert resolve_genre_group(["", "  "]) == ("no-genre", "No genre")

    @pytest.mark.parametrize("genres,expected", [
        (["k-pop", "pop"], ("k-pop", "K-Pop")),
        (["dance pop"], ("pop", "Pop")),
        (["alternative rock", "art rock"], ("rock", "Rock")),
        (["east coast hip hop"], ("hip-hop", "Hip-Hop")),
        (["contemporary r&b"], ("r&b", "R&B")),
        (["bossa nova"], ("latin", "Latin")),
        (["lo-fi beats"], ("lofi", "Lo-Fi")),
        (["anime"], ("anime", "Anime / J-POP")),
    ])
    def test_keyword_rules(self, genres, expected):
        assert resolve_genre_group(genres) == expected

    def test_tags_are_tried_in_order(self):
        assert resolve_genre_group(["shoegaze", "indie rock"]) == ("rock", "Rock")

    def test_unmatched_tag_is_formatted(self):
        assert resolve_genre_group(["shoegaze"]) == ("shoegaze", "Shoegaze")
        assert resolve_genre_group(["uk garage"]) == ("uk-garage", "UK Garage")

    def test_format_genre_name(self):
        assert format_genre_name("nu-disco") == "NU-Disco"
        assert format_genre_name("chillwave/vaporwave") == "Chillwave Vaporwave"
        assert format_genre_name("") == "No genre"

class TestGroupByGenre:
    """Grouping liked songs."""

    def test_groups_and_sorts_by_count_then_label(self, liked_songs):
        playlists = group_by_genre(liked_songs, {
            "a-bts": ["k-pop"],
            "a-radiohead": ["alternative rock"],
            "a-nobody": [],
        })

        assert [(playlist.key, playlist.count) for playlist in playlists] == [
            ("rock", 2),
            ("k-pop", 1),
            ("no-genre", 1),
        ]
        assert playlists[0].name == "Rock • Liked"
        assert playlists[0].songs == [Song("Creep", "Radiohead"), Song("Paranoid Android", "Radiohead")]
        assert playlists[2].description == "1 favorite track without a defined genre yet."
        assert playlists[0].description.startswith("2 liked tracks")

    def test_unknown_artist_is_no_genre(self):
        liked = [LikedSong(name="Solo", artist="Someone", id="t9")]
        playlists = group_by_genre(liked, {})

        assert len(playlists) == 1
        assert playlists[0].genre == "No genre"

class TestGenrePlaylistService:
    """Artist lookups through the queue."""

    @pytest.mark.asyncio
    async def test_fetches_in_batches_and_caches(self, mock_spotify_client, queue, fake_sleep):
        mock_spotify_client.get_artists.side_effect = lambda ids: {
            "artists": [{"id": artist_id, "genres": ["rock"]} for artist_id in ids]
        }
        cache = CacheManager()
        service = GenrePlaylistService(mock_spotify_client, queue, cache=cache,
                                       config=GenreConfig(artist_batch_size=2, batch_pause_seconds=0.15),
                                       sleep=fake_sleep)

        genres = await service.fetch_artist_genres(["a", "b", "c", "a"])

        assert genres == {"a": ["rock"], "b": ["rock"], "c": ["rock"]}
        assert mock_spotify_client.get_artists.call_count == 2
        assert fake_sleep.delays.count(0.15) == 2

        mock_spotify_client.get_artists.reset_mock()
        assert await service.fetch_artist_genres(["a", "b"]) == {"a": ["rock"], "b": ["rock"]}
        mock_spotify_client.get_artists.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_batch_leaves_artists_without_genres(self, mock_spotify_client, queue, fake_sleep,
                                                             liked_songs):
        mock_spotify_client.get_artists.side_effect = APIError("server error", status_code=500)
        service = GenrePlaylistService(mock_spotify_client, queue, sleep=fake_sleep)

        playlists = await service.build_genre_playlists(liked_songs)

        assert [playlist.key for playlist in playlists] == ["no-genre"]
        assert playlists[0].count == 4

    @pytest.mark.asyncio
    async def test_authentication_error_propagates(self, mock_spotify_client, queue, fake_sleep, liked_songs):
        mock_spotify_client.get_artists.side_effect = AuthenticationError()
        service = GenrePlaylistService(mock_spotify_client, queue, sleep=fake_sleep)

        with pytest.raises(AuthenticationError):
            await service.build_genre_playlists(liked_songs)

    @pytest.mark.asyncio
    async def test_exhausted_rate_limit_propagates(self, mock_spotify_client, queue, fake_sleep, liked_songs):
        mock_spotify_client.get_artists.side_effect = RateLimitError()
        service = GenrePlaylistService(mock_spotify_client, queue, sleep=fake_sleep)

        with pytest.raises(RateLimitError):
            await service.build_genre_playlists(liked_songs)
        assert mock_spotify_client.get_artists.call_count == 6

    @pytest.mark.asyncio
    async def test_emits_progress_events(self, mock_spotify_client, queue, fake_sleep, liked_songs, broadcaster):
        subscriber = broadcaster.subscribe()
        context = broadcaster.create_context("genre-playlists")
        service = GenrePlaylistService(mock_spotify_client, queue, broadcaster=broadcaster, sleep=fake_sleep)

        await service.build_genre_playlists(liked_songs, context)

        frames = []
        while not subscriber.empty():
            frames.append(subscriber.get_nowait())
        events = [frame.split("\n")[0] for frame in frames]

        assert events[0] == "event: connected"
        assert events[1] == "event: genre-start"
        assert "event: genre-progress" in events
        assert events[-1] == "event: genre-complete"
        assert context.request_id in frames[-1]

    @pytest.mark.asyncio
    async def test_no_liked_songs(self, mock_spotify_client, queue, fake_sleep):
        service = GenrePlaylistService(mock_spotify_client, queue, sleep=fake_sleep)
        assert await service.build_genre_playlists([]) == []
