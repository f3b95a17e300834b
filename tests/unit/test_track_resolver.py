#!/usr/bin/env python3
"""
Unit tests for the track resolution pipeline.
"""

import pytest

from tunesmith.api.base_client import APIError, AuthenticationError, RateLimitError
from tunesmith.config.settings import ResolutionConfig
from tunesmith.models.song import Song
from tunesmith.services.track_resolver import TrackResolver, build_search_queries
from tunesmith.utils.request_queue import RequestQueue

class TestSearchQueries:
    """Query construction."""

    def test_three_queries_in_order(self):
        assert build_search_queries(Song("Yesterday", "The Beatles")) == [
            "track:Yesterday artist:The Beatles",
            "Yesterday The Beatles",
            "Yesterday",
        ]

class TestTrackResolver:
    """Unit tests for TrackResolver."""

    def make_resolver(self, client, queue, fake_sleep, **config):
        return TrackResolver(client, queue, config=ResolutionConfig(**config), market="US", sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_resolves_exact_match(self, mock_spotify_client, queue, fake_sleep, track_factory,
                                        search_results):
        mock_spotify_client.search_tracks.return_value = search_results(
            track_factory("Yesterday", "The Beatles", uri="spotify:track:abc")
        )
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        result = await resolver.resolve_tracks([Song("Yesterday", "The Beatles")])

        assert result.uris == ["spotify:track:abc"]
        assert result.unresolved == []
        mock_spotify_client.search_tracks.assert_awaited_once_with(
            "track:Yesterday artist:The Beatles", limit=20, market="US"
        )

    @pytest.mark.asyncio
    async def test_output_stays_aligned_with_input(self, mock_spotify_client, queue, fake_sleep,
                                                   track_factory, search_results):
        async def search(query, limit=20, market=None):
            if "Creep" in query:
                return search_results(track_factory("Creep", "Radiohead", uri="spotify:track:creep"))
            if "Broken" in query:
                raise APIError("server error", status_code=500)
            return search_results()

        mock_spotify_client.search_tracks.side_effect = search
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        songs = [
            Song("Unknown Song", "Nobody"),
            Song("Broken", "Failing Artist"),
            Song("Creep", "Radiohead"),
            Song("No Artist", ""),
        ]
        result = await resolver.resolve_tracks(songs)

        assert result.uris == [None, None, "spotify:track:creep", None]
        assert [item.index for item in result.unresolved] == [0, 1]
        assert result.unresolved[0].candidates == []
        assert result.unresolved[0].search_query == "track:Unknown Song artist:Nobody"

    @pytest.mark.asyncio
    async def test_incomplete_songs_are_skipped(self, mock_spotify_client, queue, fake_sleep):
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        result = await resolver.resolve_tracks([Song("", "Someone"), Song("Title", "")])

        assert result.uris == [None, None]
        assert result.unresolved == []
        mock_spotify_client.search_tracks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unmatched_results_defer_with_candidates(self, mock_spotify_client, queue, fake_sleep,
                                                          track_factory, search_results):
        mock_spotify_client.search_tracks.return_value = search_results(
            track_factory("Imagine", "John Lennon", uri="spotify:track:lennon")
        )
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        result = await resolver.resolve_tracks([Song("Imagine", "Anonymous Cover Band")])

        assert result.uris == [None]
        assert len(result.unresolved) == 1
        selection = result.unresolved[0]
        assert selection.index == 0
        assert selection.search_query == "track:Imagine artist:Anonymous Cover Band"
        assert [candidate.uri for candidate in selection.candidates] == ["spotify:track:lennon"]
        assert mock_spotify_client.search_tracks.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_query_falls_through_to_next(self, mock_spotify_client, queue, fake_sleep,
                                                     track_factory, search_results):
        mock_spotify_client.search_tracks.side_effect = [
            APIError("bad gateway", status_code=502),
            search_results(track_factory("Yesterday", "The Beatles", uri="spotify:track:abc")),
        ]
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        result = await resolver.resolve_tracks([Song("Yesterday", "The Beatles")])

        assert result.uris == ["spotify:track:abc"]
        assert mock_spotify_client.search_tracks.await_args_list[1].args[0] == "Yesterday The Beatles"

    @pytest.mark.asyncio
    async def test_empty_results_fall_through_to_next(self, mock_spotify_client, queue, fake_sleep,
                                                     track_factory, search_results):
        mock_spotify_client.search_tracks.side_effect = [
            search_results(),
            search_results(),
            search_results(track_factory("Yesterday", "The Beatles", uri="spotify:track:abc")),
        ]
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        result = await resolver.resolve_tracks([Song("Yesterday", "The Beatles")])

        assert result.uris == ["spotify:track:abc"]
        assert mock_spotify_client.search_tracks.await_count == 3

    @pytest.mark.asyncio
    async def test_fall_through_flag_keeps_searching(self, mock_spotify_client, queue, fake_sleep,
                                                    track_factory, search_results):
        mock_spotify_client.search_tracks.side_effect = [
            search_results(track_factory("Imagine", "John Lennon", uri="spotify:track:lennon")),
            search_results(track_factory("Imagine", "Anonymous Cover Band", uri="spotify:track:cover")),
        ]
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep, fall_through_on_unmatched=True)

        result = await resolver.resolve_tracks([Song("Imagine", "Anonymous Cover Band")])

        assert result.uris == ["spotify:track:cover"]
        assert result.unresolved == []

    @pytest.mark.asyncio
    async def test_fall_through_flag_keeps_first_candidates(self, mock_spotify_client, queue, fake_sleep,
                                                           track_factory, search_results):
        mock_spotify_client.search_tracks.side_effect = [
            search_results(track_factory("Imagine", "John Lennon", uri="spotify:track:lennon")),
            search_results(),
            search_results(track_factory("Imagine - Live", "Someone", uri="spotify:track:live")),
        ]
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep, fall_through_on_unmatched=True)

        result = await resolver.resolve_tracks([Song("Imagine", "Anonymous Cover Band")])

        assert result.uris == [None]
        assert result.unresolved[0].search_query == "track:Imagine artist:Anonymous Cover Band"
        assert [c.uri for c in result.unresolved[0].candidates] == ["spotify:track:lennon"]

    @pytest.mark.asyncio
    async def test_authentication_error_propagates(self, mock_spotify_client, queue, fake_sleep):
        mock_spotify_client.search_tracks.side_effect = AuthenticationError()
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        with pytest.raises(AuthenticationError):
            await resolver.resolve_tracks([Song("Yesterday", "The Beatles")])

    @pytest.mark.asyncio
    async def test_exhausted_rate_limit_propagates(self, mock_spotify_client, queue, fake_sleep):
        mock_spotify_client.search_tracks.side_effect = RateLimitError()
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        with pytest.raises(RateLimitError):
            await resolver.resolve_tracks([Song("Yesterday", "The Beatles")])

        assert mock_spotify_client.search_tracks.await_count == 6

    @pytest.mark.asyncio
    async def test_pauses_between_songs(self, mock_spotify_client, fake_sleep):
        queue = RequestQueue(spacing_seconds=0.05, sleep=fake_sleep)
        resolver = self.make_resolver(mock_spotify_client, queue, fake_sleep)

        await resolver.resolve_tracks([Song("A", "X"), Song("B", "Y")])

        assert fake_sleep.delays.count(0.12) == 1
        assert fake_sleep.delays.count(0.05) == 2
