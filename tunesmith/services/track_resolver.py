"""
Track resolution service.
Turns free-text song requests into catalog track URIs, deferring uncertain
songs to the disambiguation pass with ranked candidates.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from tunesmith.api.base_client import AuthenticationError, format_catalog_error
from tunesmith.api.spotify_client import SpotifyClient
from tunesmith.config.settings import ResolutionConfig
from tunesmith.models.song import Song
from tunesmith.models.candidate import (
    ResolutionResult,
    TrackSearchCandidate,
    UnresolvedTrackSelection
)
from tunesmith.utils.backoff import is_rate_limited
from tunesmith.utils.request_queue import RequestQueue
from tunesmith.utils.track_matcher import TrackMatcher

logger = logging.getLogger(__name__)

SongOutcome = Tuple[Optional[str], Optional[UnresolvedTrackSelection]]

def build_search_queries(song: Song) -> List[str]:
    """Field-filtered, free-text and title-only queries, trimmed and de-duplicated."""
    raw_queries = [
        f"track:{song.title} artist:{song.artist}",
        f"{song.title} {song.artist}",
        f"{song.title}",
    ]

    queries: List[str] = []
    for query in raw_queries:
        query = query.strip()
        if query and query not in queries:
            queries.append(query)
    return queries

class TrackResolver:
    """Resolves requested songs to catalog URIs through the shared request queue."""

    def __init__(
        self,
        client: SpotifyClient,
        queue: RequestQueue,
        matcher: Optional[TrackMatcher] = None,
        config: Optional[ResolutionConfig] = None,
        market: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize track resolver.

        Args:
            client: Catalog client used for searches
            queue: The process-wide request queue
            matcher: Fuzzy matcher (default instance if omitted)
            config: Search limit, candidate count and pacing
            market: Optional catalog market for searches
            sleep: Awaitable sleep for the pause between songs
        """
        self.client = client
        self.queue = queue
        self.matcher = matcher or TrackMatcher()
        self.config = config or ResolutionConfig()
        self.market = market
        self._sleep = sleep

    async def resolve_tracks(
        self,
        songs: Sequence[Song],
        playlist_name: Optional[str] = None
    ) -> ResolutionResult:
        """
        Resolve every song, keeping positions aligned with the input.

        Args:
            songs: Requested songs
            playlist_name: Used for log messages only

        Returns:
            ResolutionResult whose ``uris[i]`` belongs to ``songs[i]`` (None when unplaced)
            and whose unresolved entries carry their original index
        """
        uris: List[Optional[str]] = [None] * len(songs)
        unresolved: List[UnresolvedTrackSelection] = []
        suffix = f' in playlist "{playlist_name}"' if playlist_name else ""

        for index, song in enumerate(songs):
            if not song.is_complete:
                logger.warning(f"Skipping song #{index + 1}{suffix}: title and artist are required")
                continue

            uri, selection = await self.queue.enqueue(
                lambda index=index, song=song: self._resolve_song(index, song, suffix)
            )

            if uri:
                uris[index] = uri
            elif selection is not None:
                unresolved.append(selection)

            if index < len(songs) - 1:
                await self._sleep(self.config.delay_between_songs)

        resolved = sum(1 for uri in uris if uri)
        logger.info(f"Resolved {resolved}/{len(songs)} tracks{suffix}; {len(unresolved)} need review")
        return ResolutionResult(uris=uris, unresolved=unresolved)

    async def _search(self, query: str) -> List[dict]:
        response = await self.client.search_tracks(query, limit=self.config.search_limit, market=self.market)
        tracks = (response or {}).get("tracks") or {}
        return [item for item in (tracks.get("items") or []) if item]

    async def _resolve_song(self, index: int, song: Song, suffix: str = "") -> SongOutcome:
        """
        One queued unit of work: every query attempt for a single song.

        The first query returning results decides the outcome unless
        ``fall_through_on_unmatched`` is set, in which case later queries may
        still find an acceptable match and the first non-empty candidate list is kept.
        """
        queries = build_search_queries(song)
        deferred: Optional[UnresolvedTrackSelection] = None

        for query in queries:
            try:
                items = await self._search(query)
            except AuthenticationError:
                raise
            except Exception as e:
                if is_rate_limited(e):
                    raise
                logger.warning(
                    f'Error searching for "{song.title}" by {song.artist} with query "{query}": '
                    f"{format_catalog_error(e)}"
                )
                continue

            if not items:
                continue

            matched = self.matcher.find_acceptable_match(items, song)
            if matched:
                logger.info(f'Matched track for "{song.title}" by {song.artist} from search ({query}){suffix}')
                return matched["uri"], None

            candidates: List[TrackSearchCandidate] = self.matcher.rank_candidates(
                items, song, limit=self.config.max_candidates
            )
            selection = UnresolvedTrackSelection(
                index=index,
                requested=song,
                search_query=query,
                candidates=candidates
            )

            if not self.config.fall_through_on_unmatched:
                logger.info(
                    f'Deferring track selection for "{song.title}" by {song.artist}; '
                    f"sending top {len(candidates)} results for review"
                )
                return None, selection

            if deferred is None or (not deferred.candidates and candidates):
                deferred = selection

        if deferred is not None:
            logger.info(
                f'Deferring track selection for "{song.title}" by {song.artist}; '
                f"sending top {len(deferred.candidates)} results for review"
            )
            return None, deferred

        logger.info(f'No catalog results for "{song.title}" by {song.artist}. Marking as unresolved.')
        return None, UnresolvedTrackSelection(
            index=index,
            requested=song,
            search_query=queries[0] if queries else f"{song.title} {song.artist}",
            candidates=[]
        )
