"""
Genre grouping engine.
Buckets liked songs into genre playlists using the primary artist's genre tags.
"""

import asyncio
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from tunesmith.api.base_client import APIError, AuthenticationError, format_catalog_error
from tunesmith.api.spotify_client import SpotifyClient
from tunesmith.config.settings import CacheConfig, GenreConfig
from tunesmith.models.song import Song, LikedSong, GenrePlaylist
from tunesmith.services.status_broadcaster import StatusBroadcaster, StatusContext
from tunesmith.utils.backoff import is_rate_limited
from tunesmith.utils.cache_manager import CacheManager
from tunesmith.utils.request_queue import RequestQueue

logger = logging.getLogger(__name__)

NO_GENRE_KEY = "no-genre"
NO_GENRE_LABEL = "No genre"
ARTIST_GENRES_CACHE_PREFIX = "artist-genres"

@dataclass(frozen=True)
class GenreRule:
    key: str
    label: str
    pattern: Pattern

def _rule(key: str, label: str, pattern: str) -> GenreRule:
    return GenreRule(key, label, re.compile(pattern, re.IGNORECASE))

# Order matters: the first matching rule wins.
GENRE_KEYWORDS: List[GenreRule] = [
    _rule("k-pop", "K-Pop", r"k[\s-]?pop"),
    _rule("pop", "Pop", r"\bpop\b"),
    _rule("rock", "Rock", r"\brock\b"),
    _rule("hip-hop", "Hip-Hop", r"hip[\s-]?hop"),
    _rule("rap", "Rap", r"\brap\b"),
    _rule("r&b", "R&B", r"r&b|r\s*&\s*b|rnb"),
    _rule("soul", "Soul", r"\bsoul\b"),
    _rule("jazz", "Jazz", r"\bjazz\b"),
    _rule("funk", "Funk", r"\bfunk\b"),
    _rule("house", "House", r"\bhouse\b"),
    _rule("edm", "EDM", r"\bedm\b"),
    _rule("electronic", "Electronic", r"electro|electronic|synth"),
    _rule("dance", "Dance", r"\bdance\b"),
    _rule("metal", "Metal", r"\bmetal\b"),
    _rule("punk", "Punk", r"\bpunk\b"),
    _rule("indie", "Indie", r"\bindie\b"),
    _rule("latin", "Latin", r"latin|reggaeton|cumbia|bossa|samba|mpb"),
    _rule("country", "Country", r"\bcountry\b"),
    _rule("folk", "Folk", r"\bfolk\b"),
    _rule("classical", "Classical", r"classical|orchestral|baroque"),
    _rule("lofi", "Lo-Fi", r"lo[\s-]?fi"),
    _rule("blues", "Blues", r"\bblues\b"),
    _rule("reggae", "Reggae", r"\breggae\b"),
    _rule("gospel", "Gospel", r"gospel|worship"),
    _rule("anime", "Anime / J-POP", r"anime|j\s*-?pop|japanese"),
]

def _format_chunk(chunk: str) -> str:
    if len(chunk) <= 3:
        return chunk.upper()
    return chunk[:1].upper() + chunk[1:]

def format_genre_name(genre: str) -> str:
    """Label for a raw genre tag: short chunks upper-cased, others capitalized."""
    if not genre:
        return NO_GENRE_LABEL

    segments = [segment for segment in re.split(r"[\s/]+", genre) if segment]
    return " ".join(
        "-".join(_format_chunk(part) for part in segment.split("-"))
        for segment in segments
    )

def resolve_genre_group(genres: Sequence[str]) -> Tuple[str, str]:
    """
    Map a genre tag list to a (key, label) bucket.

    Tags are tried in order against every rule; the first match wins. Without a
    match the first tag is slugified and formatted; without tags the song is "No genre".
    """
    tags = [genre for genre in genres if isinstance(genre, str) and genre.strip()]
    if not tags:
        return NO_GENRE_KEY, NO_GENRE_LABEL

    for genre in tags:
        for rule in GENRE_KEYWORDS:
            if rule.pattern.search(genre):
                return rule.key, rule.label

    primary = tags[0]
    key = re.sub(r"[^a-z0-9]+", "-", primary.lower())
    return key, format_genre_name(primary)

def create_genre_description(genre: str, count: int) -> str:
    plural = "track" if count == 1 else "tracks"
    if genre == NO_GENRE_LABEL:
        return f"{count} favorite {plural} without a defined genre yet."
    return f"{count} liked {plural} channeling the energy of {genre}. Perfect for diving into the vibe."

def group_by_genre(
    liked_songs: Sequence[LikedSong],
    artist_genres: Dict[str, List[str]]
) -> List[GenrePlaylist]:
    """
    Group liked songs by their primary artist's genre.

    Returns:
        Playlists sorted by song count (descending), then label
    """
    groups: "OrderedDict[str, Tuple[str, List[Song]]]" = OrderedDict()

    for liked in liked_songs:
        artist_id = liked.primary_artist_id
        genres = artist_genres.get(artist_id, []) if artist_id else []
        key, label = resolve_genre_group(genres)

        if key not in groups:
            groups[key] = (label, [])
        groups[key][1].append(Song(title=liked.name, artist=liked.artist))

    playlists = [
        GenrePlaylist(
            key=key,
            genre=label,
            name=f"{label} • Liked",
            description=create_genre_description(label, len(songs)),
            songs=songs
        )
        for key, (label, songs) in groups.items()
    ]
    playlists.sort(key=lambda playlist: (-playlist.count, playlist.genre.casefold(), playlist.genre))
    return playlists

class GenrePlaylistService:
    """Fetches artist genres through the request queue and builds genre playlists."""

    def __init__(
        self,
        client: SpotifyClient,
        queue: RequestQueue,
        cache: Optional[CacheManager] = None,
        broadcaster: Optional[StatusBroadcaster] = None,
        config: Optional[GenreConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.client = client
        self.queue = queue
        self.cache = cache
        self.broadcaster = broadcaster or StatusBroadcaster()
        self.config = config or GenreConfig()
        self.cache_config = cache_config or CacheConfig()
        self._sleep = sleep

    async def fetch_artist_genres(
        self,
        artist_ids: Sequence[str],
        status_context: Optional[StatusContext] = None
    ) -> Dict[str, List[str]]:
        """
        Genre tags per artist id.

        Cached artists are served from the cache; the rest are looked up in
        batches through the queue, pausing after each batch. A failed batch is
        logged and its artists are left without genres.
        """
        unique_ids = list(OrderedDict.fromkeys(artist_id for artist_id in artist_ids if artist_id))
        genres: Dict[str, List[str]] = {}

        missing = unique_ids
        if self.cache:
            genres, missing = await self.cache.get_many(ARTIST_GENRES_CACHE_PREFIX, unique_ids)
            if genres:
                logger.debug(f"Artist genres cache hits: {len(genres)}/{len(unique_ids)}")

        processed = len(unique_ids) - len(missing)
        batch_size = self.config.artist_batch_size

        for start in range(0, len(missing), batch_size):
            batch = missing[start:start + batch_size]
            fetched: Dict[str, List[str]] = {}

            try:
                response = await self.queue.enqueue(lambda batch=batch: self.client.get_artists(batch))
                for artist in (response or {}).get("artists") or []:
                    if artist and artist.get("id"):
                        fetched[artist["id"]] = list(artist.get("genres") or [])
            except AuthenticationError:
                raise
            except APIError as e:
                if is_rate_limited(e):
                    raise
                logger.warning(f"Error fetching artist genres for batch: {format_catalog_error(e)}")

            genres.update(fetched)
            if self.cache and fetched:
                await self.cache.set_many(ARTIST_GENRES_CACHE_PREFIX, fetched, ttl=self.cache_config.artist_genre_ttl)

            processed += len(batch)
            self.broadcaster.genre_progress(status_context, stage="artists",
                                           processed=processed, total=len(unique_ids))

            await self._sleep(self.config.batch_pause_seconds)

        return genres

    async def build_genre_playlists(
        self,
        liked_songs: Sequence[LikedSong],
        status_context: Optional[StatusContext] = None
    ) -> List[GenrePlaylist]:
        """Group the user's liked songs into genre playlists."""
        if not liked_songs:
            return []

        artist_ids = [
            artist_id
            for song in liked_songs
            for artist_id in (song.artist_ids or ([song.artist_id] if song.artist_id else []))
        ]
        unique_count = len(set(artist_ids))

        self.broadcaster.genre_start(status_context, totalSongs=len(liked_songs), totalArtists=unique_count)

        artist_genres = await self.fetch_artist_genres(artist_ids, status_context)
        playlists = group_by_genre(liked_songs, artist_genres)

        self.broadcaster.genre_progress(status_context, stage="grouping",
                                       processed=len(liked_songs), total=len(liked_songs))

        samples = [
            f"{song.title} — {song.artist}"
            for playlist in playlists
            for song in playlist.songs[:3]
        ][:80]
        self.broadcaster.genre_complete(status_context, totalPlaylists=len(playlists),
                                       totalSongs=len(liked_songs), songs=samples)

        logger.info(f"Grouped {len(liked_songs)} liked songs into {len(playlists)} genre playlists")
        return playlists
