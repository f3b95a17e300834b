"""
Playlist orchestration service.

Ties together the user's library, playlist generation, track resolution,
disambiguation and publishing. Every catalog call goes through the shared
request queue.
"""

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from tunesmith.api.base_client import APIError, AuthenticationError, MissingTokenError, format_catalog_error
from tunesmith.api.spotify_client import MAX_TRACKS_PER_ADD, SpotifyClient
from tunesmith.config.settings import Settings
from tunesmith.models.song import Song, Playlist, LikedSong, GenrePlaylist
from tunesmith.models.candidate import merge_uris, valid_uris
from tunesmith.models.chat import (
    ChatMessage,
    ChatPlaylistContext,
    ChatSongSuggestion,
    ChatSuggestionResult
)
from tunesmith.services.disambiguator import Disambiguator
from tunesmith.services.genre_grouping import GenrePlaylistService
from tunesmith.services.playlist_ai import PlaylistAI
from tunesmith.services.status_broadcaster import StatusBroadcaster, StatusContext
from tunesmith.services.track_resolver import TrackResolver
from tunesmith.utils.backoff import is_rate_limited
from tunesmith.utils.cache_manager import CacheManager
from tunesmith.utils.playlist_store import PlaylistStore
from tunesmith.utils.request_queue import RequestQueue
from tunesmith.utils.track_matcher import TrackMatcher
from tunesmith.utils.validators import (
    ValidationError,
    extract_spotify_playlist_id,
    sanitize_selected_songs,
    validate_latest_message,
    validate_prompt
)

logger = logging.getLogger(__name__)

LIKED_SONGS_PAGE_SIZE = 50
MAX_LIKED_SONG_EVENTS = 120
MAX_GENERATED_SONG_EVENTS = 160
PLAYLIST_TRACKS_PAGE_SIZE = 100
PLAYLIST_PAGE_PAUSE_SECONDS = 0.12
CHAT_EXAMPLE_PAUSE_SECONDS = 0.14
CHAT_SEARCH_LIMIT = 20

_SONG_EXAMPLE_SEPARATOR = re.compile(r"\s[–—-]\s")

class NoTracksResolvedError(Exception):
    """No requested song could be placed in the catalog."""
    pass

class NoPlaylistsCreatedError(Exception):
    """Every playlist in a batch failed to publish."""
    pass

@dataclass
class PublishedPlaylist:
    """A playlist created or updated on the user's account."""
    id: str
    name: str
    description: str
    songs: List[Song] = field(default_factory=list)
    upgraded: bool = False               # True when tracks were added to an existing playlist

    @property
    def spotify_url(self) -> str:
        return f"https://open.spotify.com/playlist/{self.id}"

    @property
    def embed_url(self) -> str:
        return f"https://open.spotify.com/embed/playlist/{self.id}?utm_source=generator"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "embed_url": self.embed_url,
            "spotify_url": self.spotify_url,
            "songs": [song.to_dict() for song in self.songs]
        }
        if self.upgraded:
            data["upgraded"] = True
        return data

def parse_song_example(example: str) -> Tuple[str, Optional[str]]:
    """Split ``"Title - Artist"`` (hyphen, en or em dash) into title and artist."""
    raw = (example or "").strip()
    if not raw:
        return "", None

    match = _SONG_EXAMPLE_SEPARATOR.search(raw)
    if not match:
        return raw, None

    title = raw[:match.start()].strip()
    artist = raw[match.end():].strip()
    return title or raw, artist or None

def _suggestion_id(seed: str) -> str:
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()

def _chunks(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[start:start + size]) for start in range(0, len(items), size)]

class PlaylistService:
    """Per-request orchestration over the process-wide queue, cache and status stream."""

    def __init__(
        self,
        client: Optional[SpotifyClient],
        queue: RequestQueue,
        ai: PlaylistAI,
        disambiguator: Disambiguator,
        store: PlaylistStore,
        broadcaster: Optional[StatusBroadcaster] = None,
        cache: Optional[CacheManager] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Initialize playlist service.

        Args:
            client: Catalog client for the current user (None when not signed in)
            queue: The process-wide request queue
            ai: Playlist and chat generation
            disambiguator: Second-pass resolver for uncertain tracks
            store: Saved playlist batch
            broadcaster: Live status stream (a silent one when omitted)
            cache: Optional cache for artist genres
            settings: Application settings
            sleep: Awaitable sleep for pacing
        """
        self.client = client
        self.queue = queue
        self.ai = ai
        self.disambiguator = disambiguator
        self.store = store
        self.broadcaster = broadcaster or StatusBroadcaster()
        self.settings = settings or Settings()
        self.matcher = TrackMatcher()
        self._sleep = sleep

        self.resolver = TrackResolver(
            client,
            queue,
            matcher=self.matcher,
            config=self.settings.resolution,
            market=self.settings.SPOTIFY_MARKET,
            sleep=sleep
        ) if client else None
        self.genres = GenrePlaylistService(
            client,
            queue,
            cache=cache,
            broadcaster=self.broadcaster,
            config=self.settings.genre,
            cache_config=self.settings.cache,
            sleep=sleep
        ) if client else None

    def _require_client(self) -> SpotifyClient:
        if self.client is None:
            raise MissingTokenError()
        return self.client

    # Library

    async def get_all_liked_songs(self, status_context: Optional[StatusContext] = None) -> List[LikedSong]:
        """Page through the user's liked songs, announcing the first songs on the status stream."""
        client = self._require_client()
        liked: List[LikedSong] = []
        offset = 0
        total = None
        announced = 0

        while total is None or offset < total:
            logger.debug(f"Fetching liked songs: offset {offset}")
            page = await self.queue.enqueue(
                lambda offset=offset: client.get_saved_tracks(limit=LIKED_SONGS_PAGE_SIZE, offset=offset)
            )
            items = page.get("items") or []

            if total is None:
                total = page.get("total") or 0
                self.broadcaster.liked_start(status_context, total=total)

            for position, item in enumerate(items):
                if not item or not item.get("track"):
                    continue
                song = LikedSong.from_spotify_data(item)
                liked.append(song)
                if announced < MAX_LIKED_SONG_EVENTS:
                    self.broadcaster.liked_song(status_context, name=song.name, artist=song.artist,
                                              id=song.id, index=offset + position + 1, total=total)
                    announced += 1

            if not items:
                break
            offset += LIKED_SONGS_PAGE_SIZE
            logger.info(f"Fetched {len(liked)}/{total} liked songs")

        self.broadcaster.liked_complete(status_context, total=len(liked))
        return liked

    # Generation

    def broadcast_playlist_songs(self, playlists: Sequence[Playlist], status_context: Optional[StatusContext]):
        """Stream generated songs so the UI can show progress."""
        if not status_context:
            return

        sent = 0
        for playlist_index, playlist in enumerate(playlists, start=1):
            for position, song in enumerate(playlist.songs, start=1):
                if not song.is_complete:
                    continue
                self.broadcaster.generate_song(status_context, title=song.title, artist=song.artist,
                                               country=song.country, playlist=playlist.name,
                                               playlistIndex=playlist_index, position=position)
                sent += 1
                if sent >= MAX_GENERATED_SONG_EVENTS:
                    return

    async def generate_or_load_playlists(
        self,
        liked_songs: Sequence[LikedSong],
        model_name: Optional[str] = None
    ) -> List[Playlist]:
        """Reuse the saved batch unless a model is requested explicitly."""
        if not model_name:
            saved = self.store.load()
            if saved is not None:
                logger.info("Using saved playlists")
                return saved
            logger.info("No saved playlists found, generating new ones")

        return await self.ai.generate_playlists(liked_songs, model_name)

    async def load_or_generate_playlists_for_preview(
        self,
        model_name: Optional[str] = None,
        status_context: Optional[StatusContext] = None
    ) -> List[Playlist]:
        """Saved batch if present, else liked songs plus generation (saved when no model was requested)."""
        if not model_name:
            saved = self.store.load()
            if saved is not None:
                logger.info("Using saved playlists for preview")
                return saved
            logger.info("No saved playlists. Generating new playlists for preview.")

        liked_songs = await self.get_all_liked_songs(status_context)
        playlists = await self.ai.generate_playlists(liked_songs, model_name)
        if not model_name:
            self.store.save(playlists)
        return playlists

    async def generate_playlists(
        self,
        model_name: Optional[str] = None,
        status_context: Optional[StatusContext] = None
    ) -> List[Playlist]:
        """Liked songs, then generated (or saved) playlists; the result becomes the saved batch."""
        liked_songs = await self.get_all_liked_songs(status_context)

        self.broadcaster.generate_start(status_context, model=model_name, label="Generating playlists...")
        playlists = await self.generate_or_load_playlists(liked_songs, model_name)
        self.broadcast_playlist_songs(playlists, status_context)
        self.broadcaster.generate_complete(status_context, totalPlaylists=len(playlists), label="Playlists ready!")

        self.store.save(playlists)
        logger.info(f"Generated {len(playlists)} playlists and saved to disk")
        return playlists

    # Resolution

    async def resolve_playlist_tracks(
        self,
        playlist: Playlist,
        model_name: Optional[str] = None,
        status_context: Optional[StatusContext] = None,
        provided_uris: Optional[Sequence[Optional[str]]] = None
    ) -> Tuple[List[Optional[str]], Playlist]:
        """
        Resolve a playlist's songs, then ask the model about the uncertain ones.

        Args:
            playlist: Sanitized playlist
            model_name: Optional model override for disambiguation
            status_context: Optional status stream context
            provided_uris: URIs the user already picked, aligned with the songs

        Returns:
            Tuple of (URIs aligned with the songs, playlist with matched songs rewritten)

        Raises:
            APIError: If the disambiguation call fails (malformed JSON or transport)
        """
        if self.resolver is None:
            self._require_client()

        provided = list(provided_uris or [])
        result = await self.resolver.resolve_tracks(playlist.songs, playlist.name)
        uris = merge_uris(result.uris, provided)
        unresolved = [
            item for item in result.unresolved
            if not (item.index < len(provided) and provided[item.index])
        ]

        if not unresolved:
            return uris, playlist

        self.broadcaster.status_message(status_context, f"Verifying {len(unresolved)} tracks with the model...")
        review = await self.disambiguator.resolve_unresolved_tracks(playlist, unresolved, model_name)

        remaining = len(unresolved) - review.resolved_count
        if remaining > 0:
            self.broadcaster.status_message(
                status_context,
                f"Matched {review.resolved_count} tracks after review. {remaining} still need attention."
            )
        else:
            self.broadcaster.status_message(status_context,
                                            f"Matched all {review.resolved_count} tracks after review!")

        return merge_uris(uris, review.uris), review.playlist or playlist

    # Publishing

    async def _add_tracks(self, playlist_id: str, uris: Sequence[str]):
        client = self._require_client()
        for batch in _chunks(uris, MAX_TRACKS_PER_ADD):
            await self.queue.enqueue(lambda batch=batch: client.add_tracks_to_playlist(playlist_id, batch))

    async def _create_private_playlist(self, playlist: Playlist, uris: Sequence[str]) -> str:
        client = self._require_client()
        created = await self.queue.enqueue(
            lambda: client.create_playlist(playlist.name, description=playlist.description, public=False)
        )
        playlist_id = created["id"]
        await self._add_tracks(playlist_id, uris)
        logger.info(f"Created playlist '{playlist.name}' ({playlist_id}) with {len(uris)} tracks")
        return playlist_id

    async def publish_preview_playlists(
        self,
        model_name: Optional[str] = None,
        status_context: Optional[StatusContext] = None
    ) -> List[PublishedPlaylist]:
        """
        Create a private playlist for every playlist of the saved (or new) batch.

        A playlist that fails is logged and skipped.

        Raises:
            NoPlaylistsCreatedError: If no playlist could be created
        """
        self._require_client()
        self.broadcaster.generate_start(status_context, model=model_name, label="Generating surprise playlists...")
        playlists = await self.load_or_generate_playlists_for_preview(model_name, status_context)
        self.broadcast_playlist_songs(playlists, status_context)
        self.broadcaster.generate_complete(status_context, totalPlaylists=len(playlists),
                                           label="Surprise playlists ready!")

        published: List[PublishedPlaylist] = []
        for playlist in playlists:
            sanitized = playlist.sanitized()
            try:
                uris, resolved_playlist = await self.resolve_playlist_tracks(sanitized, model_name, status_context)
                track_uris = valid_uris(uris)
                if not track_uris:
                    logger.warning(f"No valid tracks found for playlist: {sanitized.name}")
                    continue

                playlist_id = await self._create_private_playlist(sanitized, track_uris)
                published.append(PublishedPlaylist(
                    id=playlist_id,
                    name=sanitized.name,
                    description=sanitized.description,
                    songs=resolved_playlist.songs
                ))
            except AuthenticationError:
                raise
            except APIError as e:
                logger.error(f'Error processing playlist "{sanitized.name}": {format_catalog_error(e)}')

        if not published:
            raise NoPlaylistsCreatedError("No valid playlists could be created")
        return published

    async def collect_playlist_track_uris(
        self,
        playlist_id: str,
        initial_playlist: Optional[Dict[str, Any]] = None
    ) -> Set[str]:
        """Every track URI already in a playlist, paging past the first page."""
        client = self._require_client()
        uris: Set[str] = set()

        def add_items(items):
            for item in items or []:
                uri = ((item or {}).get("track") or {}).get("uri")
                if uri:
                    uris.add(uri)

        offset = 0
        total = None
        if initial_playlist:
            tracks = initial_playlist.get("tracks") or {}
            initial_items = tracks.get("items") or []
            add_items(initial_items)
            offset = len(initial_items)
            total = tracks.get("total", offset)
            if total is not None and offset >= total:
                return uris

        while True:
            page = await self.queue.enqueue(
                lambda offset=offset: client.get_playlist_tracks(
                    playlist_id, limit=PLAYLIST_TRACKS_PAGE_SIZE, offset=offset
                )
            )
            items = page.get("items") or []
            add_items(items)
            offset += len(items)
            if isinstance(page.get("total"), int):
                total = page["total"]

            if not items or (total is not None and offset >= total):
                break
            await self._sleep(PLAYLIST_PAGE_PAUSE_SECONDS)

        return uris

    async def create_custom_playlist(
        self,
        prompt: str,
        model_name: Optional[str] = None,
        selected_songs: Any = None,
        playlist_reference: Optional[str] = None,
        status_context: Optional[StatusContext] = None
    ) -> PublishedPlaylist:
        """
        Generate a playlist from a prompt and publish it.

        Args:
            prompt: Free-text description of the playlist
            model_name: Optional model override
            selected_songs: Songs the user picked, replacing the generated ones
            playlist_reference: Existing playlist (URL, URI or id) to add tracks to
            status_context: Optional status stream context

        Returns:
            The created or updated playlist

        Raises:
            ValidationError: On an empty prompt or unrecognized playlist reference
            NoTracksResolvedError: If no song could be placed
            APIError: If the model or catalog fails; nothing is published
        """
        prompt = validate_prompt(prompt)
        selections = sanitize_selected_songs(selected_songs)

        reference = (playlist_reference or "").strip()
        target_id = extract_spotify_playlist_id(reference) if reference else None
        if reference and not target_id:
            raise ValidationError("Could not understand that playlist link. Paste a Spotify playlist URL or ID.")

        client = self._require_client()
        existing: Optional[Dict[str, Any]] = None
        if target_id:
            existing = await self.queue.enqueue(lambda: client.get_playlist(target_id))

        start_label = "Refreshing your playlist with new ideas..." if target_id else "Creating your custom playlist..."
        self.broadcaster.generate_start(status_context, model=model_name, label=start_label,
                                        promptPreview=prompt[:160])

        playlist = (await self.ai.generate_custom_playlist(prompt, model_name)).sanitized()
        if selections:
            playlist = Playlist(name=playlist.name, description=playlist.description,
                                songs=[song for song, _ in selections])
        self.broadcast_playlist_songs([playlist], status_context)

        provided = [uri for _, uri in selections]
        if selections and all(provided):
            uris: List[Optional[str]] = list(provided)
        else:
            uris, playlist = await self.resolve_playlist_tracks(playlist, model_name, status_context, provided)

        track_uris = valid_uris(uris)
        if not track_uris:
            raise NoTracksResolvedError("No valid tracks found for the custom playlist")

        if target_id and existing is not None:
            present = await self.collect_playlist_track_uris(target_id, existing)
            to_add = [uri for uri in track_uris if uri not in present]
            if to_add:
                await self._add_tracks(target_id, to_add)

            description = playlist.description or existing.get("description") or playlist.name
            try:
                await self.queue.enqueue(
                    lambda: client.change_playlist_details(target_id, description=description)
                )
            except APIError as e:
                logger.warning(f"Failed to update playlist description for {target_id}: {format_catalog_error(e)}")

            logger.info(f"Added {len(to_add)} new tracks to playlist {target_id}")
            published = PublishedPlaylist(
                id=target_id,
                name=existing.get("name") or playlist.name,
                description=description,
                songs=playlist.songs,
                upgraded=True
            )
        else:
            playlist_id = await self._create_private_playlist(playlist, track_uris)
            published = PublishedPlaylist(
                id=playlist_id,
                name=playlist.name,
                description=playlist.description,
                songs=playlist.songs
            )

        complete_label = "Suggestions ready to refresh your playlist!" if target_id else "Custom playlist ready!"
        self.broadcaster.generate_complete(status_context, totalPlaylists=1, label=complete_label,
                                           songs=[song.to_dict() for song in playlist.songs[:80]])
        return published

    # Genres

    async def build_genre_playlists(self, status_context: Optional[StatusContext] = None) -> List[GenrePlaylist]:
        """Group the user's liked songs into genre playlists."""
        liked_songs = await self.get_all_liked_songs(status_context)
        return await self.genres.build_genre_playlists(liked_songs, status_context)

    # Chat

    async def _find_best_track(self, title: str, artist: Optional[str]) -> Optional[Dict[str, Any]]:
        """Best-scoring track from the first query that yields a scorable result."""
        client = self._require_client()
        song = Song(title=title, artist=artist or "")
        if artist:
            queries = [f"track:{title} artist:{artist}", f"{title} {artist}", title]
        else:
            queries = [f"track:{title}", title]

        for query in queries:
            try:
                response = await client.search_tracks(query, limit=CHAT_SEARCH_LIMIT,
                                                      market=self.settings.SPOTIFY_MARKET)
            except AuthenticationError:
                raise
            except APIError as e:
                if is_rate_limited(e):
                    raise
                logger.warning(f'Catalog search error for chat suggestion "{title}": {format_catalog_error(e)}')
                continue

            items = [item for item in ((response or {}).get("tracks") or {}).get("items") or [] if item]
            best = None
            best_score = float("-inf")
            for track in items:
                score = self.matcher.score_candidate(track, song)
                if score > best_score:
                    best, best_score = track, score
            if best is not None:
                return best

        return None

    @staticmethod
    def _fallback_suggestion(title: str, artist: Optional[str], index: int,
                             reason: Optional[str]) -> ChatSongSuggestion:
        return ChatSongSuggestion(
            id=_suggestion_id(f"{title}:{artist or ''}:{index}"),
            title=title,
            artist=artist or "",
            preview_unavailable_reason=reason
        )

    @staticmethod
    def _suggestion_from_track(track: Dict[str, Any], title: str, artist: Optional[str],
                               index: int) -> ChatSongSuggestion:
        artists = [a.get("name") for a in track.get("artists") or [] if a and a.get("name")]
        album = track.get("album") or {}
        images = album.get("images") or []
        image = images[1] if len(images) > 1 else (images[0] if images else {})
        preview_url = track.get("preview_url") if isinstance(track.get("preview_url"), str) else None

        return ChatSongSuggestion(
            id=track.get("id") or _suggestion_id(f"{track.get('uri') or track.get('name')}:{index}"),
            title=track.get("name") or title,
            artist=", ".join(artists) if artists else (artist or ""),
            album=album.get("name"),
            preview_url=preview_url,
            uri=track.get("uri"),
            spotify_url=(track.get("external_urls") or {}).get("spotify"),
            image_url=image.get("url"),
            preview_unavailable_reason=None if preview_url else "no_preview"
        )

    async def resolve_chat_song_suggestions(self, song_examples: Sequence[str]) -> List[ChatSongSuggestion]:
        """
        Match the assistant's song examples to catalog tracks.

        Without a signed-in user every example is returned unmatched with reason
        ``auth_required``; a failed lookup yields reason ``error``.
        """
        if self.client is None:
            logger.info("Spotify authentication missing for chat suggestions; returning basic entries")
            return [
                self._fallback_suggestion(*parse_song_example(example), index, "auth_required")
                for index, example in enumerate(song_examples)
            ]

        suggestions: List[ChatSongSuggestion] = []
        for index, example in enumerate(song_examples):
            title, artist = parse_song_example(example)
            if not title:
                suggestions.append(self._fallback_suggestion(example.strip(), artist, index, "no_preview"))
                continue

            try:
                track = await self.queue.enqueue(lambda title=title, artist=artist: self._find_best_track(title, artist))
            except AuthenticationError:
                logger.info("Spotify authentication expired during chat suggestions")
                suggestions.append(self._fallback_suggestion(title, artist, index, "auth_required"))
            except APIError as e:
                logger.warning(f'Failed to resolve chat song suggestion "{example}": {format_catalog_error(e)}')
                suggestions.append(self._fallback_suggestion(title, artist, index, "error"))
            else:
                if track:
                    suggestions.append(self._suggestion_from_track(track, title, artist, index))
                else:
                    suggestions.append(self._fallback_suggestion(title, artist, index, "no_preview"))

            if index < len(song_examples) - 1:
                await self._sleep(CHAT_EXAMPLE_PAUSE_SECONDS)

        return suggestions

    async def suggest_for_chat(
        self,
        messages: Sequence[ChatMessage],
        playlist_context: Optional[ChatPlaylistContext] = None,
        model_name: Optional[str] = None
    ) -> ChatSuggestionResult:
        """
        Reply to the latest user message with tags and playable song suggestions.

        Raises:
            ValidationError: If the conversation does not end with a user message
        """
        validate_latest_message(list(messages))
        result = await self.ai.generate_chat_reply(messages, playlist_context, model_name)
        if result.song_examples:
            result.song_suggestions = await self.resolve_chat_song_suggestions(result.song_examples)
        return result
