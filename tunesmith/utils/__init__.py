"""Utility modules for the playlist curator."""

from .backoff import BackoffPolicy, call_with_backoff
from .request_queue import RequestQueue
from .track_matcher import TrackMatcher, normalize_for_match, extract_artist_tokens
from .cache_manager import CacheManager
from .playlist_store import PlaylistStore
from .validators import ValidationError, extract_spotify_playlist_id, sanitize_string_array

__all__ = [
    'BackoffPolicy',
    'call_with_backoff',
    'RequestQueue',
    'TrackMatcher',
    'normalize_for_match',
    'extract_artist_tokens',
    'CacheManager',
    'PlaylistStore',
    'ValidationError',
    'extract_spotify_playlist_id',
    'sanitize_string_array'
]
