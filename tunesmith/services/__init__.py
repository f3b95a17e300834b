"""Core services for track resolution, playlist generation and publishing."""

from .status_broadcaster import StatusBroadcaster, StatusContext
from .track_resolver import TrackResolver, build_search_queries
from .disambiguator import Disambiguator
from .genre_grouping import GenrePlaylistService, group_by_genre, resolve_genre_group, format_genre_name
from .playlist_ai import PlaylistAI
from .playlist_service import (
    PlaylistService,
    PublishedPlaylist,
    NoTracksResolvedError,
    NoPlaylistsCreatedError
)

__all__ = [
    'StatusBroadcaster',
    'StatusContext',
    'TrackResolver',
    'build_search_queries',
    'Disambiguator',
    'GenrePlaylistService',
    'group_by_genre',
    'resolve_genre_group',
    'format_genre_name',
    'PlaylistAI',
    'PlaylistService',
    'PublishedPlaylist',
    'NoTracksResolvedError',
    'NoPlaylistsCreatedError'
]
