"""Data models for the playlist curator."""

from .song import Song, Playlist, LikedSong, GenrePlaylist
from .candidate import (
    TrackSearchCandidate,
    UnresolvedTrackSelection,
    ResolutionResult,
    DisambiguationResult,
    merge_uris,
    valid_uris
)
from .chat import ChatMessage, ChatPlaylistContext, ChatSongSuggestion, ChatSuggestionResult
from .llm_responses import (
    SongEntry,
    PlaylistEntry,
    PlaylistBatch,
    TrackChoice,
    DisambiguationResponse,
    ChatResponse,
    ParsedOk,
    ParseError,
    parse_payload
)

__all__ = [
    'Song',
    'Playlist',
    'LikedSong',
    'GenrePlaylist',
    'TrackSearchCandidate',
    'UnresolvedTrackSelection',
    'ResolutionResult',
    'DisambiguationResult',
    'merge_uris',
    'valid_uris',
    'ChatMessage',
    'ChatPlaylistContext',
    'ChatSongSuggestion',
    'ChatSuggestionResult',
    'SongEntry',
    'PlaylistEntry',
    'PlaylistBatch',
    'TrackChoice',
    'DisambiguationResponse',
    'ChatResponse',
    'ParsedOk',
    'ParseError',
    'parse_payload'
]
