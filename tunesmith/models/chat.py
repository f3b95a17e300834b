"""
Chat assistant data models.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from .song import Song

@dataclass(frozen=True)
class ChatMessage:
    """One turn of the ideation chat."""
    role: str                            # "user" or "assistant"
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}

@dataclass
class ChatPlaylistContext:
    """The playlist the user is chatting about, if any."""
    id: str
    name: str
    description: Optional[str] = None
    songs: List[Song] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "songs": [song.to_dict() for song in self.songs]
        }

@dataclass
class ChatSongSuggestion:
    """A song example from the assistant, matched to the catalog when possible."""
    id: str
    title: str
    artist: str
    album: Optional[str] = None
    preview_url: Optional[str] = None
    uri: Optional[str] = None
    spotify_url: Optional[str] = None
    image_url: Optional[str] = None
    preview_unavailable_reason: Optional[str] = None   # auth_required, no_preview, error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "preview_url": self.preview_url,
            "uri": self.uri,
            "spotify_url": self.spotify_url,
            "image_url": self.image_url,
            "preview_unavailable_reason": self.preview_unavailable_reason
        }

@dataclass
class ChatSuggestionResult:
    """Assistant reply with theme tags and resolved song suggestions."""
    reply: str
    theme_tags: List[str] = field(default_factory=list)
    song_examples: List[str] = field(default_factory=list)
    song_suggestions: List[ChatSongSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "theme_tags": self.theme_tags,
            "song_examples": self.song_examples,
            "song_suggestions": [suggestion.to_dict() for suggestion in self.song_suggestions]
        }
