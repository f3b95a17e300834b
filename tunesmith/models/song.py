"""
Song and playlist data models.
Songs are the request descriptors produced by the language model or typed by a user.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional, List

MAX_PLAYLIST_NAME_LENGTH = 100
MAX_PLAYLIST_DESCRIPTION_LENGTH = 300

@dataclass(frozen=True)
class Song:
    """A requested song; identity is structural."""
    title: str
    artist: str
    country: Optional[str] = None       # Artist's country, when the model provides it

    @property
    def display_name(self) -> str:
        """Get display name for the song."""
        return f"{self.title} - {self.artist}"

    @property
    def is_complete(self) -> bool:
        """Both title and artist are present."""
        return bool(self.title and self.title.strip() and self.artist and self.artist.strip())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = {"title": self.title, "artist": self.artist}
        if self.country:
            data["country"] = self.country
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Song':
        """Create Song from dictionary representation."""
        return cls(
            title=str(data.get("title") or data.get("name") or "").strip(),
            artist=str(data.get("artist") or data.get("artistName") or "").strip(),
            country=data.get("country") or None
        )

@dataclass
class Playlist:
    """A named list of requested songs."""
    name: str
    description: str = ""
    songs: List[Song] = field(default_factory=list)

    def sanitized(self) -> 'Playlist':
        """Return a copy with trimmed, length-capped name and description."""
        return Playlist(
            name=(self.name or "").strip()[:MAX_PLAYLIST_NAME_LENGTH],
            description=(self.description or "").strip()[:MAX_PLAYLIST_DESCRIPTION_LENGTH],
            songs=list(self.songs)
        )

    def with_song(self, index: int, song: Song) -> 'Playlist':
        """Return a copy with the song at ``index`` replaced."""
        songs = list(self.songs)
        songs[index] = song
        return replace(self, songs=songs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert playlist to dictionary representation."""
        return {
            "name": self.name,
            "description": self.description,
            "songs": [song.to_dict() for song in self.songs]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        """Create Playlist from dictionary representation."""
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            songs=[Song.from_dict(song) for song in data.get("songs", []) if isinstance(song, dict)]
        )

@dataclass
class LikedSong:
    """A track from the user's library."""
    name: str
    artist: str
    id: str
    artist_id: Optional[str] = None
    artist_ids: List[str] = field(default_factory=list)

    @property
    def primary_artist_id(self) -> Optional[str]:
        """First credited artist, used for genre lookup."""
        return self.artist_id or (self.artist_ids[0] if self.artist_ids else None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "artist": self.artist,
            "id": self.id,
            "artist_id": self.artist_id,
            "artist_ids": self.artist_ids
        }

    @classmethod
    def from_spotify_data(cls, saved_item: Dict[str, Any]) -> 'LikedSong':
        """Create LikedSong from one item of the saved-tracks endpoint."""
        track = saved_item.get("track") or {}
        artists = track.get("artists") or []
        artist_ids = [artist["id"] for artist in artists if artist.get("id")]

        return cls(
            name=track.get("name", ""),
            artist=artists[0].get("name", "") if artists else "",
            id=track.get("id", ""),
            artist_id=artists[0].get("id") if artists else None,
            artist_ids=artist_ids
        )

@dataclass
class GenrePlaylist:
    """Liked songs grouped under one genre label."""
    key: str
    genre: str
    name: str
    description: str
    songs: List[Song] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.songs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "genre": self.genre,
            "name": self.name,
            "description": self.description,
            "count": self.count,
            "songs": [song.to_dict() for song in self.songs]
        }
