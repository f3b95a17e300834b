"""
Track resolution data models.
Candidates are built from catalog search results and carried to the
disambiguation pass when the matcher cannot decide on its own.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from .song import Song, Playlist

_YEAR_PATTERN = re.compile(r"^(\d{4})")

@dataclass(frozen=True)
class TrackSearchCandidate:
    """One catalog search result offered for review."""
    uri: str
    title: str
    artist: str                          # All credited artists, comma separated
    album: Optional[str] = None
    popularity: Optional[int] = None     # Popularity score (0-100)
    preview_url: Optional[str] = None
    explicit: Optional[bool] = None
    duration_ms: Optional[int] = None
    release_year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert candidate to dictionary representation."""
        return {
            "uri": self.uri,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "popularity": self.popularity,
            "preview_url": self.preview_url,
            "explicit": self.explicit,
            "duration_ms": self.duration_ms,
            "release_year": self.release_year
        }

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Fields shown to the language model during disambiguation."""
        return {
            "uri": self.uri,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "popularity": self.popularity,
            "explicit": self.explicit,
            "durationMs": self.duration_ms,
            "releaseYear": self.release_year
        }

    @classmethod
    def from_spotify_data(cls, track: Optional[Dict[str, Any]]) -> Optional['TrackSearchCandidate']:
        """Create a candidate from a Spotify track object, or None if it lacks uri, name or artists."""
        if not track or not track.get("uri") or not track.get("name"):
            return None

        artist_names = ", ".join(
            artist.get("name") for artist in (track.get("artists") or [])
            if artist and artist.get("name")
        )
        if not artist_names:
            return None

        album = track.get("album") or {}
        release_year = None
        year_match = _YEAR_PATTERN.match(album.get("release_date") or "")
        if year_match:
            release_year = int(year_match.group(1))

        popularity = track.get("popularity")
        explicit = track.get("explicit")
        duration_ms = track.get("duration_ms")

        return cls(
            uri=track["uri"],
            title=track["name"],
            artist=artist_names,
            album=album.get("name") or None,
            popularity=popularity if isinstance(popularity, int) and popularity >= 0 else None,
            preview_url=track.get("preview_url"),
            explicit=explicit if isinstance(explicit, bool) else None,
            duration_ms=duration_ms if isinstance(duration_ms, int) else None,
            release_year=release_year
        )

@dataclass
class UnresolvedTrackSelection:
    """A requested song without a confident automatic match."""
    index: int                           # Position in the original song list
    requested: Song
    search_query: str
    candidates: List[TrackSearchCandidate] = field(default_factory=list)

    def candidate_for(self, uri: str) -> Optional[TrackSearchCandidate]:
        """Return the offered candidate with exactly this URI."""
        for candidate in self.candidates:
            if candidate.uri == uri:
                return candidate
        return None

    def to_prompt_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "requested": self.requested.to_dict(),
            "searchQuery": self.search_query,
            "candidates": [candidate.to_prompt_dict() for candidate in self.candidates]
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "requested": self.requested.to_dict(),
            "search_query": self.search_query,
            "candidates": [candidate.to_dict() for candidate in self.candidates]
        }

@dataclass
class ResolutionResult:
    """Output of the resolution pipeline; ``uris`` is aligned with the input songs."""
    uris: List[Optional[str]]
    unresolved: List[UnresolvedTrackSelection] = field(default_factory=list)

    @property
    def resolved_count(self) -> int:
        return sum(1 for uri in self.uris if uri)

@dataclass
class DisambiguationResult:
    """Output of the disambiguation pass."""
    uris: List[Optional[str]]
    resolved_count: int = 0
    playlist: Optional[Playlist] = None  # Copy with matched songs rewritten

def merge_uris(base: List[Optional[str]], overrides: List[Optional[str]]) -> List[Optional[str]]:
    """Overlay the non-empty entries of ``overrides`` onto ``base`` at the same index."""
    merged = list(base)
    for index, uri in enumerate(overrides):
        if uri and index < len(merged):
            merged[index] = uri
    return merged

def valid_uris(uris: List[Optional[str]]) -> List[str]:
    """Drop gaps and duplicates while keeping order."""
    seen = set()
    result = []
    for uri in uris:
        if uri and uri not in seen:
            seen.add(uri)
            result.append(uri)
    return result
