"""
Track matching utilities for fuzzy title and artist comparison.
Decides whether a catalog search result is the requested song, and ranks
near misses for review when it is not.
"""

import math
import re
import unicodedata
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from tunesmith.models.song import Song
from tunesmith.models.candidate import TrackSearchCandidate

CatalogTrack = Union[Dict[str, Any], TrackSearchCandidate]

_NON_ALNUM = re.compile(r"[\W_]+")
_PARENTHESIZED = re.compile(r"\(.*?\)")
_CONNECTORS = re.compile(r"\b(?:featuring|feat|ft|with|and)\b\.?|&|×|/", re.IGNORECASE)
_X_CONNECTOR = re.compile(r"\s+x\s+", re.IGNORECASE)
_E_CONNECTOR = re.compile(r"\s+e\s+", re.IGNORECASE)
_SEPARATORS = re.compile(r"[,;]+")

def normalize_for_match(value: Optional[str]) -> str:
    """Strip diacritics, lowercase, and collapse non-alphanumeric runs to single spaces."""
    if not value:
        return ""

    text = unicodedata.normalize("NFD", value)
    text = "".join(c for c in text if unicodedata.category(c) != "Mn")
    text = text.lower()
    return _NON_ALNUM.sub(" ", text).strip()

def extract_artist_tokens(artist: Optional[str]) -> List[str]:
    """Split a multi-artist credit into normalized artist names."""
    if not artist:
        return []

    cleaned = _PARENTHESIZED.sub(" ", artist)
    cleaned = _CONNECTORS.sub(",", cleaned)
    cleaned = _X_CONNECTOR.sub(",", cleaned)
    cleaned = _E_CONNECTOR.sub(",", cleaned)

    tokens = [normalize_for_match(part) for part in _SEPARATORS.split(cleaned)]
    return [token for token in tokens if token]

def _track_fields(track: CatalogTrack) -> Tuple[str, List[str], Optional[float]]:
    """Title, artist names and popularity of a catalog track or candidate."""
    if isinstance(track, TrackSearchCandidate):
        return track.title, [name.strip() for name in track.artist.split(",")], track.popularity

    artists = [artist.get("name") for artist in (track.get("artists") or []) if artist]
    return track.get("name") or "", [name for name in artists if name], track.get("popularity")

def _titles_overlap(candidate_title: str, requested_title: str) -> bool:
    return (
        candidate_title == requested_title
        or requested_title in candidate_title
        or candidate_title in requested_title
    )

def artists_overlap(candidate_artists: Sequence[str], requested_artist: Optional[str]) -> bool:
    """True if any requested artist token equals, contains, or is contained by a candidate artist."""
    requested_tokens = extract_artist_tokens(requested_artist)
    normalized_candidates = [normalize_for_match(name) for name in candidate_artists]
    normalized_candidates = [name for name in normalized_candidates if name]

    return any(
        candidate == token or token in candidate or candidate in token
        for token in requested_tokens
        for candidate in normalized_candidates
    )

class TrackMatcher:
    """Fuzzy matcher between requested songs and catalog tracks."""

    EXACT_TITLE_SCORE = 6.0
    PARTIAL_TITLE_SCORE = 4.0
    ARTIST_MATCH_SCORE = 5.0
    ARTIST_MISMATCH_PENALTY = -2.0
    POPULARITY_DIVISOR = 120.0

    def is_acceptable_match(self, track: Optional[CatalogTrack], song: Song) -> bool:
        """
        Check whether a catalog track is confidently the requested song.

        Args:
            track: Spotify track object (or a search candidate)
            song: Requested song with title and artist

        Returns:
            True when titles overlap and at least one artist token matches
        """
        if not track or not song or not song.title or not song.artist:
            return False

        title, artists, _ = _track_fields(track)
        candidate_title = normalize_for_match(title)
        requested_title = normalize_for_match(song.title)
        if not candidate_title or not requested_title:
            return False

        if not _titles_overlap(candidate_title, requested_title):
            return False

        return artists_overlap(artists, song.artist)

    def score_candidate(self, track: Optional[CatalogTrack], song: Song) -> float:
        """
        Score a near miss for review; ``-inf`` excludes the track.

        Title: +6 exact, +4 containment, excluded otherwise.
        Artist: +5 on token overlap, -2 when an artist was requested but none overlap.
        Popularity adds ``popularity / 120`` as a tie-breaker.
        """
        if not track or not song or not song.title:
            return -math.inf

        title, artists, popularity = _track_fields(track)
        candidate_title = normalize_for_match(title)
        requested_title = normalize_for_match(song.title)
        if not candidate_title or not requested_title:
            return -math.inf

        if candidate_title == requested_title:
            score = self.EXACT_TITLE_SCORE
        elif _titles_overlap(candidate_title, requested_title):
            score = self.PARTIAL_TITLE_SCORE
        else:
            return -math.inf

        if extract_artist_tokens(song.artist):
            if artists_overlap(artists, song.artist):
                score += self.ARTIST_MATCH_SCORE
            else:
                score += self.ARTIST_MISMATCH_PENALTY

        if isinstance(popularity, (int, float)) and popularity > 0:
            score += popularity / self.POPULARITY_DIVISOR

        return score

    def find_acceptable_match(self, tracks: Sequence[Dict[str, Any]], song: Song) -> Optional[Dict[str, Any]]:
        """First track, in catalog order, that is an acceptable match."""
        for track in tracks:
            if track and track.get("uri") and self.is_acceptable_match(track, song):
                return track
        return None

    def rank_candidates(
        self,
        tracks: Sequence[Dict[str, Any]],
        song: Song,
        limit: int = 10
    ) -> List[TrackSearchCandidate]:
        """
        Build review candidates from search results, best first.

        Excluded tracks are dropped; ties keep catalog order.
        """
        scored: List[Tuple[float, TrackSearchCandidate]] = []
        for track in tracks:
            candidate = TrackSearchCandidate.from_spotify_data(track)
            if candidate is None:
                continue
            score = self.score_candidate(track, song)
            if score == -math.inf:
                continue
            scored.append((score, candidate))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [candidate for _, candidate in scored[:limit]]
