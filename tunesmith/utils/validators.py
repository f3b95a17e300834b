"""
Input validation utilities for playlist, song and chat payloads.
"""

from typing import Dict, Any, List, Optional, Tuple
import re

from tunesmith.models.song import Song, Playlist
from tunesmith.models.chat import ChatMessage, ChatPlaylistContext

MAX_CHAT_MESSAGES = 12
MAX_CHAT_MESSAGE_LENGTH = 1200
MAX_CONTEXT_SONGS = 120
MAX_PROMPT_LENGTH = 2000

_PLAYLIST_PATTERNS = [
    re.compile(r"playlist/([A-Za-z0-9]{16,})", re.IGNORECASE),
    re.compile(r"spotify:playlist:([A-Za-z0-9]{16,})", re.IGNORECASE),
]
_BARE_PLAYLIST_ID = re.compile(r"^[A-Za-z0-9]{16,}$")
_TRACK_URI = re.compile(r"spotify:track:([A-Za-z0-9]{16,})", re.IGNORECASE)
_TRACK_URL = re.compile(r"track/([A-Za-z0-9]{16,})", re.IGNORECASE)

class ValidationError(Exception):
    """Exception raised for validation errors."""
    pass

def sanitize_string_array(value: Any, limit: int = 8) -> List[str]:
    """
    Keep trimmed, non-empty strings, de-duplicated case-insensitively.

    Args:
        value: Anything; non-lists yield an empty result
        limit: Maximum number of entries kept

    Returns:
        At most ``limit`` strings in first-seen order
    """
    if not isinstance(value, list):
        return []

    seen = set()
    result = []
    for entry in value:
        if not isinstance(entry, str):
            continue
        trimmed = entry.strip()
        if not trimmed or trimmed.lower() in seen:
            continue
        seen.add(trimmed.lower())
        result.append(trimmed)
        if len(result) >= limit:
            break

    return result

def _string_field(data: Dict[str, Any], *keys: str) -> str:
    """First string value among ``keys``, trimmed."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value.strip()
    return ""

def sanitize_songs(raw_songs: Any, limit: Optional[int] = None) -> List[Song]:
    """Songs with both title and artist; accepts ``title|name`` and ``artist|artistName``."""
    if not isinstance(raw_songs, list):
        return []

    songs = []
    for entry in raw_songs:
        if isinstance(entry, Song):
            song = entry
        elif isinstance(entry, dict):
            country = entry.get("country")
            song = Song(
                title=_string_field(entry, "title", "name"),
                artist=_string_field(entry, "artist", "artistName"),
                country=country.strip() or None if isinstance(country, str) else None
            )
        else:
            continue

        if not song.is_complete:
            continue
        songs.append(song)
        if limit is not None and len(songs) >= limit:
            break

    return songs

def normalize_chat_messages(raw_messages: Any) -> List[ChatMessage]:
    """Keep well-formed user/assistant turns, trimmed and capped, most recent last."""
    if not isinstance(raw_messages, list):
        return []

    normalized = []
    for entry in raw_messages:
        if not isinstance(entry, dict):
            continue

        role = entry.get("role")
        content = entry.get("content")
        if role not in ("user", "assistant") or not isinstance(content, str):
            continue

        trimmed = content.strip()
        if not trimmed:
            continue

        normalized.append(ChatMessage(role=role, content=trimmed[:MAX_CHAT_MESSAGE_LENGTH]))

    return normalized[-MAX_CHAT_MESSAGES:]

def sanitize_chat_playlist_context(raw: Any) -> Optional[ChatPlaylistContext]:
    """Playlist context for the chat, or None when id or name is missing."""
    if not isinstance(raw, dict):
        return None

    playlist_id = _string_field(raw, "id")
    name = _string_field(raw, "name")
    if not playlist_id or not name:
        return None

    description = raw.get("description")

    return ChatPlaylistContext(
        id=playlist_id,
        name=name,
        description=description.strip() if isinstance(description, str) else None,
        songs=sanitize_songs(raw.get("songs"), limit=MAX_CONTEXT_SONGS)
    )

def validate_latest_message(messages: List[ChatMessage]) -> None:
    """
    Require the conversation to end with a user turn.

    Raises:
        ValidationError: If there are no messages or the last one is not from the user
    """
    if not messages:
        raise ValidationError("Messages are required.")
    if messages[-1].role != "user":
        raise ValidationError("Last message must come from the user.")

def validate_prompt(prompt: Any) -> str:
    """Trimmed custom-playlist prompt."""
    if not isinstance(prompt, str):
        raise ValidationError("Prompt must be a string")

    prompt = prompt.strip()
    if not prompt:
        raise ValidationError("Prompt must not be empty.")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValidationError(f"Prompt too long (max {MAX_PROMPT_LENGTH} characters)")

    return prompt

def extract_spotify_playlist_id(reference: Optional[str]) -> Optional[str]:
    """
    Parse a playlist URL, ``spotify:playlist:`` URI, or bare id.

    Returns:
        The playlist id, or None when the reference is empty or unrecognized
    """
    if not reference:
        return None

    value = reference.strip()
    if not value:
        return None

    for pattern in _PLAYLIST_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1)

    if _BARE_PLAYLIST_ID.match(value):
        return value

    return None

def validate_playlist_data(playlist_data: Any) -> Playlist:
    """
    Validate a playlist payload.

    Args:
        playlist_data: Dictionary with name, description and songs

    Returns:
        Sanitized playlist keeping only complete songs

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(playlist_data, dict):
        raise ValidationError("Playlist data must be a dictionary")

    name = playlist_data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Playlist name must be a non-empty string")

    description = playlist_data.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("Playlist description must be a string")

    songs = playlist_data.get("songs", [])
    if not isinstance(songs, list):
        raise ValidationError("Songs must be a list")

    return Playlist(
        name=name,
        description=description or "",
        songs=sanitize_songs(songs)
    ).sanitized()

def normalize_track_reference(reference: Optional[str]) -> Optional[str]:
    """Canonical ``spotify:track:<id>`` for a track URI or URL, else None."""
    if not reference or not isinstance(reference, str):
        return None

    value = reference.strip()
    match = _TRACK_URI.search(value) or _TRACK_URL.search(value)
    if match:
        return f"spotify:track:{match.group(1)}"

    return None

def sanitize_selected_songs(raw: Any) -> List[Tuple[Song, Optional[str]]]:
    """
    User-picked songs for a custom playlist, each with its track URI if provided.

    Title is required; artist may be empty, in which case the song can only be
    placed through a provided URI.
    """
    if not isinstance(raw, list):
        return []

    selections = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue

        title = _string_field(entry, "title", "name")
        if not title:
            continue

        song = Song(title=title, artist=_string_field(entry, "artist", "artistName"))
        selections.append((song, normalize_track_reference(entry.get("uri"))))
        if len(selections) >= MAX_CONTEXT_SONGS:
            break

    return selections
