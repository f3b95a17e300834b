"""
Pydantic schemas for JSON returned by the language model.

Model output is never trusted directly: ``parse_payload`` validates it into
``ParsedOk`` or reports a ``ParseError`` the caller can fall back on.
"""

from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, field_validator
from pydantic import ValidationError as SchemaValidationError

from .song import Song, Playlist

M = TypeVar("M", bound=BaseModel)

def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""

class SongEntry(BaseModel):
    """One suggested song; incomplete entries are dropped on conversion."""
    model_config = ConfigDict(extra="ignore")

    title: str = Field("", validation_alias=AliasChoices("title", "name"))
    artist: str = Field("", validation_alias=AliasChoices("artist", "artistName"))
    country: Optional[str] = None

    @field_validator("title", "artist", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _text(value)

    @field_validator("country", mode="before")
    @classmethod
    def _coerce_country(cls, value: Any) -> Optional[str]:
        return _text(value) or None

    def to_song(self) -> Optional[Song]:
        song = Song(title=self.title, artist=self.artist, country=self.country)
        return song if song.is_complete else None

class PlaylistEntry(BaseModel):
    """One playlist as described by the model."""
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str = ""
    songs: List[SongEntry] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("playlist name must not be empty")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return _text(value)

    def to_playlist(self) -> Playlist:
        songs = [entry.to_song() for entry in self.songs]
        return Playlist(
            name=self.name,
            description=self.description,
            songs=[song for song in songs if song is not None]
        ).sanitized()

class PlaylistBatch(BaseModel):
    """Several playlists; accepts a bare array or ``{"playlists": [...]}``."""
    playlists: List[PlaylistEntry]

    @classmethod
    def wrap(cls, data: Any) -> Any:
        return {"playlists": data} if isinstance(data, list) else data

class TrackChoice(BaseModel):
    """The model's pick for one unresolved entry; ``None`` means no match."""
    model_config = ConfigDict(extra="ignore")

    index: StrictInt
    selected_uri: Optional[str] = Field(None, validation_alias=AliasChoices("selectedUri", "selected_uri", "uri"))

    @field_validator("selected_uri", mode="before")
    @classmethod
    def _coerce_uri(cls, value: Any) -> Optional[str]:
        return _text(value) or None

class DisambiguationResponse(BaseModel):
    """Choices are kept raw so each one can be validated on its own."""
    model_config = ConfigDict(extra="ignore")

    choices: List[Any] = Field(default_factory=list)

    def valid_choices(self) -> List[TrackChoice]:
        parsed = []
        for choice in self.choices:
            result = parse_payload(TrackChoice, choice)
            if isinstance(result, ParsedOk):
                parsed.append(result.value)
        return parsed

class ChatResponse(BaseModel):
    """Assistant reply; tag arrays are sanitized by the caller."""
    model_config = ConfigDict(extra="ignore")

    reply: str
    theme_tags: Any = Field(None, validation_alias=AliasChoices("themeTags", "tags"))
    song_examples: Any = Field(None, validation_alias=AliasChoices("songExamples", "songTags"))

    @field_validator("reply")
    @classmethod
    def _require_reply(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reply must not be empty")
        return value

@dataclass(frozen=True)
class ParsedOk(Generic[M]):
    value: M

@dataclass(frozen=True)
class ParseError:
    reason: str

ParseResult = Union[ParsedOk, ParseError]

def parse_payload(schema: Type[M], data: Any) -> ParseResult:
    """Validate ``data`` against ``schema`` without raising."""
    try:
        return ParsedOk(schema.model_validate(data))
    except SchemaValidationError as e:
        return ParseError(reason=f"{schema.__name__}: {e.error_count()} validation error(s): {e.errors()[0]['msg']}")
