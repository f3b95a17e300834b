"""
Playlist and chat generation with the language model.

Prompts only describe the expected JSON shape; every response is validated
through the schemas in ``tunesmith.models.llm_responses`` before use.
"""

import json
import logging
from typing import List, Optional, Sequence

from tunesmith.api.base_client import LLMResponseError
from tunesmith.api.gemini_client import GeminiClient
from tunesmith.models.song import Playlist, LikedSong
from tunesmith.models.chat import ChatMessage, ChatPlaylistContext, ChatSuggestionResult
from tunesmith.models.llm_responses import (
    ChatResponse,
    ParseError,
    PlaylistBatch,
    PlaylistEntry,
    parse_payload
)
from tunesmith.utils.validators import sanitize_string_array, validate_prompt

logger = logging.getLogger(__name__)

MAX_THEME_TAGS = 8
MAX_SONG_EXAMPLES = 8
PROMPT_CONTEXT_SONGS = 40

PLAYLISTS_PROMPT = """You are an inventive AI DJ building playlists from a listener's liked songs.

Create 5-7 playlists of 15-30 songs each. Give every playlist a catchy name and a short,
engaging description. Go beyond plain genre or era buckets: moods, story arcs, imagined
scenes and unexpected connections are all welcome. Mix well-known and lesser-known tracks.

Return only a JSON array of objects shaped like:
{{"name": "...", "description": "...", "songs": [{{"title": "...", "artist": "..."}}]}}

Liked songs:
{liked_songs}
"""

CUSTOM_PROMPT = """You are an inventive AI DJ. Build one playlist for this request:

"{prompt}"

Use 20-25 songs that fit the theme, a catchy name and a description of at most 50 words.
Include a few songs by artists the request mentions, allow at most 3 songs per artist,
mix in lesser-known artists from several countries, and keep the mood consistent.

Return only a JSON object shaped like:
{{"name": "...", "description": "...", "songs": [{{"title": "...", "artist": "...", "country": "..."}}]}}
"""

CHAT_PROMPT = """You are a playlist ideation assistant. Help the user shape playlist ideas,
moods and storylines, and suggest concrete artists and tracks when it helps.
{playlist_section}
Conversation so far:
{transcript}

Reply to the most recent user message in the language the user wrote in.

Return only a JSON object shaped like:
{{"reply": "1-3 sentence reply", "themeTags": ["short mood tags"], "songExamples": ["Song Title - Artist"]}}

Use at most 6 theme tags and 12 song examples, without duplicates; use [] when you have none.
"""

def _playlist_section(context: Optional[ChatPlaylistContext]) -> str:
    if not context:
        return ""

    lines = ["", "The user wants to enhance this existing playlist:", f"Name: {context.name}"]
    if context.description:
        lines.append(f"Description: {context.description}")
    lines.append(f"Song count: {len(context.songs)}")
    highlights = [f"- {song.title} - {song.artist}" for song in context.songs[:PROMPT_CONTEXT_SONGS]]
    if highlights:
        lines.append("Current tracklist highlights:")
        lines.extend(highlights)
    return "\n".join(lines) + "\n"

class PlaylistAI:
    """Language-model collaborator for playlists and chat replies."""

    def __init__(self, llm: GeminiClient):
        self.llm = llm

    async def generate_playlists(
        self,
        liked_songs: Sequence[LikedSong],
        model_name: Optional[str] = None
    ) -> List[Playlist]:
        """
        Generate a batch of themed playlists from the user's liked songs.

        Raises:
            LLMResponseError: If the response is not a list of playlists
        """
        logger.info(f"Generating playlists{f' with model {model_name}' if model_name else ''}")
        library = [{"name": song.name, "artist": song.artist} for song in liked_songs]
        prompt = PLAYLISTS_PROMPT.format(liked_songs=json.dumps(library, ensure_ascii=False))

        response = await self.llm.generate_json(prompt, model_name)
        parsed = parse_payload(PlaylistBatch, PlaylistBatch.wrap(response))
        if isinstance(parsed, ParseError):
            raise LLMResponseError(f"Unexpected playlist response: {parsed.reason}")

        playlists = [entry.to_playlist() for entry in parsed.value.playlists]
        logger.info(f"Generated {len(playlists)} playlists")
        return playlists

    async def generate_custom_playlist(self, prompt: str, model_name: Optional[str] = None) -> Playlist:
        """
        Generate one playlist from a free-text prompt.

        Raises:
            ValidationError: If the prompt is empty
            LLMResponseError: If the response is not a playlist
        """
        prompt = validate_prompt(prompt)
        logger.info("Generating custom playlist")

        response = await self.llm.generate_json(CUSTOM_PROMPT.format(prompt=prompt), model_name)
        parsed = parse_payload(PlaylistEntry, response)
        if isinstance(parsed, ParseError):
            raise LLMResponseError(f"Unexpected playlist response: {parsed.reason}")

        return parsed.value.to_playlist()

    async def generate_chat_reply(
        self,
        messages: Sequence[ChatMessage],
        playlist_context: Optional[ChatPlaylistContext] = None,
        model_name: Optional[str] = None
    ) -> ChatSuggestionResult:
        """
        Ask the model for a chat reply with theme tags and song examples.

        Malformed tag or example arrays fall back to empty lists; a missing reply
        raises ``LLMResponseError``.
        """
        transcript = "\n".join(
            f"{'Assistant' if message.role == 'assistant' else 'User'}: {message.content}"
            for message in messages
        )
        prompt = CHAT_PROMPT.format(playlist_section=_playlist_section(playlist_context), transcript=transcript)

        response = await self.llm.generate_json(prompt, model_name)
        parsed = parse_payload(ChatResponse, response)
        if isinstance(parsed, ParseError):
            raise LLMResponseError(f"Model response did not contain a reply: {parsed.reason}")

        return ChatSuggestionResult(
            reply=parsed.value.reply,
            theme_tags=sanitize_string_array(parsed.value.theme_tags, MAX_THEME_TAGS),
            song_examples=sanitize_string_array(parsed.value.song_examples, MAX_SONG_EXAMPLES)
        )
