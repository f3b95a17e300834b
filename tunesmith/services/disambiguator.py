"""
LLM-assisted disambiguation of songs the matcher could not place.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from tunesmith.api.gemini_client import GeminiClient
from tunesmith.models.song import Song, Playlist
from tunesmith.models.candidate import DisambiguationResult, UnresolvedTrackSelection
from tunesmith.models.llm_responses import DisambiguationResponse, ParseError, parse_payload

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are a meticulous music curator finalizing a streaming playlist.

Some requested songs could not be matched to catalog tracks automatically.
For each unresolved entry, pick the candidate URI that is the requested song, preferring
candidates whose title and primary artist both align with the request. Use null when no
candidate is the requested song. Never return a URI that is not listed for that entry.

Return only JSON with this shape:
{{"choices": [{{"index": <number>, "selectedUri": "<candidate uri>" | null}}]}}

Data:
{payload}
"""

def build_disambiguation_payload(
    playlist: Playlist,
    unresolved: Sequence[UnresolvedTrackSelection]
) -> Dict[str, Any]:
    """Context sent to the model: playlist name/description and every unresolved entry."""
    return {
        "playlist": {
            "name": playlist.name,
            "description": playlist.description or ""
        },
        "unresolved": [item.to_prompt_dict() for item in unresolved]
    }

class Disambiguator:
    """Asks the language model to choose among offered candidates."""

    def __init__(self, llm: GeminiClient):
        self.llm = llm

    def build_prompt(self, playlist: Playlist, unresolved: Sequence[UnresolvedTrackSelection]) -> str:
        payload = build_disambiguation_payload(playlist, unresolved)
        return PROMPT_TEMPLATE.format(payload=json.dumps(payload, ensure_ascii=False))

    async def resolve_unresolved_tracks(
        self,
        playlist: Playlist,
        unresolved: Sequence[UnresolvedTrackSelection],
        model_name: Optional[str] = None
    ) -> DisambiguationResult:
        """
        Resolve deferred songs with the model's help.

        Args:
            playlist: The playlist the songs belong to (left unchanged)
            unresolved: Entries produced by the resolution pipeline
            model_name: Optional model override

        Returns:
            DisambiguationResult with ``uris`` aligned to ``playlist.songs`` and a
            copy of the playlist whose matched songs carry the candidate's title and artist
        """
        if not unresolved:
            return DisambiguationResult(uris=[], resolved_count=0, playlist=playlist)

        response = await self.llm.generate_json(self.build_prompt(playlist, unresolved), model_name)

        parsed = parse_payload(DisambiguationResponse, response)
        if isinstance(parsed, ParseError):
            logger.warning(f"Ignoring disambiguation response for '{playlist.name}': {parsed.reason}")
            return DisambiguationResult(uris=[None] * len(playlist.songs), resolved_count=0, playlist=playlist)

        by_index = {item.index: item for item in unresolved}
        uris: List[Optional[str]] = [None] * len(playlist.songs)
        songs: List[Song] = list(playlist.songs)
        resolved_count = 0
        discarded = 0

        for choice in parsed.value.valid_choices():
            if not choice.selected_uri:
                continue

            target = by_index.get(choice.index)
            candidate = target.candidate_for(choice.selected_uri) if target else None
            if candidate is None or not 0 <= choice.index < len(songs):
                discarded += 1
                continue
            if uris[choice.index]:
                continue

            uris[choice.index] = candidate.uri
            songs[choice.index] = Song(
                title=candidate.title,
                artist=candidate.artist,
                country=songs[choice.index].country
            )
            resolved_count += 1

        if discarded:
            logger.warning(f"Discarded {discarded} choice(s) referencing unknown entries or unoffered URIs")
        logger.info(f"Disambiguation matched {resolved_count}/{len(unresolved)} tracks for '{playlist.name}'")

        return DisambiguationResult(
            uris=uris,
            resolved_count=resolved_count,
            playlist=Playlist(name=playlist.name, description=playlist.description, songs=songs)
        )
