"""API clients for Spotify and the Gemini language model."""

from .base_client import (
    BaseAPIClient,
    APIError,
    RateLimitError,
    AuthenticationError,
    MissingTokenError,
    LLMResponseError,
    format_catalog_error
)
from .spotify_client import SpotifyClient
from .gemini_client import GeminiClient, parse_llm_json

__all__ = [
    'BaseAPIClient',
    'APIError',
    'RateLimitError',
    'AuthenticationError',
    'MissingTokenError',
    'LLMResponseError',
    'format_catalog_error',
    'SpotifyClient',
    'GeminiClient',
    'parse_llm_json'
]
