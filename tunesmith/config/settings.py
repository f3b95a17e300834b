"""
Application settings and configuration management.
Handles environment variables, API configurations, and pipeline defaults.
"""

import os
import logging
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class APIConfig:
    """Configuration for external API services."""
    base_url: str
    timeout: int = 30
    max_retries: int = 3

@dataclass
class QueueConfig:
    """Configuration for the serial catalog request queue."""
    spacing_seconds: float = 0.05     # pause after every queued operation
    max_retries: int = 5              # retries on 429 before giving up
    initial_delay_seconds: float = 1.0

@dataclass
class ResolutionConfig:
    """Configuration for track resolution."""
    search_limit: int = 20
    max_candidates: int = 10
    delay_between_songs: float = 0.12
    fall_through_on_unmatched: bool = False

@dataclass
class GenreConfig:
    """Configuration for genre grouping."""
    artist_batch_size: int = 50
    batch_pause_seconds: float = 0.15

@dataclass
class CacheConfig:
    """Configuration for caching system."""
    redis_url: Optional[str] = None
    default_ttl: int = 3600           # 1 hour
    artist_genre_ttl: int = 604800    # 7 days

class Settings:
    """Main application settings."""

    def __init__(self):
        # Spotify API Configuration
        self.spotify = APIConfig(base_url="https://api.spotify.com/v1")
        self.SPOTIFY_MARKET = os.getenv("SPOTIFY_MARKET", "US")
        self.SPOTIFY_ACCESS_TOKEN = os.getenv("SPOTIFY_ACCESS_TOKEN")  # CLI only; the API reads the bearer header

        # Gemini API Configuration
        self.gemini = APIConfig(
            base_url="https://generativelanguage.googleapis.com/v1beta",
            timeout=120
        )
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
        self.GEMINI_DEFAULT_MODEL = os.getenv("GEMINI_DEFAULT_MODEL", "gemini-1.5-flash")

        # Pipeline Configuration
        self.queue = QueueConfig()
        self.resolution = ResolutionConfig()
        self.genre = GenreConfig()

        # Cache Configuration
        self.REDIS_URL = os.getenv("REDIS_URL")
        self.cache = CacheConfig(redis_url=self.REDIS_URL)

        # Persistence
        self.saved_playlists_path = os.getenv("SAVED_PLAYLISTS_PATH", "saved_playlists.json")

        # Server
        self.port = int(os.getenv("PORT", "8000"))

        # Logging Configuration
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def validate(self, require_llm: bool = False, require_access_token: bool = False) -> bool:
        """
        Validate that required configuration is present.

        Args:
            require_llm: Model-backed commands need GEMINI_API_KEY
            require_access_token: CLI commands without --token need SPOTIFY_ACCESS_TOKEN

        Raises:
            ValueError: Listing every missing variable
        """
        required_vars = []

        if require_llm and not self.GEMINI_API_KEY:
            required_vars.append("GEMINI_API_KEY")
        if require_access_token and not self.SPOTIFY_ACCESS_TOKEN:
            required_vars.append("SPOTIFY_ACCESS_TOKEN")

        if required_vars:
            raise ValueError(f"Missing required environment variables: {', '.join(required_vars)}")

        return True

def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format
    )
