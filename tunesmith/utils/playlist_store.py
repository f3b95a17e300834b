"""
JSON persistence for the most recently generated playlist batch.
"""

import json
import logging
import os
from typing import List, Optional

from tunesmith.models.song import Playlist

logger = logging.getLogger(__name__)

class PlaylistStore:
    """Single-slot store: one file holds the last generated batch."""

    def __init__(self, path: str = "saved_playlists.json"):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Optional[List[Playlist]]:
        """
        Load the saved batch.

        Returns:
            The playlists, or None when nothing usable is saved
        """
        if not self.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load saved playlists from {self.path}: {e}")
            return None

        if not isinstance(data, list):
            logger.warning(f"Ignoring saved playlists at {self.path}: expected a list")
            return None

        playlists = [Playlist.from_dict(item) for item in data if isinstance(item, dict)]
        logger.info(f"Loaded {len(playlists)} saved playlists from {self.path}")
        return playlists

    def save(self, playlists: List[Playlist]) -> None:
        """Overwrite the saved batch."""
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump([playlist.to_dict() for playlist in playlists], f, indent=2, ensure_ascii=False)
        logger.info(f"Saved {len(playlists)} playlists to {self.path}")

    def clear(self) -> None:
        if self.exists():
            os.remove(self.path)
