"""tunesmith: AI-curated playlists matched back to Spotify tracks."""

__version__ = "1.0.0"
