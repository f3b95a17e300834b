"""
Pytest configuration and shared fixtures for the tunesmith tests.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from tunesmith.config.settings import Settings
from tunesmith.models.song import Song, Playlist, LikedSong
from tunesmith.services.status_broadcaster import StatusBroadcaster
from tunesmith.utils.backoff import BackoffPolicy
from tunesmith.utils.request_queue import RequestQueue

class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)

def make_track(name, artists, uri=None, popularity=50, album="Test Album", release_date="2001-01-01"):
    """Spotify track object as returned by the search endpoint."""
    if isinstance(artists, str):
        artists = [artists]
    return {
        "id": (uri or f"spotify:track:{name}").split(":")[-1],
        "uri": uri if uri is not None else f"spotify:track:{name.replace(' ', '')}",
        "name": name,
        "artists": [{"name": artist, "id": f"id-{artist}"} for artist in artists],
        "album": {"name": album, "release_date": release_date, "images": []},
        "popularity": popularity,
        "explicit": False,
        "duration_ms": 200000,
        "preview_url": None,
        "external_urls": {"spotify": "https://open.spotify.com/track/x"}
    }

def search_response(*tracks):
    return {"tracks": {"items": list(tracks)}}

@pytest.fixture
def fake_sleep():
    return FakeSleep()

@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings with a temporary saved-playlist file and no Redis."""
    monkeypatch.delenv("REDIS_URL", raising=False)
    settings = Settings()
    settings.saved_playlists_path = str(tmp_path / "saved_playlists.json")
    settings.SPOTIFY_MARKET = "US"
    return settings

@pytest.fixture
def queue(fake_sleep):
    """Request queue without real pauses."""
    return RequestQueue(spacing_seconds=0.05, policy=BackoffPolicy(max_retries=5, initial_delay=1.0), sleep=fake_sleep)

@pytest.fixture
def mock_spotify_client():
    """Mock Spotify API client."""
    client = AsyncMock()
    client.search_tracks.return_value = search_response()
    client.get_artists.return_value = {"artists": []}
    return client

@pytest.fixture
def mock_llm():
    """Mock Gemini client."""
    llm = MagicMock()
    llm.generate_json = AsyncMock()
    llm.list_models = AsyncMock(return_value={"models": [], "default_model": "gemini-1.5-flash"})
    return llm

@pytest.fixture
def broadcaster():
    return StatusBroadcaster(heartbeat_seconds=0.01)

@pytest.fixture
def sample_song():
    return Song(title="Yesterday", artist="The Beatles")

@pytest.fixture
def sample_playlist():
    return Playlist(
        name="Morning Walk",
        description="Easy songs for the first coffee",
        songs=[
            Song(title="Yesterday", artist="The Beatles"),
            Song(title="Imagine", artist="Anonymous Cover Band", country="UK"),
        ]
    )

@pytest.fixture
def liked_songs():
    return [
        LikedSong(name="Dynamite", artist="BTS", id="t1", artist_id="a-bts", artist_ids=["a-bts"]),
        LikedSong(name="Creep", artist="Radiohead", id="t2", artist_id="a-radiohead", artist_ids=["a-radiohead"]),
        LikedSong(name="Paranoid Android", artist="Radiohead", id="t3", artist_id="a-radiohead",
                  artist_ids=["a-radiohead"]),
        LikedSong(name="Mystery", artist="Nobody", id="t4", artist_id="a-nobody", artist_ids=["a-nobody"]),
    ]

@pytest.fixture
def track_factory():
    """Builds Spotify track objects."""
    return make_track

@pytest.fixture
def search_results():
    """Wraps tracks in a search response body."""
    return search_response
