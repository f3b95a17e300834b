"""
Spotify Web API client implementation.
Provides track search, artist lookup, library access, and playlist management
on behalf of an already authenticated user.
"""

import logging
from typing import Dict, Any, List, Optional

import aiohttp

from tunesmith.api.base_client import BaseAPIClient, MissingTokenError

logger = logging.getLogger(__name__)

MAX_ARTISTS_PER_REQUEST = 50
MAX_TRACKS_PER_ADD = 100

class SpotifyClient(BaseAPIClient):
    """Spotify Web API client using a user access token."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: str = "https://api.spotify.com/v1",
        timeout: int = 30,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize Spotify client.

        Args:
            access_token: OAuth access token of the current user
            base_url: Web API root
            timeout: Total request timeout in seconds
            session: Optional shared aiohttp session
        """
        super().__init__(base_url=base_url, timeout=timeout, session=session)
        self.access_token = access_token
        self.current_user_id: Optional[str] = None

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get authentication headers for API requests."""
        if not self.access_token:
            raise MissingTokenError()
        return {"Authorization": f"Bearer {self.access_token}"}

    async def search_tracks(
        self,
        query: str,
        limit: int = 20,
        market: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Search the catalog for tracks.

        Args:
            query: Search query string (field filters like ``track:`` allowed)
            limit: Maximum number of results (1-50)
            market: Optional ISO country code

        Returns:
            Raw response body shaped ``{"tracks": {"items": [...]}}``
        """
        params = {
            "q": query,
            "type": "track",
            "limit": max(1, min(limit, 50))
        }
        if market:
            params["market"] = market

        return await self._make_request("GET", "search", params=params)

    async def get_artists(self, artist_ids: List[str]) -> Dict[str, Any]:
        """
        Get several artists in one call.

        Args:
            artist_ids: Up to 50 Spotify artist IDs

        Returns:
            Raw response body shaped ``{"artists": [{"id", "genres", ...}]}``
        """
        if len(artist_ids) > MAX_ARTISTS_PER_REQUEST:
            raise ValueError(f"At most {MAX_ARTISTS_PER_REQUEST} artist IDs per request, got {len(artist_ids)}")
        if not artist_ids:
            return {"artists": []}

        return await self._make_request("GET", "artists", params={"ids": ",".join(artist_ids)})

    async def get_saved_tracks(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """Get one page of the user's liked songs."""
        params = {"limit": limit, "offset": offset}
        return await self._make_request("GET", "me/tracks", params=params)

    async def get_me(self) -> Dict[str, Any]:
        """Get current user profile information."""
        user_info = await self._make_request("GET", "me")
        self.current_user_id = user_info.get("id")
        return user_info

    async def get_user_playlists(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """Get one page of the current user's playlists."""
        params = {"limit": limit, "offset": offset}
        return await self._make_request("GET", "me/playlists", params=params)

    async def get_playlist(self, playlist_id: str) -> Dict[str, Any]:
        """Get a playlist with its first page of tracks."""
        return await self._make_request("GET", f"playlists/{playlist_id}")

    async def get_playlist_tracks(self, playlist_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        """Get one page of a playlist's tracks."""
        params = {"limit": limit, "offset": offset, "fields": "items(track(uri)),next,total"}
        return await self._make_request("GET", f"playlists/{playlist_id}/tracks", params=params)

    async def create_playlist(
        self,
        name: str,
        description: str = "",
        public: bool = False
    ) -> Dict[str, Any]:
        """
        Create a new playlist on the current user's account.

        Args:
            name: Playlist name
            description: Playlist description
            public: Whether playlist should be public

        Returns:
            Dictionary with playlist information
        """
        if not self.current_user_id:
            await self.get_me()

        data = {
            "name": name,
            "description": description,
            "public": public
        }
        return await self._make_request("POST", f"users/{self.current_user_id}/playlists", data=data)

    async def add_tracks_to_playlist(self, playlist_id: str, track_uris: List[str]) -> Dict[str, Any]:
        """
        Add up to 100 tracks to a playlist.

        Args:
            playlist_id: Spotify playlist ID
            track_uris: List of Spotify track URIs

        Returns:
            Dictionary with the new snapshot id
        """
        if len(track_uris) > MAX_TRACKS_PER_ADD:
            raise ValueError(f"At most {MAX_TRACKS_PER_ADD} tracks per request, got {len(track_uris)}")

        data = {"uris": track_uris}
        return await self._make_request("POST", f"playlists/{playlist_id}/tracks", data=data)

    async def change_playlist_details(self, playlist_id: str, **details: Any) -> Dict[str, Any]:
        """Update name, description or visibility of a playlist."""
        return await self._make_request("PUT", f"playlists/{playlist_id}", data=details)
