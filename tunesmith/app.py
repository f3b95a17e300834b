"""
FastAPI web interface for tunesmith.

This module is the composition root: it builds exactly one request queue,
status broadcaster and cache for the process and hands them to the
per-request playlist service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import aiohttp
import uvicorn
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import AliasChoices, BaseModel, Field

from tunesmith import __version__
from tunesmith.api.base_client import APIError, AuthenticationError
from tunesmith.api.gemini_client import GeminiClient
from tunesmith.api.spotify_client import SpotifyClient
from tunesmith.config.settings import Settings, configure_logging
from tunesmith.services.disambiguator import Disambiguator
from tunesmith.services.playlist_ai import PlaylistAI
from tunesmith.services.playlist_service import (
    NoPlaylistsCreatedError,
    NoTracksResolvedError,
    PlaylistService
)
from tunesmith.services.status_broadcaster import StatusBroadcaster, StatusContext
from tunesmith.utils.backoff import BackoffPolicy
from tunesmith.utils.cache_manager import CacheManager
from tunesmith.utils.playlist_store import PlaylistStore
from tunesmith.utils.request_queue import RequestQueue
from tunesmith.utils.validators import (
    ValidationError,
    normalize_chat_messages,
    sanitize_chat_playlist_context
)

logger = logging.getLogger(__name__)

class AppContainer:
    """Process-wide collaborators shared by every request."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.queue = RequestQueue(
            spacing_seconds=settings.queue.spacing_seconds,
            policy=BackoffPolicy(
                max_retries=settings.queue.max_retries,
                initial_delay=settings.queue.initial_delay_seconds
            )
        )
        self.broadcaster = StatusBroadcaster()
        self.cache = CacheManager(redis_url=settings.cache.redis_url, default_ttl=settings.cache.default_ttl)
        self.store = PlaylistStore(settings.saved_playlists_path)
        self.session: Optional[aiohttp.ClientSession] = None
        self.gemini = GeminiClient(
            api_key=settings.GEMINI_API_KEY,
            default_model=settings.GEMINI_DEFAULT_MODEL,
            base_url=settings.gemini.base_url,
            timeout=settings.gemini.timeout
        )
        self.ai = PlaylistAI(self.gemini)
        self.disambiguator = Disambiguator(self.gemini)

    async def startup(self):
        try:
            self.settings.validate(require_llm=True)
        except ValueError as e:
            logger.warning(f"{e}; model-backed routes will answer with an error")

        self.session = aiohttp.ClientSession()
        self.gemini.use_session(self.session)
        await self.cache.connect()
        logger.info(f"tunesmith {__version__} started (cache backend: {self.cache.backend})")

    async def shutdown(self):
        await self.cache.close()
        if self.session and not self.session.closed:
            await self.session.close()

    def spotify_client(self, access_token: Optional[str]) -> Optional[SpotifyClient]:
        if not access_token:
            return None
        return SpotifyClient(
            access_token=access_token,
            base_url=self.settings.spotify.base_url,
            timeout=self.settings.spotify.timeout,
            session=self.session
        )

    def playlist_service(self, client: Optional[SpotifyClient]) -> PlaylistService:
        return PlaylistService(
            client,
            self.queue,
            self.ai,
            self.disambiguator,
            self.store,
            broadcaster=self.broadcaster,
            cache=self.cache,
            settings=self.settings
        )

# Request models
class CustomPlaylistRequest(BaseModel):
    prompt: str = ""
    model: Optional[str] = None
    songs: Optional[List[Dict[str, Any]]] = None
    playlist_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("playlistId", "playlist_id", "playlistUrl")
    )

class ChatRequest(BaseModel):
    messages: List[Any] = Field(default_factory=list)
    model: Optional[str] = None
    playlist: Optional[Dict[str, Any]] = None

# Dependencies
def get_container(request: Request) -> AppContainer:
    return request.app.state.container

def get_access_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Catalog access token from an ``Authorization: Bearer`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

async def get_playlist_service(
    container: AppContainer = Depends(get_container),
    access_token: Optional[str] = Depends(get_access_token)
):
    client = container.spotify_client(access_token)
    try:
        yield container.playlist_service(client)
    finally:
        if client:
            await client.close()

def get_broadcaster(container: AppContainer = Depends(get_container)) -> StatusBroadcaster:
    return container.broadcaster

def _report_failure(broadcaster: StatusBroadcaster, context: Optional[StatusContext], error: Exception):
    if context:
        broadcaster.status_error(context, str(error) or error.__class__.__name__)

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application around a single container."""
    settings = settings or Settings()
    container = AppContainer(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await container.startup()
        try:
            yield
        finally:
            await container.shutdown()

    app = FastAPI(
        title="tunesmith",
        description="AI playlist generation, track resolution and publishing",
        version=__version__,
        lifespan=lifespan
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content={"error": str(exc), "login_required": True})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NoTracksResolvedError)
    async def no_tracks_handler(request: Request, exc: NoTracksResolvedError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(NoPlaylistsCreatedError)
    async def no_playlists_handler(request: Request, exc: NoPlaylistsCreatedError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        status_code = exc.status_code if exc.status_code in (403, 404) else 500
        logger.error(f"{request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.get("/")
    async def root():
        return {"message": "tunesmith API", "version": __version__}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "cache": container.cache.backend,
            "queue": {"pending": container.queue.pending_count, "processing": container.queue.is_processing},
            "subscribers": container.broadcaster.subscriber_count
        }

    @app.get("/status-stream")
    async def status_stream(broadcaster: StatusBroadcaster = Depends(get_broadcaster)):
        return StreamingResponse(
            broadcaster.stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}
        )

    @app.get("/models")
    async def list_models():
        return await container.gemini.list_models()

    @app.get("/liked-songs")
    async def liked_songs(
        service: PlaylistService = Depends(get_playlist_service),
        broadcaster: StatusBroadcaster = Depends(get_broadcaster)
    ):
        context = broadcaster.context_for("liked-songs")
        try:
            songs = await service.get_all_liked_songs(context)
        except Exception as e:
            _report_failure(broadcaster, context, e)
            raise
        return {"songs": [song.to_dict() for song in songs], "total": len(songs)}

    @app.get("/generate-playlists")
    async def generate_playlists(
        model: Optional[str] = Query(default=None),
        service: PlaylistService = Depends(get_playlist_service),
        broadcaster: StatusBroadcaster = Depends(get_broadcaster)
    ):
        context = broadcaster.context_for("generate-playlists")
        try:
            playlists = await service.generate_playlists(model, context)
        except Exception as e:
            _report_failure(broadcaster, context, e)
            raise
        return {"playlists": [playlist.to_dict() for playlist in playlists]}

    @app.get("/preview-playlists")
    async def preview_playlists(
        model: Optional[str] = Query(default=None),
        service: PlaylistService = Depends(get_playlist_service),
        broadcaster: StatusBroadcaster = Depends(get_broadcaster)
    ):
        context = broadcaster.context_for("preview-playlists")
        try:
            published = await service.publish_preview_playlists(model, context)
        except Exception as e:
            _report_failure(broadcaster, context, e)
            raise
        return {"playlists": [playlist.to_dict() for playlist in published]}

    @app.get("/genre-playlists")
    async def genre_playlists(
        service: PlaylistService = Depends(get_playlist_service),
        broadcaster: StatusBroadcaster = Depends(get_broadcaster)
    ):
        context = broadcaster.context_for("genre-playlists")
        try:
            playlists = await service.build_genre_playlists(context)
        except Exception as e:
            _report_failure(broadcaster, context, e)
            raise
        return {
            "playlists": [playlist.to_dict() for playlist in playlists],
            "summary": {
                "totalPlaylists": len(playlists),
                "totalSongs": sum(playlist.count for playlist in playlists)
            }
        }

    @app.post("/create-custom-playlist")
    async def create_custom_playlist(
        body: CustomPlaylistRequest,
        service: PlaylistService = Depends(get_playlist_service),
        broadcaster: StatusBroadcaster = Depends(get_broadcaster)
    ):
        context = broadcaster.context_for("custom-playlist")
        try:
            published = await service.create_custom_playlist(
                body.prompt,
                model_name=body.model,
                selected_songs=body.songs,
                playlist_reference=body.playlist_id,
                status_context=context
            )
        except Exception as e:
            _report_failure(broadcaster, context, e)
            raise
        return {"playlist": published.to_dict()}

    @app.post("/chat")
    async def chat(
        body: ChatRequest,
        service: PlaylistService = Depends(get_playlist_service)
    ):
        messages = normalize_chat_messages(body.messages)
        playlist_context = sanitize_chat_playlist_context(body.playlist)
        result = await service.suggest_for_chat(messages, playlist_context, body.model)
        return result.to_dict()

    return app

app = create_app()

if __name__ == "__main__":
    _settings = Settings()
    configure_logging(_settings)
    uvicorn.run(app, host="0.0.0.0", port=_settings.port)
