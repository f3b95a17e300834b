#!/usr/bin/env python3
"""
tunesmith command line interface.

Resolves song lists to catalog tracks, groups liked songs by genre, generates
playlists with the language model and runs the web API.
"""

import os
import sys
import json
import asyncio
import argparse
from datetime import datetime

import aiohttp
import uvicorn

from tunesmith.api.base_client import APIError, AuthenticationError
from tunesmith.api.gemini_client import GeminiClient
from tunesmith.api.spotify_client import SpotifyClient
from tunesmith.config.settings import Settings, configure_logging
from tunesmith.models.song import Playlist
from tunesmith.models.candidate import merge_uris
from tunesmith.services.disambiguator import Disambiguator
from tunesmith.services.playlist_ai import PlaylistAI
from tunesmith.services.playlist_service import PlaylistService
from tunesmith.services.track_resolver import TrackResolver
from tunesmith.utils.backoff import BackoffPolicy
from tunesmith.utils.cache_manager import CacheManager
from tunesmith.utils.playlist_store import PlaylistStore
from tunesmith.utils.request_queue import RequestQueue
from tunesmith.utils.validators import ValidationError, sanitize_songs, validate_playlist_data

OUTPUT_DIR = "output"

def get_output_path(filename=None, kind="playlists"):
    """Output path inside the output directory, timestamped when no name is given."""
    os.makedirs(OUTPUT_DIR, exist_ok=True)

    if filename:
        if os.path.dirname(filename):
            return filename
        return os.path.join(OUTPUT_DIR, filename)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(OUTPUT_DIR, f"{kind}_{timestamp}.json")

def write_json(data, filename=None, kind="playlists"):
    output_path = get_output_path(filename, kind)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    print(f"\n💾 Saved to: {output_path}")
    return output_path

def load_playlist_file(path):
    """
    Read songs to resolve from a JSON file.

    Accepts either a playlist object ``{"name", "description", "songs"}`` or a
    bare list of ``{"title", "artist"}`` entries.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        name = os.path.splitext(os.path.basename(path))[0]
        return Playlist(name=name, description="", songs=sanitize_songs(data))
    return validate_playlist_data(data)

def build_queue(settings):
    return RequestQueue(
        spacing_seconds=settings.queue.spacing_seconds,
        policy=BackoffPolicy(
            max_retries=settings.queue.max_retries,
            initial_delay=settings.queue.initial_delay_seconds
        )
    )

def get_access_token(args, settings):
    token = getattr(args, "token", None) or settings.SPOTIFY_ACCESS_TOKEN
    if not token:
        print("❌ No Spotify access token. Pass --token or set SPOTIFY_ACCESS_TOKEN.")
    return token

def check_settings(args, settings):
    """Verify the environment provides what the chosen command consumes."""
    command = args.command
    needs_llm = (
        (command == 'resolve' and args.disambiguate)
        or (command == 'generate' and (args.model or not PlaylistStore(settings.saved_playlists_path).exists()))
    )
    needs_token = command in ('resolve', 'genres', 'generate') and not getattr(args, 'token', None)

    try:
        settings.validate(require_llm=bool(needs_llm), require_access_token=needs_token)
    except ValueError as e:
        print(f"❌ {e}")
        return False
    return True

def display_playlist_summary(playlist, uris=None):
    """Display a summary of a playlist and, when given, its resolved URIs."""
    print("\n" + "=" * 60)
    print(f"🎵 {playlist.name}")
    print("=" * 60)
    if playlist.description:
        print(f"Description: {playlist.description}")
    print(f"Total Songs: {len(playlist.songs)}")

    print("-" * 60)
    for i, song in enumerate(playlist.songs[:20], 1):
        marker = ""
        if uris is not None:
            marker = "✅" if i - 1 < len(uris) and uris[i - 1] else "❓"
        print(f"{i:2d}. {marker} {song.title} - {song.artist}")

    if len(playlist.songs) > 20:
        print(f"    ... and {len(playlist.songs) - 20} more songs")
    print("-" * 60)

async def resolve_songs(args, settings):
    """Resolve a song file to track URIs, optionally asking the model about uncertain songs."""
    try:
        playlist = load_playlist_file(args.songs_file)
    except FileNotFoundError:
        print(f"❌ File '{args.songs_file}' not found")
        return 1
    except (ValueError, ValidationError) as e:
        print(f"❌ Invalid song file: {e}")
        return 1

    token = get_access_token(args, settings)
    if not token:
        return 1

    print(f"🔎 Resolving {len(playlist.songs)} songs from '{playlist.name}'...")

    async with aiohttp.ClientSession() as session:
        client = SpotifyClient(access_token=token, base_url=settings.spotify.base_url, session=session)
        resolver = TrackResolver(
            client,
            build_queue(settings),
            config=settings.resolution,
            market=settings.SPOTIFY_MARKET
        )

        try:
            result = await resolver.resolve_tracks(playlist.songs, playlist.name)
            uris = result.uris
            unresolved = result.unresolved

            if args.disambiguate and unresolved:
                print(f"🤖 Asking the model about {len(unresolved)} uncertain songs...")
                llm = GeminiClient(
                    api_key=settings.GEMINI_API_KEY,
                    default_model=settings.GEMINI_DEFAULT_MODEL,
                    base_url=settings.gemini.base_url,
                    timeout=settings.gemini.timeout,
                    session=session
                )
                review = await Disambiguator(llm).resolve_unresolved_tracks(playlist, unresolved, args.model)
                uris = merge_uris(uris, review.uris)
                playlist = review.playlist or playlist
                unresolved = [item for item in unresolved if not uris[item.index]]
                print(f"✅ Model matched {review.resolved_count} more songs")
        except AuthenticationError as e:
            print(f"❌ Spotify authentication failed: {e}")
            return 1
        except APIError as e:
            print(f"❌ Error resolving songs: {e}")
            return 1

    display_playlist_summary(playlist, uris)
    resolved = sum(1 for uri in uris if uri)
    print(f"📊 {resolved}/{len(uris)} songs resolved, {len(unresolved)} unresolved")

    write_json({
        "playlist": playlist.to_dict(),
        "uris": uris,
        "unresolved": [item.to_dict() for item in unresolved]
    }, args.output, kind="resolved")
    return 0

async def _run_with_service(args, settings, operation):
    token = get_access_token(args, settings)
    if not token:
        return None

    cache = CacheManager(redis_url=settings.cache.redis_url, default_ttl=settings.cache.default_ttl)
    await cache.connect()
    try:
        async with aiohttp.ClientSession() as session:
            client = SpotifyClient(access_token=token, base_url=settings.spotify.base_url, session=session)
            llm = GeminiClient(
                api_key=settings.GEMINI_API_KEY,
                default_model=settings.GEMINI_DEFAULT_MODEL,
                base_url=settings.gemini.base_url,
                timeout=settings.gemini.timeout,
                session=session
            )
            service = PlaylistService(
                client,
                build_queue(settings),
                PlaylistAI(llm),
                Disambiguator(llm),
                PlaylistStore(settings.saved_playlists_path),
                cache=cache,
                settings=settings
            )
            return await operation(service)
    finally:
        await cache.close()

async def genre_playlists(args, settings):
    """Group the user's liked songs into genre playlists."""
    print("🎧 Fetching liked songs and artist genres...")
    try:
        playlists = await _run_with_service(args, settings, lambda service: service.build_genre_playlists())
    except AuthenticationError as e:
        print(f"❌ Spotify authentication failed: {e}")
        return 1
    except APIError as e:
        print(f"❌ Error building genre playlists: {e}")
        return 1

    if playlists is None:
        return 1

    print(f"\n🎼 {len(playlists)} genre playlists:")
    for playlist in playlists:
        print(f"  {playlist.genre}: {playlist.count} songs")

    write_json({
        "playlists": [playlist.to_dict() for playlist in playlists],
        "summary": {
            "totalPlaylists": len(playlists),
            "totalSongs": sum(playlist.count for playlist in playlists)
        }
    }, args.output, kind="genres")
    return 0

async def generate_playlists(args, settings):
    """Generate playlists from liked songs (or reuse the saved batch)."""
    print("🎵 Generating playlists from your liked songs...")
    try:
        playlists = await _run_with_service(
            args, settings, lambda service: service.generate_playlists(args.model)
        )
    except AuthenticationError as e:
        print(f"❌ Spotify authentication failed: {e}")
        return 1
    except APIError as e:
        print(f"❌ Error generating playlists: {e}")
        return 1

    if playlists is None:
        return 1

    for playlist in playlists:
        display_playlist_summary(playlist)

    print(f"\n💾 Saved batch: {settings.saved_playlists_path}")
    if args.output:
        write_json([playlist.to_dict() for playlist in playlists], args.output)
    return 0

def serve(args, settings):
    """Run the web API."""
    print(f"🚀 Starting tunesmith API on {args.host}:{args.port or settings.port}")
    uvicorn.run("tunesmith.app:app", host=args.host, port=args.port or settings.port, reload=args.reload)
    return 0

def main():
    """Main entry point with command line argument parsing."""
    parser = argparse.ArgumentParser(description='tunesmith: AI playlists resolved to real catalog tracks')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    resolve_parser = subparsers.add_parser('resolve', help='Resolve a song list to catalog tracks')
    resolve_parser.add_argument('songs_file', type=str, help='JSON file with a playlist or a list of songs')
    resolve_parser.add_argument('--disambiguate', action='store_true', help='Ask the model about uncertain songs')
    resolve_parser.add_argument('--model', type=str, help='Model used for disambiguation')
    resolve_parser.add_argument('--token', type=str, help='Spotify access token (default: SPOTIFY_ACCESS_TOKEN)')
    resolve_parser.add_argument('--output', type=str, help='Output file path')

    genres_parser = subparsers.add_parser('genres', help='Group liked songs into genre playlists')
    genres_parser.add_argument('--token', type=str, help='Spotify access token (default: SPOTIFY_ACCESS_TOKEN)')
    genres_parser.add_argument('--output', type=str, help='Output file path')

    generate_parser = subparsers.add_parser('generate', help='Generate playlists from liked songs')
    generate_parser.add_argument('--model', type=str, help='Model to use (skips the saved batch)')
    generate_parser.add_argument('--token', type=str, help='Spotify access token (default: SPOTIFY_ACCESS_TOKEN)')
    generate_parser.add_argument('--output', type=str, help='Also write the playlists to this file')

    serve_parser = subparsers.add_parser('serve', help='Run the web API')
    serve_parser.add_argument('--host', type=str, default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
    serve_parser.add_argument('--port', type=int, help='Port (default: PORT or 8000)')
    serve_parser.add_argument('--reload', action='store_true', help='Reload on code changes')

    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings)

    if not check_settings(args, settings):
        sys.exit(1)

    if args.command == 'resolve':
        exit_code = asyncio.run(resolve_songs(args, settings))
    elif args.command == 'genres':
        exit_code = asyncio.run(genre_playlists(args, settings))
    elif args.command == 'generate':
        exit_code = asyncio.run(generate_playlists(args, settings))
    elif args.command == 'serve':
        exit_code = serve(args, settings)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)

if __name__ == "__main__":
    main()
