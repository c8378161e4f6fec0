"""
playlist-router: Route the tracks of a Spotify playlist into filtered child playlists.

A user keeps one hand-curated "base" playlist and defines "child" playlists,
each with filter rules (popularity range, genres, release year, keywords...).
A sync reads every track of the base playlist and rebuilds each child's
Spotify playlist so it contains exactly the tracks matching its rules.

Architecture:
    The sync engine runs as a single sequential pipeline:

    Aggregate (sync/aggregator.py):
        - Page through the base playlist on Spotify
        - Fetch the tracks' artists for genres and popularity

    Route (sync/router.py, filters/):
        - Evaluate each child's FilterRules against every track
        - Children matching nothing are left untouched

    Reconcile (sync/orchestrator.py):
        - Delete the child's Spotify playlist, create a new one,
          store its ID, add the tracks in batches of 100
        - Record the outcome and request counters in a SyncEvent

Modules:
    core/       - Configuration, database, logging, exceptions
    spotify/    - Spotify API client and track models
    filters/    - Filter rules and the filter engine
    playlists/  - Base/child playlist records and management
    sync/       - Aggregator, router, orchestrator, sync events
    cli.py      - Command-line interface

Usage:
    Command Line:
        playlist-router base add "https://open.spotify.com/playlist/..."
        playlist-router child add <base-id> --name "Chill" --rules chill.yaml
        playlist-router sync <base-id>
        playlist-router sync --all

    Python API:
        from playlist_router.core import load_config, Database, setup_logging
        from playlist_router.spotify import SpotifyClient
        from playlist_router.sync import SyncOrchestrator

        config = load_config()
        setup_logging(config.storage.directory)
        database = Database(config.storage.database_path)

        client = SpotifyClient.init(
            config.spotify.client_id,
            config.spotify.client_secret,
            config.spotify.redirect_uri
        )

        orchestrator = SyncOrchestrator(client, database, database, database)
        event = orchestrator.sync_base_playlist(client.current_user_id(), base_id)

Dependencies:
    - spotipy: Spotify API client
    - rich-click: CLI with colors
    - tqdm: Progress bars
    - pyyaml: Configuration and rules files
    - python-dotenv: Credentials from .env
"""

__version__ = "0.1.0"
__author__ = "playlist-router"
__license__ = "MIT"

# Convenience imports for common usage
from playlist_router.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    PlaylistRouterError,
    SpotifyError,
    SyncError,
    get_logger,
    load_config,
    setup_logging,
)
from playlist_router.filters import FilterEngine, FilterRules
from playlist_router.playlists import BasePlaylist, ChildPlaylist, PlaylistManager
from playlist_router.spotify import SpotifyClient, Track
from playlist_router.sync import SyncEvent, SyncOrchestrator, SyncStatus

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "PlaylistRouterError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "SyncError",
    # Models and services
    "BasePlaylist",
    "ChildPlaylist",
    "FilterEngine",
    "FilterRules",
    "PlaylistManager",
    "SpotifyClient",
    "SyncEvent",
    "SyncOrchestrator",
    "SyncStatus",
    "Track",
]
