"""
Core module for playlist-router.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe SQLite record store
    - logger: Logging system with multiple outputs

Usage:
    from playlist_router.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        PlaylistRouterError, ConfigError, DatabaseError
    )
"""

from playlist_router.core.config import (
    Config,
    SpotifyConfig,
    StorageConfig,
    SyncConfig,
    load_config,
)
from playlist_router.core.database import Database
from playlist_router.core.exceptions import (
    AggregationError,
    ConfigError,
    DatabaseError,
    FilterRulesError,
    NotFoundError,
    PlaylistRouterError,
    ReconciliationError,
    RoutingError,
    SpotifyError,
    SyncCancelledError,
    SyncConflictError,
    SyncError,
)
from playlist_router.core.logger import (
    get_logger,
    log_sync_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "StorageConfig",
    "SyncConfig",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "PlaylistRouterError",
    "ConfigError",
    "DatabaseError",
    "NotFoundError",
    "SpotifyError",
    "SyncError",
    "SyncConflictError",
    "AggregationError",
    "RoutingError",
    "FilterRulesError",
    "ReconciliationError",
    "SyncCancelledError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_sync_failure",
    "shutdown_logging",
]
