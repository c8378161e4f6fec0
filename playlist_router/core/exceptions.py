"""
Exception classes for playlist-router.

Every error the package raises on purpose derives from PlaylistRouterError.
The subclasses tell the CLI which exit code to use and tell a failed sync
event which kind of failure it records.

Exception Hierarchy:
    PlaylistRouterError (base)
        ConfigError - Unusable config.yaml or environment
        DatabaseError - Record store issues
            NotFoundError - Record missing or owned by another user
        SpotifyError - A Spotify request failed
        SyncError - A sync attempt failed
            SyncConflictError - Another sync is in progress
            AggregationError - Fetching the base playlist failed
            RoutingError - Filter rules could not be evaluated
                FilterRulesError - Stored filter rules could not be parsed
            ReconciliationError - Rebuilding a child playlist failed
            SyncCancelledError - The caller cancelled the sync
"""


class PlaylistRouterError(Exception):
    """
    Root of the playlist-router exceptions; catch this to handle them all.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., playlist ids).

    Example:
        try:
            orchestrator.sync_base_playlist(user_id, base_id)
        except PlaylistRouterError as e:
            logger.error(f"Sync failed: {e.message}")
            if e.details:
                logger.debug("context: %s", e.details)
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Args:
            message: Shown to the user as is.
            details: Extra context for logs. Keys used across the package:
                     - 'base_playlist_id': Base playlist involved in the error
                     - 'child_playlist_id': Child playlist involved in the error
                     - 'original_error': str() of the wrapped exception
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(PlaylistRouterError):
    """
    The configuration cannot be used. Nothing runs without a valid one.

    Common causes:
        - --config points to a file that does not exist
        - the file is not a YAML mapping
        - Required fields missing (client_id, client_secret)
        - Invalid field values (e.g., page size above 100)
    """
    pass


class DatabaseError(PlaylistRouterError):
    """
    Raised when there's an issue with the SQLite record store.

    During a sync this is the "persistence failure" kind: when writing the
    final state of a sync event fails, it is logged and never replaces the
    error that made the sync fail.

    Common causes:
        - database file corrupted or locked
        - no write permission on the storage directory
        - Schema version mismatch
    """
    pass


class NotFoundError(DatabaseError):
    """
    Raised when a record does not exist or belongs to another user.

    Lookups are ownership-scoped, so "not yours" and "missing" are
    reported the same way.
    """
    pass


class SpotifyError(PlaylistRouterError):
    """
    A Spotify Web API request failed.

    The sync engine treats every SpotifyError as fatal for the current sync;
    there is no retry inside the engine.

    Attributes:
        is_auth_error: Spotify answered 401, or the client could not log in.
        is_rate_limit: True if Spotify answered 429.
        http_status: HTTP status returned by Spotify, when known.

    Example:
        raise SpotifyError(
            "Failed to delete playlist: not found",
            details={'playlist_id': playlist_id, 'http_status': 404},
            http_status=404
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_auth_error: bool = False,
        is_rate_limit: bool = False,
        http_status: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.is_rate_limit = is_rate_limit
        self.http_status = http_status


class SyncError(PlaylistRouterError):
    """
    Base class for failures of a sync attempt.

    Attributes:
        step: Name of the sync step that failed ("guard", "aggregate",
              "route", "delete", "create", "update", "add_tracks", ...).
        child_id: Child playlist being reconciled, if any.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        step: str | None = None,
        child_id: str | None = None
    ) -> None:
        super().__init__(message, details)
        self.step = step
        self.child_id = child_id


class SyncConflictError(SyncError):
    """
    Raised when a sync is already in progress for the base playlist.

    No sync event is created and no remote call is made.
    """

    def __init__(self, base_playlist_id: str, details: dict | None = None) -> None:
        super().__init__(
            f"Sync already in progress for base playlist {base_playlist_id}",
            details={"base_playlist_id": base_playlist_id, **(details or {})},
            step="guard"
        )
        self.base_playlist_id = base_playlist_id


class AggregationError(SyncError):
    """
    Raised when the tracks of the base playlist could not be fetched.

    There is no partial result. The counters describe how far the
    aggregation got so the sync event can record them.

    Attributes:
        tracks_fetched: Tracks accumulated before the failure.
        api_calls: Remote calls attempted, including the failed one.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        tracks_fetched: int = 0,
        api_calls: int = 0
    ) -> None:
        super().__init__(message, details, step="aggregate")
        self.tracks_fetched = tracks_fetched
        self.api_calls = api_calls


class RoutingError(SyncError):
    """
    Raised when a child's filter rules cannot be evaluated.

    Common causes:
        - Predicate on an attribute the router does not know
        - Range predicate on a categorical attribute (or vice versa)
        - Range with min greater than max
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        child_id: str | None = None
    ) -> None:
        super().__init__(message, details, step="route", child_id=child_id)


class FilterRulesError(RoutingError):
    """
    Raised when serialized filter rules cannot be parsed.

    Unparsable rules are never treated as "no rules": a child whose rules
    cannot be read fails the sync before any remote playlist is touched.
    """
    pass


class ReconciliationError(SyncError):
    """
    Raised when rebuilding a child's remote playlist fails.

    The step attribute says which part failed: "delete", "create",
    "update" (record store write) or "add_tracks".
    """
    pass


class SyncCancelledError(SyncError):
    """Raised when the caller's cancel check asks the sync to stop."""

    def __init__(self, step: str, child_id: str | None = None) -> None:
        super().__init__(
            f"Sync cancelled during step '{step}'",
            details={"step": step},
            step=step,
            child_id=child_id
        )
