"""
Sync orchestration: rebuild every child playlist of a base playlist.

Workflow of sync_base_playlist():

    1. Guard       Refuse if a sync of this base playlist is in progress
    2. Start       Persist a new in_progress SyncEvent
    3. Children    Load the active children (none: complete immediately)
    4. Aggregate   Read all tracks of the base playlist (once)
    5. Route       Compute the tracks of each child (once), then for each
                   routed child, in order:
                       a. delete its current Spotify playlist
                       b. create "[<base>] > <child>" (private)
                       c. store the new Spotify ID on the child record
                       d. add the tracks in batches of 100
    6. Finalize    completed, or failed with the error message

Every remote call made is counted in event.total_api_requests, including
the one that failed. The first failure aborts the remaining work; the
counters gathered so far stay on the failed event. A child that matches
no track is not touched at all.

Nothing is retried. A sync interrupted between delete and create leaves
that child without a Spotify playlist until the next successful sync.
"""

from typing import Callable

from tqdm import tqdm

from playlist_router.core.config import DEFAULT_PAGE_SIZE
from playlist_router.core.exceptions import (
    DatabaseError,
    PlaylistRouterError,
    ReconciliationError,
    SpotifyError,
    SyncCancelledError,
    SyncConflictError,
)
from playlist_router.core.logger import get_logger, log_sync_failure
from playlist_router.playlists.models import (
    BasePlaylist,
    ChildPlaylist,
    build_child_playlist_description,
    build_child_playlist_name,
)
from playlist_router.spotify.client import MAX_TRACKS_PER_ADD
from playlist_router.sync.aggregator import TrackAggregator
from playlist_router.sync.models import SyncEvent
from playlist_router.sync.router import TrackRouter
from playlist_router.sync.stores import (
    BasePlaylistStore,
    ChildPlaylistStore,
    PlaylistService,
    SyncEventStore,
)


logger = get_logger(__name__)


class SyncOrchestrator:
    """
    Runs syncs and records them as SyncEvents.

    Only the orchestrator writes sync events. It holds no state between
    syncs; one instance can sync any number of base playlists, one at a time.

    Example:
        orchestrator = SyncOrchestrator(SpotifyClient(), db, db, db)
        event = orchestrator.sync_base_playlist(user_id, base.id)
        print(event.status, event.tracks_processed, event.total_api_requests)
    """

    def __init__(
        self,
        spotify: PlaylistService,
        base_playlists: BasePlaylistStore,
        child_playlists: ChildPlaylistStore,
        sync_events: SyncEventStore,
        aggregator: TrackAggregator | None = None,
        router: TrackRouter | None = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        self._spotify = spotify
        self._base_playlists = base_playlists
        self._child_playlists = child_playlists
        self._sync_events = sync_events
        self._aggregator = aggregator or TrackAggregator(spotify, base_playlists, page_size=page_size)
        self._router = router or TrackRouter()

    def sync_base_playlist(
        self,
        user_id: str,
        base_playlist_id: str,
        cancel_check: Callable[[], bool] | None = None
    ) -> SyncEvent:
        """
        Sync one base playlist into its active children.

        Args:
            user_id: Owner of the base playlist.
            base_playlist_id: Record ID of the base playlist.
            cancel_check: Called before every remote call. Returning True
                          aborts the sync with SyncCancelledError.

        Returns:
            The completed SyncEvent.

        Raises:
            SyncConflictError: A sync of this base playlist is in progress.
                               No event is created, no remote call is made.
            NotFoundError: The base playlist does not exist for this user.
            AggregationError, RoutingError, ReconciliationError,
            SyncCancelledError, DatabaseError: The sync failed. The event
                               has been finalized as failed before raising.
        """
        if self._sync_events.has_in_progress_sync(user_id, base_playlist_id):
            logger.warning(f"Sync already in progress for base playlist {base_playlist_id}")
            raise SyncConflictError(base_playlist_id)

        event = self._sync_events.create_sync_event(
            SyncEvent(user_id=user_id, base_playlist_id=base_playlist_id)
        )
        logger.info(f"Sync {event.id} started for base playlist {base_playlist_id}")

        try:
            self._run(event, cancel_check)
        except KeyboardInterrupt:
            self._finalize_failed(event, "Sync interrupted by user", step=None, child_id=None)
            raise
        except Exception as e:
            self._finalize_failed(
                event,
                str(e),
                step=getattr(e, "step", None),
                child_id=getattr(e, "child_id", None)
            )
            raise

        event.mark_completed()
        self._write_event(event)
        logger.info(
            f"Sync {event.id} completed: {event.tracks_processed} tracks, "
            f"{len(event.child_playlist_ids)} children, "
            f"{event.total_api_requests} API requests"
        )
        return event

    def sync_user(
        self,
        user_id: str,
        show_progress: bool = False
    ) -> list[tuple[BasePlaylist, SyncEvent | Exception]]:
        """
        Sync every active base playlist of a user, one after the other.

        A failing base playlist does not stop the others, whatever the
        exception. KeyboardInterrupt still ends the whole run.

        Returns:
            List of (base_playlist, result) where result is the completed
            SyncEvent or the error that made the sync fail.
        """
        bases = self._base_playlists.list_base_playlists(user_id, active_only=True)
        results: list[tuple[BasePlaylist, SyncEvent | Exception]] = []

        iterator = bases
        if show_progress:
            iterator = tqdm(bases, desc="Syncing", unit="playlist")

        for base in iterator:
            try:
                results.append((base, self.sync_base_playlist(user_id, base.id)))
            except PlaylistRouterError as e:
                results.append((base, e))
            except Exception as e:
                logger.exception(f"Unexpected error while syncing base playlist {base.id}")
                results.append((base, e))

        return results

    # =========================================================================
    # Workflow steps
    # =========================================================================

    def _run(self, event: SyncEvent, cancel_check: Callable[[], bool] | None) -> None:
        user_id = event.user_id
        base_playlist_id = event.base_playlist_id

        children = self._child_playlists.list_active_children(base_playlist_id, user_id)
        event.child_playlist_ids = [child.id for child in children]

        if not children:
            logger.info(f"Base playlist {base_playlist_id} has no active child playlists")
            return

        try:
            track_set = self._aggregator.aggregate(user_id, base_playlist_id, cancel_check)
        except (Exception, KeyboardInterrupt):
            # Counted up to the failing, cancelled or interrupted call
            event.tracks_processed = self._aggregator.tracks_fetched
            event.total_api_requests += self._aggregator.api_calls
            raise

        event.tracks_processed = track_set.track_count
        event.total_api_requests += track_set.api_call_count
        logger.info(
            f"Aggregated {track_set.track_count} tracks "
            f"({track_set.api_call_count} API requests)"
        )

        routed = self._router.route(track_set, children)
        children_by_remote_id = {child.spotify_playlist_id: child for child in children}

        skipped = len(children) - len(routed)
        if skipped:
            logger.info(f"{skipped} child playlist(s) matched no track and are left unchanged")

        for remote_id, uris in routed.items():
            self._reconcile_child(
                event,
                track_set.playlist_name,
                children_by_remote_id[remote_id],
                uris,
                cancel_check
            )

    def _reconcile_child(
        self,
        event: SyncEvent,
        base_name: str,
        child: ChildPlaylist,
        uris: list[str],
        cancel_check: Callable[[], bool] | None
    ) -> None:
        """Delete, recreate and fill the Spotify playlist of one child."""
        logger.debug(f"Rebuilding child {child.id} with {len(uris)} tracks")

        self._check_cancelled(cancel_check, "delete", child)
        event.total_api_requests += 1
        try:
            self._spotify.delete_playlist(child.spotify_playlist_id)
        except SpotifyError as e:
            raise ReconciliationError(
                f"Failed to delete playlist {child.spotify_playlist_id} "
                f"of child {child.id}: {e.message}",
                details={"child_playlist_id": child.id, "original_error": str(e)},
                step="delete",
                child_id=child.id
            ) from e

        self._check_cancelled(cancel_check, "create", child)
        event.total_api_requests += 1
        try:
            remote = self._spotify.create_playlist(
                build_child_playlist_name(base_name, child.name),
                build_child_playlist_description(child.description),
                public=False
            )
        except SpotifyError as e:
            raise ReconciliationError(
                f"Failed to create playlist for child {child.id}: {e.message}",
                details={"child_playlist_id": child.id, "original_error": str(e)},
                step="create",
                child_id=child.id
            ) from e

        try:
            self._child_playlists.set_child_remote_playlist_id(
                child.id, event.user_id, remote.spotify_id
            )
        except DatabaseError as e:
            raise ReconciliationError(
                f"Failed to store new playlist {remote.spotify_id} "
                f"on child {child.id}: {e.message}",
                details={
                    "child_playlist_id": child.id,
                    "spotify_playlist_id": remote.spotify_id,
                    "original_error": str(e),
                },
                step="update",
                child_id=child.id
            ) from e

        for start in range(0, len(uris), MAX_TRACKS_PER_ADD):
            batch = uris[start:start + MAX_TRACKS_PER_ADD]
            self._check_cancelled(cancel_check, "add_tracks", child)
            event.total_api_requests += 1
            try:
                self._spotify.add_tracks_to_playlist(remote.spotify_id, batch)
            except (SpotifyError, ValueError) as e:
                raise ReconciliationError(
                    f"Failed to add tracks {start}-{start + len(batch)} "
                    f"to playlist {remote.spotify_id}: {e}",
                    details={
                        "child_playlist_id": child.id,
                        "spotify_playlist_id": remote.spotify_id,
                        "batch_start": start,
                        "batch_size": len(batch),
                        "original_error": str(e),
                    },
                    step="add_tracks",
                    child_id=child.id
                ) from e

        logger.info(f"Child '{child.name}' rebuilt with {len(uris)} tracks")

    def _check_cancelled(
        self,
        cancel_check: Callable[[], bool] | None,
        step: str,
        child: ChildPlaylist
    ) -> None:
        if cancel_check is not None and cancel_check():
            raise SyncCancelledError(step, child_id=child.id)

    # =========================================================================
    # Finalization
    # =========================================================================

    def _finalize_failed(
        self,
        event: SyncEvent,
        error_message: str,
        step: str | None,
        child_id: str | None
    ) -> None:
        event.mark_failed(error_message)
        log_sync_failure(
            logger,
            base_playlist_id=event.base_playlist_id,
            sync_event_id=event.id,
            error_message=error_message,
            step=step,
            child_id=child_id
        )
        self._write_event(event)

    def _write_event(self, event: SyncEvent) -> None:
        """Persist the final state; a failed write is logged, never raised."""
        try:
            self._sync_events.update_sync_event(event.id, event)
        except DatabaseError as e:
            logger.error(
                f"Failed to record {event.status.value} state of sync {event.id}: {e.message}"
            )
