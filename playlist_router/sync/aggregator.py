"""
Track aggregation: read every track of a base playlist.

Pagination:
    Pages of `page_size` items are requested until the number of items
    seen reaches the total Spotify reports, or a page comes back empty.
    Items that are not routable tracks (local files, removed tracks,
    podcast episodes) are skipped but still advance the offset.

Enrichment:
    Spotify tracks carry no genres. After pagination the unique artists
    are fetched in batches of 50 and each track is given the union of its
    artists' genres, their names and their highest popularity.

Failure policy:
    Any failed request aborts the aggregation with AggregationError.
    There is no partial PlaylistTrackSet; the error carries how many
    tracks were read and how many calls were made. The same counters
    stay readable on the aggregator after a cancel or a KeyboardInterrupt.
"""

from dataclasses import replace
from typing import Callable

from playlist_router.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from playlist_router.core.exceptions import (
    AggregationError,
    DatabaseError,
    SpotifyError,
    SyncCancelledError,
)
from playlist_router.core.logger import get_logger
from playlist_router.spotify.client import MAX_ARTISTS_PER_REQUEST
from playlist_router.spotify.models import (
    Artist,
    PlaylistTrackSet,
    Track,
    is_playable_track_item,
)
from playlist_router.sync.stores import BasePlaylistStore, PlaylistService


logger = get_logger(__name__)


class TrackAggregator:
    """
    Builds the PlaylistTrackSet of a base playlist.

    Attributes:
        page_size: Items requested per page (1-100).
        tracks_fetched: Routable tracks read by the current or last
                        aggregate() call, however it ended.
        api_calls: Requests attempted by that call, including a failed one.
    """

    def __init__(
        self,
        spotify: PlaylistService,
        base_playlists: BasePlaylistStore,
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
        self._spotify = spotify
        self._base_playlists = base_playlists
        self.page_size = page_size
        self.tracks_fetched = 0
        self.api_calls = 0

    def aggregate(
        self,
        user_id: str,
        base_playlist_id: str,
        cancel_check: Callable[[], bool] | None = None
    ) -> PlaylistTrackSet:
        """
        Fetch and enrich every routable track of a base playlist.

        Args:
            user_id: Owner of the base playlist.
            base_playlist_id: Record ID of the base playlist.
            cancel_check: Called before every request; returning True
                          raises SyncCancelledError.

        Returns:
            PlaylistTrackSet with tracks in playlist order and
            api_call_count = pages requested + artist batches requested.

        Raises:
            AggregationError: If the base playlist cannot be loaded or any
                              request fails.
            SyncCancelledError: If cancel_check asked to stop.
        """
        self.tracks_fetched = 0
        self.api_calls = 0

        try:
            base = self._base_playlists.get_base_playlist(base_playlist_id, user_id)
        except DatabaseError as e:
            raise AggregationError(
                f"Failed to load base playlist {base_playlist_id}: {e.message}",
                details={"base_playlist_id": base_playlist_id, "original_error": str(e)}
            ) from e

        spotify_playlist_id = base.spotify_playlist_id
        tracks: list[Track] = []
        offset = 0

        logger.debug(f"Aggregating tracks of {spotify_playlist_id} (page size {self.page_size})")

        while True:
            _check_cancelled(cancel_check, "aggregate")
            self.api_calls += 1
            try:
                items, total = self._spotify.list_playlist_tracks(
                    spotify_playlist_id,
                    limit=self.page_size,
                    offset=offset
                )
            except SpotifyError as e:
                raise AggregationError(
                    f"Failed to fetch tracks of playlist {spotify_playlist_id} "
                    f"at offset {offset}: {e.message}",
                    details={
                        "base_playlist_id": base_playlist_id,
                        "spotify_playlist_id": spotify_playlist_id,
                        "offset": offset,
                        "original_error": str(e),
                    },
                    tracks_fetched=self.tracks_fetched,
                    api_calls=self.api_calls
                ) from e

            if not items:
                break

            for item in items:
                if is_playable_track_item(item):
                    tracks.append(Track.from_spotify_api(item["track"]))
            self.tracks_fetched = len(tracks)

            offset += len(items)
            if offset >= total:
                break

        logger.debug(f"Fetched {len(tracks)} tracks in {self.api_calls} pages")

        track_set = PlaylistTrackSet(
            playlist_id=base_playlist_id,
            spotify_playlist_id=spotify_playlist_id,
            tracks=tuple(tracks),
            api_call_count=self.api_calls,
            playlist_name=base.name
        )
        return self._enrich_with_artists(track_set, cancel_check)

    def _enrich_with_artists(
        self,
        track_set: PlaylistTrackSet,
        cancel_check: Callable[[], bool] | None
    ) -> PlaylistTrackSet:
        artist_ids = track_set.unique_artist_ids()
        artists: dict[str, Artist] = {}

        for start in range(0, len(artist_ids), MAX_ARTISTS_PER_REQUEST):
            batch = artist_ids[start:start + MAX_ARTISTS_PER_REQUEST]
            _check_cancelled(cancel_check, "aggregate")
            self.api_calls += 1
            try:
                for artist_data in self._spotify.artists(batch):
                    artist = Artist.from_spotify_api(artist_data)
                    artists[artist.spotify_id] = artist
            except SpotifyError as e:
                raise AggregationError(
                    f"Failed to fetch artists {start}-{start + len(batch)}: {e.message}",
                    details={
                        "base_playlist_id": track_set.playlist_id,
                        "batch_start": start,
                        "batch_size": len(batch),
                        "original_error": str(e),
                    },
                    tracks_fetched=self.tracks_fetched,
                    api_calls=self.api_calls
                ) from e

        enriched = tuple(_enrich_track(track, artists) for track in track_set.tracks)
        return replace(track_set, tracks=enriched, artists=artists, api_call_count=self.api_calls)


def _enrich_track(track: Track, artists: dict[str, Artist]) -> Track:
    known = [artists[a] for a in track.artist_ids if a in artists]

    genres: dict[str, None] = {}
    for artist in known:
        for genre in artist.genres:
            genres.setdefault(genre.lower(), None)

    return replace(
        track,
        genres=tuple(genres),
        artist_names=tuple(a.name for a in known) or track.artist_names,
        max_artist_popularity=max((a.popularity for a in known), default=0)
    )


def _check_cancelled(cancel_check: Callable[[], bool] | None, step: str) -> None:
    if cancel_check is not None and cancel_check():
        raise SyncCancelledError(step)
