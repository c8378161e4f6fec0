"""
Interfaces the sync engine needs from its collaborators.

The engine depends on these protocols, not on concrete classes, so tests
can hand in mocks. In the application, core.database.Database implements
the three stores and spotify.client.SpotifyClient the playlist service.
"""

from typing import Any, Protocol

from playlist_router.playlists.models import BasePlaylist, ChildPlaylist
from playlist_router.spotify.models import RemotePlaylist
from playlist_router.sync.models import SyncEvent


class PlaylistService(Protocol):
    """Remote playlist operations used during a sync."""

    def list_playlist_tracks(
        self,
        playlist_id: str,
        limit: int,
        offset: int
    ) -> tuple[list[dict[str, Any]], int]: ...

    def artists(self, artist_ids: list[str]) -> list[dict[str, Any]]: ...

    def delete_playlist(self, playlist_id: str) -> None: ...

    def create_playlist(self, name: str, description: str, public: bool = False) -> RemotePlaylist: ...

    def add_tracks_to_playlist(self, playlist_id: str, uris: list[str]) -> None: ...


class BasePlaylistStore(Protocol):

    def get_base_playlist(self, base_playlist_id: str, user_id: str) -> BasePlaylist: ...

    def list_base_playlists(self, user_id: str, active_only: bool = False) -> list[BasePlaylist]: ...


class ChildPlaylistStore(Protocol):

    def list_active_children(self, base_playlist_id: str, user_id: str) -> list[ChildPlaylist]: ...

    def set_child_remote_playlist_id(
        self,
        child_id: str,
        user_id: str,
        spotify_playlist_id: str
    ) -> ChildPlaylist: ...


class SyncEventStore(Protocol):

    def has_in_progress_sync(self, user_id: str, base_playlist_id: str) -> bool: ...

    def create_sync_event(self, event: SyncEvent) -> SyncEvent: ...

    def update_sync_event(self, event_id: str, event: SyncEvent) -> SyncEvent: ...
