"""
Base and child playlist records and their management.

Modules:
    models: BasePlaylist, ChildPlaylist, child naming convention
    manager: PlaylistManager (create/update/delete with remote side effects)
"""

from playlist_router.playlists.manager import PlaylistManager
from playlist_router.playlists.models import (
    BasePlaylist,
    ChildPlaylist,
    build_child_playlist_description,
    build_child_playlist_name,
)

__all__ = [
    "BasePlaylist",
    "ChildPlaylist",
    "PlaylistManager",
    "build_child_playlist_description",
    "build_child_playlist_name",
]
