"""
Spotify integration for playlist-router.

Modules:
    client: SpotifyClient singleton (spotipy wrapper, OAuth)
    models: Track, Artist, Album, PlaylistTrackSet, RemotePlaylist
"""

from playlist_router.spotify.client import SpotifyClient
from playlist_router.spotify.models import (
    Album,
    Artist,
    PlaylistTrackSet,
    RemotePlaylist,
    Track,
    is_playable_track_item,
)

__all__ = [
    "Album",
    "Artist",
    "PlaylistTrackSet",
    "RemotePlaylist",
    "SpotifyClient",
    "Track",
    "is_playable_track_item",
]
