"""
Data models for Spotify entities.

This module defines immutable dataclasses representing the Spotify objects
the sync engine works with: tracks (with their album and artists), the
aggregated track set of a base playlist, and remote playlists created by
the engine.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Fields match Spotify API response structure where possible
    - Tracks are snapshots: fetched per sync, never persisted
    - Artist-derived fields (genres, names, popularity) are filled in by the
      aggregator after the artists have been fetched

Usage:
    from playlist_router.spotify.models import Track, PlaylistTrackSet

    track = Track.from_spotify_api(item["track"])
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Album:
    """
    Album reference embedded in a playlist track.

    Attributes:
        spotify_id: Spotify album ID.
        name: Album name.
        release_date: "YYYY-MM-DD", "YYYY-MM" or "YYYY", as Spotify reports it.
        uri: Spotify URI, e.g. "spotify:album:...".
    """
    spotify_id: str
    name: str
    release_date: str = ""
    uri: str = ""

    @classmethod
    def from_spotify_api(cls, album_data: dict[str, Any] | None) -> "Album":
        album_data = album_data or {}
        return cls(
            spotify_id=album_data.get("id") or "",
            name=album_data.get("name") or "",
            release_date=album_data.get("release_date") or "",
            uri=album_data.get("uri") or ""
        )

    @property
    def release_year(self) -> int:
        """
        Year parsed from release_date.

        Returns:
            The first four digits as int, or 0 if missing or unparsable.
        """
        if len(self.release_date) < 4:
            return 0
        try:
            return int(self.release_date[:4])
        except ValueError:
            return 0


@dataclass(frozen=True)
class Artist:
    """
    Artist data used for genre and popularity routing.

    Spotify has no per-track genres; genres live on the artist.

    Attributes:
        spotify_id: Spotify artist ID.
        name: Artist name.
        genres: Genres from the artist's Spotify profile.
                Example: ("rock", "classic rock")
        popularity: Artist popularity score (0-100).
        uri: Spotify URI.
    """
    spotify_id: str
    name: str
    genres: tuple[str, ...] = ()
    popularity: int = 0
    uri: str = ""

    @classmethod
    def from_spotify_api(cls, artist_data: dict[str, Any]) -> "Artist":
        return cls(
            spotify_id=artist_data["id"],
            name=artist_data.get("name") or "",
            genres=tuple(artist_data.get("genres") or ()),
            popularity=artist_data.get("popularity") or 0,
            uri=artist_data.get("uri") or ""
        )


@dataclass(frozen=True)
class Track:
    """
    Immutable snapshot of a Spotify track in a base playlist.

    Attributes:
        spotify_id: Unique Spotify track ID (22-character base62 string).
        name: Track title.
        uri: Playable URI added to child playlists.
             Example: "spotify:track:4cOdK2wGLETKBW3PvgPWqT"
        duration_ms: Track duration in milliseconds.
        popularity: Spotify popularity score (0-100).
        explicit: Whether the track is marked explicit on Spotify.
        album: Album reference.
        artist_ids: Spotify IDs of the track's artists, in credit order.

    Enrichment (set by TrackAggregator, empty until then):
        genres: Lower-cased union of the genres of all the track's artists.
        artist_names: Names of the track's artists (already known from the
                      playlist item, refreshed from the artist lookup).
        max_artist_popularity: Highest popularity among the track's artists.
    """
    spotify_id: str
    name: str
    uri: str
    duration_ms: int
    popularity: int
    explicit: bool
    album: Album
    artist_ids: tuple[str, ...]
    genres: tuple[str, ...] = ()
    artist_names: tuple[str, ...] = ()
    max_artist_popularity: int = 0

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any]) -> "Track":
        """
        Create a Track from the 'track' object of a playlist item.

        Args:
            track_data: The track object from Spotify API, i.e. the
                        'track' field of a playlist_items() entry.

        Returns:
            Track: New Track without artist enrichment.

        Example:
            response = client.list_playlist_tracks(playlist_id, 50, 0)
            tracks = [Track.from_spotify_api(i["track"]) for i in items]
        """
        spotify_id = track_data["id"]
        artists = track_data.get("artists") or []

        return cls(
            spotify_id=spotify_id,
            name=track_data.get("name") or "",
            uri=track_data.get("uri") or f"spotify:track:{spotify_id}",
            duration_ms=track_data.get("duration_ms") or 0,
            popularity=track_data.get("popularity") or 0,
            explicit=bool(track_data.get("explicit", False)),
            album=Album.from_spotify_api(track_data.get("album")),
            artist_ids=tuple(a["id"] for a in artists if a.get("id")),
            artist_names=tuple(a.get("name") or "" for a in artists if a.get("id"))
        )

    @property
    def release_year(self) -> int:
        return self.album.release_year


def is_playable_track_item(item: dict[str, Any] | None) -> bool:
    """
    Check if a playlist item holds a track that can be routed.

    Invalid items:
        - None (removed from Spotify)
        - Local files (is_local = True)
        - Missing track object
        - Podcast episodes (type != 'track')
        - No ID or no URI
    """
    if item is None or not isinstance(item, dict):
        return False

    track = item.get("track")
    if not track:
        return False

    if track.get("is_local", False):
        return False

    if track.get("type", "track") != "track":
        return False

    return bool(track.get("id"))


@dataclass(frozen=True)
class PlaylistTrackSet:
    """
    Every routable track of a base playlist, in playlist order.

    Built fresh per sync by TrackAggregator and discarded after routing.

    Attributes:
        playlist_id: Base playlist record ID.
        spotify_playlist_id: Spotify ID the tracks were read from.
        playlist_name: Base playlist name, used to name child playlists.
        tracks: Tracks in the order Spotify returned them.
        artists: Artist data by Spotify ID.
        api_call_count: Remote calls spent producing this set.
    """
    playlist_id: str
    spotify_playlist_id: str
    tracks: tuple[Track, ...]
    artists: dict[str, Artist] = field(default_factory=dict)
    api_call_count: int = 0
    playlist_name: str = ""

    @property
    def track_count(self) -> int:
        return len(self.tracks)

    def unique_artist_ids(self) -> list[str]:
        """Artist IDs of all tracks, deduplicated, in first-seen order."""
        seen: dict[str, None] = {}
        for track in self.tracks:
            for artist_id in track.artist_ids:
                seen.setdefault(artist_id, None)
        return list(seen)


@dataclass(frozen=True)
class RemotePlaylist:
    """A playlist created on Spotify by the sync engine."""
    spotify_id: str
    name: str
    uri: str = ""

    @classmethod
    def from_spotify_api(cls, playlist_data: dict[str, Any]) -> "RemotePlaylist":
        spotify_id = playlist_data["id"]
        return cls(
            spotify_id=spotify_id,
            name=playlist_data.get("name") or "",
            uri=playlist_data.get("uri") or f"spotify:playlist:{spotify_id}"
        )
