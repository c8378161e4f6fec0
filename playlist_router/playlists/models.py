"""
Base and child playlist records.

A base playlist is a Spotify playlist the user keeps curating by hand.
Each child playlist is a Spotify playlist owned by playlist-router: its
contents are rebuilt from the base playlist on every sync, using the
child's filter rules.
"""

from dataclasses import dataclass

from playlist_router.filters.rules import FilterRules


CHILD_DESCRIPTION_BANNER = "[PLAYLIST GENERATED AND MANAGED BY PlaylistRouter]"


def build_child_playlist_name(base_name: str, child_name: str) -> str:
    """
    Spotify name of a child playlist.

    Example:
        >>> build_child_playlist_name("My Favorites", "High Energy")
        '[My Favorites] > High Energy'
    """
    return f"[{base_name}] > {child_name}"


def build_child_playlist_description(description: str) -> str:
    """Spotify description of a child playlist: banner plus the user's text."""
    return f"{CHILD_DESCRIPTION_BANNER} {description}"


@dataclass(frozen=True)
class BasePlaylist:
    """
    A source playlist registered by a user.

    Attributes:
        id: Record ID (uuid4 hex).
        user_id: Spotify ID of the owning user.
        name: Display name; also used in child playlist names.
        spotify_playlist_id: Spotify ID the tracks are read from.
        is_active: Inactive base playlists are skipped by `sync --all`.
        created: ISO-8601 UTC timestamp.
        updated: ISO-8601 UTC timestamp.
    """
    id: str
    user_id: str
    name: str
    spotify_playlist_id: str
    is_active: bool = True
    created: str = ""
    updated: str = ""


@dataclass(frozen=True)
class ChildPlaylist:
    """
    A derived playlist routed from a base playlist.

    Attributes:
        id: Record ID (uuid4 hex).
        user_id: Spotify ID of the owning user.
        base_playlist_id: Record ID of the parent base playlist.
        name: Child name (without the "[base] > " prefix).
        description: User description (without the banner).
        spotify_playlist_id: Current remote playlist. Replaced on every
                             sync that routes tracks to this child.
        filter_rules: None matches every track of the base playlist.
        is_active: Inactive children are not routed nor rebuilt.
        created: ISO-8601 UTC timestamp.
        updated: ISO-8601 UTC timestamp.
    """
    id: str
    user_id: str
    base_playlist_id: str
    name: str
    spotify_playlist_id: str
    description: str = ""
    filter_rules: FilterRules | None = None
    is_active: bool = True
    created: str = ""
    updated: str = ""
