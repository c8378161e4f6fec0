"""
Playlist management: the operations behind `playlist-router base` and
`playlist-router child`.

The record store and Spotify are kept in step:
    - Adding a child creates its Spotify playlist, named
      "[<base name>] > <child name>", before the record is written.
    - Renaming or re-describing a child updates its Spotify playlist.
    - Removing a child (or its base) deletes its Spotify playlist first.

Filter rules are validated against the FilterEngine before they are
stored, so a sync never meets rules the engine cannot evaluate unless
they were written by hand into the database.
"""

from typing import TYPE_CHECKING

from playlist_router.core.logger import get_logger
from playlist_router.filters.engine import FilterEngine
from playlist_router.filters.rules import FilterRules
from playlist_router.playlists.models import (
    BasePlaylist,
    ChildPlaylist,
    build_child_playlist_description,
    build_child_playlist_name,
)
from playlist_router.spotify.client import SpotifyClient
from playlist_router.utils import extract_playlist_id

if TYPE_CHECKING:
    from playlist_router.core.database import Database


logger = get_logger(__name__)


class PlaylistManager:
    """
    Create, update and delete base and child playlists for a user.

    Args:
        database: Record store.
        spotify: Spotify client (anything with the same methods in tests).
        engine: Used to validate filter rules before they are stored.
    """

    def __init__(
        self,
        database: "Database",
        spotify: SpotifyClient,
        engine: FilterEngine | None = None
    ) -> None:
        self._db = database
        self._spotify = spotify
        self._engine = engine or FilterEngine()

    # =========================================================================
    # Base Playlists
    # =========================================================================

    def add_base_playlist(
        self,
        user_id: str,
        playlist_ref: str,
        name: str | None = None
    ) -> BasePlaylist:
        """
        Register a Spotify playlist as a base playlist.

        Args:
            user_id: Owner.
            playlist_ref: Spotify playlist URL, URI or ID.
            name: Display name. Defaults to the name on Spotify.

        Raises:
            ValueError: If playlist_ref is not a playlist reference.
            SpotifyError: If the playlist cannot be read.
            DatabaseError: If the user already registered this playlist.
        """
        spotify_playlist_id = extract_playlist_id(playlist_ref)
        remote = self._spotify.playlist(spotify_playlist_id)

        base = self._db.create_base_playlist(
            user_id,
            name or remote.get("name") or spotify_playlist_id,
            remote.get("id") or spotify_playlist_id
        )
        logger.info(f"Base playlist added: {base.name} ({base.id})")
        return base

    def list_base_playlists(self, user_id: str) -> list[BasePlaylist]:
        return self._db.list_base_playlists(user_id)

    def update_base_playlist(
        self,
        user_id: str,
        base_playlist_id: str,
        name: str | None = None,
        is_active: bool | None = None
    ) -> BasePlaylist:
        """
        Rename or (de)activate a base playlist.

        Child playlists pick up a new base name on their next sync,
        when their Spotify playlists are recreated.
        """
        base = self._db.update_base_playlist(
            base_playlist_id, user_id, name=name, is_active=is_active
        )
        logger.info(f"Base playlist updated: {base.name} ({base.id})")
        return base

    def remove_base_playlist(
        self,
        user_id: str,
        base_playlist_id: str,
        keep_remote: bool = False
    ) -> None:
        """
        Delete a base playlist, its children and its sync history.

        Args:
            keep_remote: Leave the children's Spotify playlists in place.

        Raises:
            NotFoundError: If the base playlist does not exist for this user.
            SpotifyError: If a child's Spotify playlist cannot be deleted.
                          Nothing is removed from the record store then.
        """
        base = self._db.get_base_playlist(base_playlist_id, user_id)

        if not keep_remote:
            for child in self._db.list_child_playlists(base_playlist_id, user_id):
                self._spotify.delete_playlist(child.spotify_playlist_id)
                logger.debug(f"Deleted Spotify playlist {child.spotify_playlist_id} of child {child.id}")

        self._db.delete_base_playlist(base_playlist_id, user_id)
        logger.info(f"Base playlist removed: {base.name} ({base.id})")

    # =========================================================================
    # Child Playlists
    # =========================================================================

    def add_child_playlist(
        self,
        user_id: str,
        base_playlist_id: str,
        name: str,
        description: str = "",
        filter_rules: FilterRules | None = None
    ) -> ChildPlaylist:
        """
        Create a child playlist and its (empty, private) Spotify playlist.

        The playlist is filled on the next sync of the base playlist.

        Raises:
            RoutingError: If the filter rules cannot be evaluated.
            NotFoundError: If the base playlist does not exist for this user.
            SpotifyError: If the Spotify playlist cannot be created.
        """
        self._engine.validate(filter_rules)
        base = self._db.get_base_playlist(base_playlist_id, user_id)

        remote = self._spotify.create_playlist(
            build_child_playlist_name(base.name, name),
            build_child_playlist_description(description),
            public=False
        )
        logger.debug(f"Created Spotify playlist {remote.spotify_id} ({remote.name})")

        child = self._db.create_child_playlist(
            user_id,
            base_playlist_id,
            name,
            remote.spotify_id,
            description=description,
            filter_rules=filter_rules
        )
        logger.info(f"Child playlist added: {child.name} ({child.id})")
        return child

    def list_child_playlists(self, user_id: str, base_playlist_id: str) -> list[ChildPlaylist]:
        return self._db.list_child_playlists(base_playlist_id, user_id)

    def update_child_playlist(
        self,
        user_id: str,
        child_id: str,
        name: str | None = None,
        description: str | None = None,
        filter_rules: FilterRules | None = None,
        clear_filter_rules: bool = False,
        is_active: bool | None = None
    ) -> ChildPlaylist:
        """
        Update a child playlist. None leaves a field unchanged.

        A new name or description is pushed to the Spotify playlist too.

        Raises:
            RoutingError: If the new filter rules cannot be evaluated.
            NotFoundError: If the child does not exist for this user.
            SpotifyError: If the Spotify playlist cannot be updated.
        """
        if filter_rules is not None and not clear_filter_rules:
            self._engine.validate(filter_rules, child_id=child_id)

        child = self._db.update_child_playlist(
            child_id,
            user_id,
            name=name,
            description=description,
            filter_rules=filter_rules,
            clear_filter_rules=clear_filter_rules,
            is_active=is_active
        )

        if name is not None or description is not None:
            base = self._db.get_base_playlist(child.base_playlist_id, user_id)
            self._spotify.update_playlist_details(
                child.spotify_playlist_id,
                build_child_playlist_name(base.name, child.name),
                build_child_playlist_description(child.description)
            )
            logger.debug(f"Updated Spotify playlist {child.spotify_playlist_id}")

        logger.info(f"Child playlist updated: {child.name} ({child.id})")
        return child

    def remove_child_playlist(self, user_id: str, child_id: str) -> None:
        """
        Delete a child playlist and its Spotify playlist.

        Raises:
            NotFoundError: If the child does not exist for this user.
            SpotifyError: If the Spotify playlist cannot be deleted.
                          The record is kept then.
        """
        child = self._db.get_child_playlist(child_id, user_id)
        self._spotify.delete_playlist(child.spotify_playlist_id)
        self._db.delete_child_playlist(child_id, user_id)
        logger.info(f"Child playlist removed: {child.name} ({child.id})")
