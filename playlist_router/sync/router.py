"""
Track routing: decide which base tracks go to which child playlist.
"""

from playlist_router.core.logger import get_logger
from playlist_router.filters.engine import FilterEngine
from playlist_router.playlists.models import ChildPlaylist
from playlist_router.spotify.models import PlaylistTrackSet


logger = get_logger(__name__)


class TrackRouter:
    """
    Maps the tracks of a base playlist onto its child playlists.

    Routing is pure: no remote calls, no store access. Every rule set is
    validated before any track is evaluated, so a malformed rule set never
    yields a partial result.
    """

    def __init__(self, engine: FilterEngine | None = None) -> None:
        self._engine = engine or FilterEngine()

    def route(
        self,
        track_set: PlaylistTrackSet,
        child_playlists: list[ChildPlaylist]
    ) -> dict[str, list[str]]:
        """
        Compute the track URIs each active child should contain.

        Args:
            track_set: Aggregated tracks of the base playlist.
            child_playlists: Children to route to. Inactive ones are skipped.

        Returns:
            Remote playlist ID -> matching track URIs in base playlist order.
            Keys follow the order of child_playlists. A child matching no
            track has no key: it is left untouched by the sync.

        Raises:
            RoutingError: If a child's rules name an unknown attribute, use a
                          predicate kind the attribute does not accept, or
                          have a range with min greater than max.
        """
        active = [child for child in child_playlists if child.is_active]

        for child in active:
            self._engine.validate(child.filter_rules, child_id=child.id)

        routed: dict[str, list[str]] = {}
        for child in active:
            uris = [
                track.uri
                for track in track_set.tracks
                if self._engine.matches(track, child.filter_rules)
            ]
            logger.debug(f"Child {child.id} ({child.name}): {len(uris)}/{track_set.track_count} tracks")
            if uris:
                routed[child.spotify_playlist_id] = uris

        return routed
