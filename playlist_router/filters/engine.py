"""
Filter engine: evaluates FilterRules against tracks.

Each routable attribute is registered with the predicate kind it accepts
and a function extracting its value from a Track. Matching is pure: no
remote calls, no database access.

Supported attributes:
    duration_ms        range  track duration
    popularity         range  track popularity (0-100)
    release_year       range  album release year
    artist_popularity  range  highest popularity among the track's artists
    explicit           set    "true" / "false"
    genres             set    artists' genres, exact match
    track_keywords     set    substring of the lower-cased track name
    artist_keywords    set    substring of the lower-cased artist names
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from playlist_router.core.exceptions import RoutingError
from playlist_router.filters.rules import (
    RANGE_KIND,
    SET_KIND,
    FilterRules,
    Predicate,
    RangePredicate,
    SetPredicate,
)
from playlist_router.spotify.models import Track


EXACT = "exact"
SUBSTRING = "substring"


@dataclass(frozen=True)
class FilterAttribute:
    """
    A track attribute that rules may constrain.

    Attributes:
        name: Attribute name used in the rules.
        kind: Predicate kind it accepts (RANGE_KIND or SET_KIND).
        extract: Returns the value to test. A number for range attributes,
                 a tuple of lower-cased strings for set attributes.
        match_mode: For set attributes, EXACT (value equals one of the
                    extracted strings) or SUBSTRING (value occurs in one).
    """
    name: str
    kind: str
    extract: Callable[[Track], Any]
    match_mode: str = EXACT


DEFAULT_ATTRIBUTES: dict[str, FilterAttribute] = {
    attribute.name: attribute
    for attribute in (
        FilterAttribute("duration_ms", RANGE_KIND, lambda t: t.duration_ms),
        FilterAttribute("popularity", RANGE_KIND, lambda t: t.popularity),
        FilterAttribute("release_year", RANGE_KIND, lambda t: t.release_year),
        FilterAttribute("artist_popularity", RANGE_KIND, lambda t: t.max_artist_popularity),
        FilterAttribute(
            "explicit", SET_KIND,
            lambda t: ("true",) if t.explicit else ("false",)
        ),
        FilterAttribute(
            "genres", SET_KIND,
            lambda t: tuple(g.lower() for g in t.genres)
        ),
        FilterAttribute(
            "track_keywords", SET_KIND,
            lambda t: (t.name.lower(),),
            match_mode=SUBSTRING
        ),
        FilterAttribute(
            "artist_keywords", SET_KIND,
            lambda t: (", ".join(t.artist_names).lower(),),
            match_mode=SUBSTRING
        ),
    )
}


class FilterEngine:
    """
    Validates and evaluates filter rules.

    Example:
        engine = FilterEngine()
        engine.validate(child.filter_rules, child_id=child.id)
        matching = engine.select(track_set.tracks, child.filter_rules)
    """

    def __init__(self, attributes: dict[str, FilterAttribute] | None = None) -> None:
        self._attributes = attributes if attributes is not None else DEFAULT_ATTRIBUTES

    @property
    def attribute_names(self) -> list[str]:
        return list(self._attributes)

    def validate(self, rules: FilterRules | None, child_id: str | None = None) -> None:
        """
        Check that every predicate targets a known attribute with the right kind.

        Args:
            rules: Rules to check. None (no rules) is always valid.
            child_id: Child playlist the rules belong to, for error reporting.

        Raises:
            RoutingError: On an unknown attribute, a predicate kind the
                          attribute does not accept, or a range with min > max.
        """
        if rules is None:
            return

        for name, predicate in rules.predicates.items():
            attribute = self._attributes.get(name)
            if attribute is None:
                raise RoutingError(
                    f"Unknown filter attribute '{name}'"
                    + (f" in child playlist {child_id}" if child_id else ""),
                    details={
                        "attribute": name,
                        "child_playlist_id": child_id,
                        "supported": self.attribute_names,
                    },
                    child_id=child_id
                )

            if predicate.kind != attribute.kind:
                raise RoutingError(
                    f"Attribute '{name}' needs a {attribute.kind} predicate, "
                    f"got {predicate.kind}",
                    details={
                        "attribute": name,
                        "child_playlist_id": child_id,
                        "expected_kind": attribute.kind,
                        "kind": predicate.kind,
                    },
                    child_id=child_id
                )

            if (
                isinstance(predicate, RangePredicate)
                and predicate.min is not None
                and predicate.max is not None
                and predicate.min > predicate.max
            ):
                raise RoutingError(
                    f"Range for '{name}' has min {predicate.min} greater than max {predicate.max}",
                    details={
                        "attribute": name,
                        "child_playlist_id": child_id,
                        "min": predicate.min,
                        "max": predicate.max,
                    },
                    child_id=child_id
                )

    def matches(self, track: Track, rules: FilterRules | None) -> bool:
        """
        Check whether a track satisfies every predicate (AND).

        Rules must have been validated. No rules, or empty rules, match
        every track.
        """
        if rules is None:
            return True

        for name, predicate in rules.predicates.items():
            attribute = self._attributes[name]
            if not self._predicate_matches(attribute, predicate, track):
                return False
        return True

    def select(
        self,
        tracks: Iterable[Track],
        rules: FilterRules | None,
        child_id: str | None = None
    ) -> list[Track]:
        """Validate the rules, then return matching tracks in input order."""
        self.validate(rules, child_id=child_id)
        return [track for track in tracks if self.matches(track, rules)]

    def _predicate_matches(
        self,
        attribute: FilterAttribute,
        predicate: Predicate,
        track: Track
    ) -> bool:
        value = attribute.extract(track)

        if isinstance(predicate, RangePredicate):
            return predicate.matches(value)

        return _set_matches(predicate, value, attribute.match_mode)


def _set_matches(predicate: SetPredicate, observed: tuple[str, ...], match_mode: str) -> bool:
    if match_mode == SUBSTRING:
        def hit(candidate: str) -> bool:
            return any(candidate in text for text in observed)
    else:
        def hit(candidate: str) -> bool:
            return candidate in observed

    if any(hit(value) for value in predicate.exclude):
        return False

    if predicate.include is None:
        return True

    # An empty include list matches nothing
    return any(hit(value) for value in predicate.include)
