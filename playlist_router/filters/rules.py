"""
Filter rules: the per-child description of which tracks belong to it.

Rules are a versioned mapping of attribute name to predicate. A predicate
is one of two kinds:

    RangePredicate  {"kind": "range", "min": 50, "max": 100}
                    Numeric attributes. Both bounds inclusive and optional.

    SetPredicate    {"kind": "set", "include": ["rock"], "exclude": ["metal"]}
                    Categorical and text attributes. Values are compared
                    lower-cased; booleans become "true"/"false".

Serialized form (stored as JSON in the database):

    {
      "version": 1,
      "predicates": {
        "popularity": {"kind": "range", "min": 50},
        "genres": {"kind": "set", "include": ["rock", "indie"]}
      }
    }

This module only checks the SHAPE of the rules. Whether an attribute
exists and accepts the predicate kind is checked by FilterEngine.
Any shape problem raises FilterRulesError: rules that cannot be read are
never treated as "no rules".
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

from playlist_router.core.exceptions import FilterRulesError


FILTER_RULES_VERSION = 1

RANGE_KIND = "range"
SET_KIND = "set"


def normalize_set_value(value: Any) -> str:
    """
    Normalize a set predicate value for comparison.

    Strings are stripped and lower-cased, booleans become "true"/"false"
    and numbers their decimal string.

    Raises:
        FilterRulesError: For any other type (lists, dicts, None).
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip().lower()
    raise FilterRulesError(
        f"Set values must be strings, numbers or booleans, got {type(value).__name__}",
        details={"value": repr(value)}
    )


@dataclass(frozen=True)
class RangePredicate:
    """
    Inclusive numeric range. A missing bound imposes no constraint.

    Attributes:
        min: Lowest accepted value, or None.
        max: Highest accepted value, or None.
    """
    kind: ClassVar[str] = RANGE_KIND

    min: float | None = None
    max: float | None = None

    def matches(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        return data


@dataclass(frozen=True)
class SetPredicate:
    """
    Include/exclude value lists.

    Attributes:
        include: Values of which at least one must match. None means
                 "no inclusion constraint"; an empty tuple matches nothing.
        exclude: Values of which none may match.
    """
    kind: ClassVar[str] = SET_KIND

    include: tuple[str, ...] | None = None
    exclude: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind}
        if self.include is not None:
            data["include"] = list(self.include)
        if self.exclude:
            data["exclude"] = list(self.exclude)
        return data


Predicate = RangePredicate | SetPredicate


@dataclass(frozen=True)
class FilterRules:
    """
    All predicates of one child playlist, combined with AND.

    Attributes:
        predicates: Attribute name -> predicate. Insertion order is kept
                    so serialization is stable.
        version: Format version, always FILTER_RULES_VERSION once parsed.
    """
    predicates: dict[str, Predicate] = field(default_factory=dict)
    version: int = FILTER_RULES_VERSION

    def is_empty(self) -> bool:
        return not self.predicates

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "predicates": {name: p.to_dict() for name, p in self.predicates.items()},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=False)

    @classmethod
    def from_dict(cls, data: Any) -> "FilterRules":
        """
        Parse rules from their dictionary form.

        A missing "version" is read as the current version so hand-written
        rule files can omit it. A missing "kind" is inferred from the keys
        ("min"/"max" -> range, "include"/"exclude" -> set).

        Raises:
            FilterRulesError: If the data does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise FilterRulesError(
                "Filter rules must be a mapping",
                details={"type": type(data).__name__}
            )

        version = data.get("version", FILTER_RULES_VERSION)
        if version != FILTER_RULES_VERSION:
            raise FilterRulesError(
                f"Unsupported filter rules version: {version!r}",
                details={"version": version, "supported": FILTER_RULES_VERSION}
            )

        unknown_keys = set(data) - {"version", "predicates"}
        if unknown_keys:
            raise FilterRulesError(
                f"Unknown filter rules keys: {', '.join(sorted(unknown_keys))}",
                details={"keys": sorted(unknown_keys)}
            )

        raw_predicates = data.get("predicates") or {}
        if not isinstance(raw_predicates, dict):
            raise FilterRulesError(
                "'predicates' must be a mapping of attribute name to predicate",
                details={"type": type(raw_predicates).__name__}
            )

        predicates: dict[str, Predicate] = {}
        for name, raw in raw_predicates.items():
            if not isinstance(name, str) or not name:
                raise FilterRulesError(
                    "Predicate names must be non-empty strings",
                    details={"name": repr(name)}
                )
            predicates[name] = _parse_predicate(name, raw)

        return cls(predicates=predicates)

    @classmethod
    def from_json(cls, text: str) -> "FilterRules":
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise FilterRulesError(
                f"Filter rules are not valid JSON: {e}",
                details={"original_error": str(e)}
            ) from e
        return cls.from_dict(data)


def _parse_predicate(name: str, raw: Any) -> Predicate:
    if not isinstance(raw, dict):
        raise FilterRulesError(
            f"Predicate '{name}' must be a mapping",
            details={"attribute": name}
        )

    kind = raw.get("kind")
    if kind is None:
        if "min" in raw or "max" in raw:
            kind = RANGE_KIND
        elif "include" in raw or "exclude" in raw:
            kind = SET_KIND
        else:
            raise FilterRulesError(
                f"Predicate '{name}' has no kind and no recognizable keys",
                details={"attribute": name}
            )

    if kind == RANGE_KIND:
        return _parse_range(name, raw)
    if kind == SET_KIND:
        return _parse_set(name, raw)

    raise FilterRulesError(
        f"Predicate '{name}' has unknown kind {kind!r}",
        details={"attribute": name, "kind": kind}
    )


def _parse_range(name: str, raw: dict[str, Any]) -> RangePredicate:
    unknown_keys = set(raw) - {"kind", "min", "max"}
    if unknown_keys:
        raise FilterRulesError(
            f"Range predicate '{name}' has unknown keys: {', '.join(sorted(unknown_keys))}",
            details={"attribute": name, "keys": sorted(unknown_keys)}
        )

    bounds = {}
    for key in ("min", "max"):
        value = raw.get(key)
        # bool is an int subclass; reject it explicitly
        if value is not None and (not isinstance(value, (int, float)) or isinstance(value, bool)):
            raise FilterRulesError(
                f"Range predicate '{name}': '{key}' must be a number",
                details={"attribute": name, key: repr(value)}
            )
        bounds[key] = value

    return RangePredicate(min=bounds["min"], max=bounds["max"])


def _parse_set(name: str, raw: dict[str, Any]) -> SetPredicate:
    unknown_keys = set(raw) - {"kind", "include", "exclude"}
    if unknown_keys:
        raise FilterRulesError(
            f"Set predicate '{name}' has unknown keys: {', '.join(sorted(unknown_keys))}",
            details={"attribute": name, "keys": sorted(unknown_keys)}
        )

    include = raw.get("include")
    exclude = raw.get("exclude") or []

    for key, values in (("include", include), ("exclude", exclude)):
        if values is not None and not isinstance(values, list):
            raise FilterRulesError(
                f"Set predicate '{name}': '{key}' must be a list",
                details={"attribute": name, key: repr(values)}
            )

    return SetPredicate(
        include=tuple(normalize_set_value(v) for v in include) if include is not None else None,
        exclude=tuple(normalize_set_value(v) for v in exclude)
    )
