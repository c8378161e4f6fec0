"""
Filter rules and the engine that evaluates them.

Modules:
    rules: FilterRules, RangePredicate, SetPredicate (parsing and serialization)
    engine: FilterEngine (attribute registry, validation, matching)
"""

from playlist_router.filters.engine import DEFAULT_ATTRIBUTES, FilterAttribute, FilterEngine
from playlist_router.filters.rules import (
    FILTER_RULES_VERSION,
    FilterRules,
    RangePredicate,
    SetPredicate,
)

__all__ = [
    "DEFAULT_ATTRIBUTES",
    "FILTER_RULES_VERSION",
    "FilterAttribute",
    "FilterEngine",
    "FilterRules",
    "RangePredicate",
    "SetPredicate",
]
