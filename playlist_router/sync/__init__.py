"""
The sync engine.

Modules:
    models: SyncEvent, SyncStatus
    stores: Protocols for the record stores and the remote playlist service
    aggregator: TrackAggregator (paginated track retrieval, artist enrichment)
    router: TrackRouter (filter rules -> tracks per child)
    orchestrator: SyncOrchestrator (guard, aggregate, route, reconcile, record)
"""

from playlist_router.sync.aggregator import TrackAggregator
from playlist_router.sync.models import SyncEvent, SyncStatus
from playlist_router.sync.orchestrator import SyncOrchestrator
from playlist_router.sync.router import TrackRouter

__all__ = [
    "SyncEvent",
    "SyncOrchestrator",
    "SyncStatus",
    "TrackAggregator",
    "TrackRouter",
]
