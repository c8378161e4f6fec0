"""
Sync event: the persisted record of one sync attempt.

An event is created IN_PROGRESS when a sync starts, updated in place as
counters accumulate, and finalized to COMPLETED or FAILED. Events are
never deleted by the sync engine; they form the sync history shown by
`playlist-router events`.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SyncStatus(str, Enum):
    """Lifecycle state of a sync event."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncEvent:
    """
    Progress and outcome of one sync of a base playlist.

    Attributes:
        id: Record ID (uuid4 hex). Empty until the store assigns one.
        user_id: Owner of the base playlist.
        base_playlist_id: Record ID of the synced base playlist.
        child_playlist_ids: Active children loaded at the start of the sync.
        status: IN_PROGRESS until finalized.
        started_at: ISO-8601 UTC timestamp.
        completed_at: ISO-8601 UTC timestamp, set when finalized.
        tracks_processed: Tracks aggregated from the base playlist.
        total_api_requests: Remote calls attempted during the sync.
        error_message: Why the sync failed, if it did.
    """
    user_id: str
    base_playlist_id: str
    id: str = ""
    child_playlist_ids: list[str] = field(default_factory=list)
    status: SyncStatus = SyncStatus.IN_PROGRESS
    started_at: str = field(default_factory=utc_now_iso)
    completed_at: str | None = None
    tracks_processed: int = 0
    total_api_requests: int = 0
    error_message: str | None = None
    created: str = ""
    updated: str = ""

    def mark_completed(self) -> None:
        self.status = SyncStatus.COMPLETED
        self.completed_at = utc_now_iso()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = SyncStatus.FAILED
        self.completed_at = utc_now_iso()
        self.error_message = error_message
