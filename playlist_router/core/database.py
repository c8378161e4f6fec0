"""
Thread-safe SQLite record store for playlist-router.

One database file holds every user's base playlists, child playlists and
sync history. Every lookup is scoped to a user: a record owned by someone
else is reported exactly like a missing one (NotFoundError).

Schema:
    base_playlists:   Source playlists (name, spotify_playlist_id, is_active)
    child_playlists:  Derived playlists (base_playlist_id, filter_rules JSON,
                      current spotify_playlist_id)
    sync_events:      One row per sync attempt (status, counters, error)

Invariants enforced by the schema:
    - Deleting a base playlist deletes its children and sync events (CASCADE)
    - At most one in_progress sync event per base playlist (unique partial
      index); a second concurrent start fails with SyncConflictError
    - A user registers a given Spotify playlist as base at most once

Usage:
    db = Database(storage_dir / "database.db")

    base = db.create_base_playlist(user_id, "Everything", "37i9dQZF1DX...")
    child = db.create_child_playlist(user_id, base.id, "Chill", remote.spotify_id)

    for child in db.list_active_children(base.id, user_id):
        ...

The Database class implements every store interface the sync engine uses
(see playlist_router.sync.stores).
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from playlist_router.core.exceptions import (
    DatabaseError,
    FilterRulesError,
    NotFoundError,
    SyncConflictError,
)
from playlist_router.filters.rules import FilterRules
from playlist_router.playlists.models import BasePlaylist, ChildPlaylist
from playlist_router.sync.models import SyncEvent, SyncStatus


DATABASE_VERSION = 1
DEFAULT_EVENTS_LIMIT = 20


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS base_playlists (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    spotify_playlist_id TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created TEXT NOT NULL,
    updated TEXT NOT NULL,
    UNIQUE(user_id, spotify_playlist_id)
);

CREATE TABLE IF NOT EXISTS child_playlists (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    base_playlist_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    spotify_playlist_id TEXT NOT NULL,
    filter_rules TEXT,  -- JSON, NULL means "match everything"
    is_active INTEGER NOT NULL DEFAULT 1,
    created TEXT NOT NULL,
    updated TEXT NOT NULL,
    FOREIGN KEY (base_playlist_id) REFERENCES base_playlists(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sync_events (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    base_playlist_id TEXT NOT NULL,
    child_playlist_ids TEXT NOT NULL DEFAULT '[]',  -- JSON array
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    tracks_processed INTEGER NOT NULL DEFAULT 0,
    total_api_requests INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created TEXT NOT NULL,
    updated TEXT NOT NULL,
    FOREIGN KEY (base_playlist_id) REFERENCES base_playlists(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_base_playlists_user ON base_playlists(user_id);
CREATE INDEX IF NOT EXISTS idx_child_playlists_base ON child_playlists(base_playlist_id);
CREATE INDEX IF NOT EXISTS idx_sync_events_base ON sync_events(base_playlist_id, started_at);
CREATE UNIQUE INDEX IF NOT EXISTS idx_sync_events_one_in_progress
    ON sync_events(base_playlist_id) WHERE status = 'in_progress';
"""


class Database:
    """
    Thread-safe SQLite record store.

    Uses a single persistent connection with thread locking for safety.
    All public methods go through _transaction(), which holds self._lock,
    commits on success, rolls back on error and converts sqlite3 errors
    into DatabaseError.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            with self._get_connection() as conn:
                try:
                    yield conn
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    raise DatabaseError(
                        f"Database operation failed: {e}",
                        details={"path": str(self.db_path), "original_error": str(e)}
                    ) from e
                except Exception:
                    conn.rollback()
                    raise

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _new_id(self) -> str:
        return uuid.uuid4().hex

    # =========================================================================
    # Row conversion
    # =========================================================================

    def _row_to_base(self, row: sqlite3.Row) -> BasePlaylist:
        return BasePlaylist(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            spotify_playlist_id=row["spotify_playlist_id"],
            is_active=bool(row["is_active"]),
            created=row["created"],
            updated=row["updated"]
        )

    def _row_to_child(self, row: sqlite3.Row) -> ChildPlaylist:
        filter_rules = None
        if row["filter_rules"] is not None:
            try:
                filter_rules = FilterRules.from_json(row["filter_rules"])
            except FilterRulesError as e:
                raise FilterRulesError(
                    f"Child playlist {row['id']} has unreadable filter rules: {e.message}",
                    details={"child_playlist_id": row["id"], **e.details},
                    child_id=row["id"]
                ) from e

        return ChildPlaylist(
            id=row["id"],
            user_id=row["user_id"],
            base_playlist_id=row["base_playlist_id"],
            name=row["name"],
            description=row["description"],
            spotify_playlist_id=row["spotify_playlist_id"],
            filter_rules=filter_rules,
            is_active=bool(row["is_active"]),
            created=row["created"],
            updated=row["updated"]
        )

    def _row_to_event(self, row: sqlite3.Row) -> SyncEvent:
        return SyncEvent(
            id=row["id"],
            user_id=row["user_id"],
            base_playlist_id=row["base_playlist_id"],
            child_playlist_ids=json.loads(row["child_playlist_ids"] or "[]"),
            status=SyncStatus(row["status"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            tracks_processed=row["tracks_processed"],
            total_api_requests=row["total_api_requests"],
            error_message=row["error_message"],
            created=row["created"],
            updated=row["updated"]
        )

    def _fetch_base_row(self, conn: sqlite3.Connection, base_playlist_id: str, user_id: str) -> sqlite3.Row:
        cursor = conn.execute(
            "SELECT * FROM base_playlists WHERE id = ? AND user_id = ?",
            (base_playlist_id, user_id)
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(
                f"Base playlist not found: {base_playlist_id}",
                details={"base_playlist_id": base_playlist_id, "user_id": user_id}
            )
        return row

    def _fetch_child_row(self, conn: sqlite3.Connection, child_id: str, user_id: str) -> sqlite3.Row:
        cursor = conn.execute(
            "SELECT * FROM child_playlists WHERE id = ? AND user_id = ?",
            (child_id, user_id)
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(
                f"Child playlist not found: {child_id}",
                details={"child_playlist_id": child_id, "user_id": user_id}
            )
        return row

    # =========================================================================
    # Base Playlists
    # =========================================================================

    def create_base_playlist(
        self,
        user_id: str,
        name: str,
        spotify_playlist_id: str,
        is_active: bool = True
    ) -> BasePlaylist:
        """
        Register a base playlist.

        Raises:
            DatabaseError: If the user already registered this Spotify playlist.
        """
        playlist_id = self._new_id()
        now = self._now_iso()

        with self._transaction() as conn:
            try:
                conn.execute("""
                    INSERT INTO base_playlists
                        (id, user_id, name, spotify_playlist_id, is_active, created, updated)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (playlist_id, user_id, name, spotify_playlist_id, int(is_active), now, now))
            except sqlite3.IntegrityError as e:
                raise DatabaseError(
                    f"Spotify playlist {spotify_playlist_id} is already a base playlist",
                    details={"spotify_playlist_id": spotify_playlist_id, "user_id": user_id}
                ) from e

            return self._row_to_base(self._fetch_base_row(conn, playlist_id, user_id))

    def get_base_playlist(self, base_playlist_id: str, user_id: str) -> BasePlaylist:
        """
        Get a base playlist owned by user_id.

        Raises:
            NotFoundError: If missing or owned by another user.
        """
        with self._transaction() as conn:
            return self._row_to_base(self._fetch_base_row(conn, base_playlist_id, user_id))

    def list_base_playlists(self, user_id: str, active_only: bool = False) -> list[BasePlaylist]:
        query = "SELECT * FROM base_playlists WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created, name"

        with self._transaction() as conn:
            cursor = conn.execute(query, (user_id,))
            return [self._row_to_base(row) for row in cursor.fetchall()]

    def update_base_playlist(
        self,
        base_playlist_id: str,
        user_id: str,
        name: str | None = None,
        is_active: bool | None = None
    ) -> BasePlaylist:
        """Update name and/or active flag. None leaves a field unchanged."""
        with self._transaction() as conn:
            row = self._fetch_base_row(conn, base_playlist_id, user_id)
            conn.execute("""
                UPDATE base_playlists SET name = ?, is_active = ?, updated = ?
                WHERE id = ? AND user_id = ?
            """, (
                name if name is not None else row["name"],
                int(is_active) if is_active is not None else row["is_active"],
                self._now_iso(),
                base_playlist_id,
                user_id
            ))
            return self._row_to_base(self._fetch_base_row(conn, base_playlist_id, user_id))

    def delete_base_playlist(self, base_playlist_id: str, user_id: str) -> None:
        """
        Delete a base playlist with its children and sync history.

        Remote child playlists are NOT touched here; see PlaylistManager.

        Raises:
            NotFoundError: If missing or owned by another user.
        """
        with self._transaction() as conn:
            self._fetch_base_row(conn, base_playlist_id, user_id)
            conn.execute(
                "DELETE FROM base_playlists WHERE id = ? AND user_id = ?",
                (base_playlist_id, user_id)
            )

    # =========================================================================
    # Child Playlists
    # =========================================================================

    def create_child_playlist(
        self,
        user_id: str,
        base_playlist_id: str,
        name: str,
        spotify_playlist_id: str,
        description: str = "",
        filter_rules: FilterRules | None = None,
        is_active: bool = True
    ) -> ChildPlaylist:
        """
        Create a child playlist under a base playlist owned by user_id.

        Raises:
            NotFoundError: If the base playlist is missing or not owned by user_id.
        """
        child_id = self._new_id()
        now = self._now_iso()
        rules_json = filter_rules.to_json() if filter_rules is not None else None

        with self._transaction() as conn:
            self._fetch_base_row(conn, base_playlist_id, user_id)
            conn.execute("""
                INSERT INTO child_playlists (
                    id, user_id, base_playlist_id, name, description,
                    spotify_playlist_id, filter_rules, is_active, created, updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                child_id, user_id, base_playlist_id, name, description,
                spotify_playlist_id, rules_json, int(is_active), now, now
            ))
            return self._row_to_child(self._fetch_child_row(conn, child_id, user_id))

    def get_child_playlist(self, child_id: str, user_id: str) -> ChildPlaylist:
        """
        Get a child playlist owned by user_id.

        Raises:
            NotFoundError: If missing or owned by another user.
            FilterRulesError: If its stored rules cannot be parsed.
        """
        with self._transaction() as conn:
            return self._row_to_child(self._fetch_child_row(conn, child_id, user_id))

    def list_child_playlists(self, base_playlist_id: str, user_id: str) -> list[ChildPlaylist]:
        """All children (active or not) of a base playlist, oldest first."""
        with self._transaction() as conn:
            self._fetch_base_row(conn, base_playlist_id, user_id)
            cursor = conn.execute("""
                SELECT * FROM child_playlists
                WHERE base_playlist_id = ? AND user_id = ?
                ORDER BY created, rowid
            """, (base_playlist_id, user_id))
            return [self._row_to_child(row) for row in cursor.fetchall()]

    def list_active_children(self, base_playlist_id: str, user_id: str) -> list[ChildPlaylist]:
        """
        Active children of a base playlist, oldest first.

        This order is the order in which a sync rebuilds them.

        Raises:
            FilterRulesError: If any child's stored rules cannot be parsed.
        """
        with self._transaction() as conn:
            cursor = conn.execute("""
                SELECT * FROM child_playlists
                WHERE base_playlist_id = ? AND user_id = ? AND is_active = 1
                ORDER BY created, rowid
            """, (base_playlist_id, user_id))
            return [self._row_to_child(row) for row in cursor.fetchall()]

    def update_child_playlist(
        self,
        child_id: str,
        user_id: str,
        name: str | None = None,
        description: str | None = None,
        filter_rules: FilterRules | None = None,
        clear_filter_rules: bool = False,
        is_active: bool | None = None
    ) -> ChildPlaylist:
        """
        Update a child playlist. None leaves a field unchanged.

        Args:
            clear_filter_rules: Remove the rules so the child matches every
                                track. Takes precedence over filter_rules.
        """
        with self._transaction() as conn:
            row = self._fetch_child_row(conn, child_id, user_id)

            if clear_filter_rules:
                rules_json = None
            elif filter_rules is not None:
                rules_json = filter_rules.to_json()
            else:
                rules_json = row["filter_rules"]

            conn.execute("""
                UPDATE child_playlists SET
                    name = ?, description = ?, filter_rules = ?, is_active = ?, updated = ?
                WHERE id = ? AND user_id = ?
            """, (
                name if name is not None else row["name"],
                description if description is not None else row["description"],
                rules_json,
                int(is_active) if is_active is not None else row["is_active"],
                self._now_iso(),
                child_id,
                user_id
            ))
            return self._row_to_child(self._fetch_child_row(conn, child_id, user_id))

    def set_child_remote_playlist_id(
        self,
        child_id: str,
        user_id: str,
        spotify_playlist_id: str
    ) -> ChildPlaylist:
        """
        Point a child at a newly created remote playlist.

        Raises:
            NotFoundError: If missing or owned by another user.
        """
        with self._transaction() as conn:
            self._fetch_child_row(conn, child_id, user_id)
            conn.execute("""
                UPDATE child_playlists SET spotify_playlist_id = ?, updated = ?
                WHERE id = ? AND user_id = ?
            """, (spotify_playlist_id, self._now_iso(), child_id, user_id))
            return self._row_to_child(self._fetch_child_row(conn, child_id, user_id))

    def delete_child_playlist(self, child_id: str, user_id: str) -> None:
        """
        Raises:
            NotFoundError: If missing or owned by another user.
        """
        with self._transaction() as conn:
            self._fetch_child_row(conn, child_id, user_id)
            conn.execute(
                "DELETE FROM child_playlists WHERE id = ? AND user_id = ?",
                (child_id, user_id)
            )

    # =========================================================================
    # Sync Events
    # =========================================================================

    def has_in_progress_sync(self, user_id: str, base_playlist_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("""
                SELECT 1 FROM sync_events
                WHERE user_id = ? AND base_playlist_id = ? AND status = ?
                LIMIT 1
            """, (user_id, base_playlist_id, SyncStatus.IN_PROGRESS.value))
            return cursor.fetchone() is not None

    def create_sync_event(self, event: SyncEvent) -> SyncEvent:
        """
        Insert a new sync event and return it with id and timestamps set.

        Raises:
            NotFoundError: If the base playlist is missing or not owned by event.user_id.
            SyncConflictError: If the event is in_progress and another
                               in_progress event exists for the base playlist.
        """
        event_id = event.id or self._new_id()
        now = self._now_iso()

        with self._transaction() as conn:
            self._fetch_base_row(conn, event.base_playlist_id, event.user_id)
            try:
                conn.execute("""
                    INSERT INTO sync_events (
                        id, user_id, base_playlist_id, child_playlist_ids, status,
                        started_at, completed_at, tracks_processed, total_api_requests,
                        error_message, created, updated
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    event_id, event.user_id, event.base_playlist_id,
                    json.dumps(list(event.child_playlist_ids)), event.status.value,
                    event.started_at, event.completed_at, event.tracks_processed,
                    event.total_api_requests, event.error_message, now, now
                ))
            except sqlite3.IntegrityError as e:
                raise SyncConflictError(
                    event.base_playlist_id,
                    details={"original_error": str(e)}
                ) from e

            return self._row_to_event(self._fetch_event_row(conn, event_id))

    def update_sync_event(self, event_id: str, event: SyncEvent) -> SyncEvent:
        """
        Overwrite the mutable fields of a sync event.

        Raises:
            NotFoundError: If no event has this id.
        """
        with self._transaction() as conn:
            self._fetch_event_row(conn, event_id)
            conn.execute("""
                UPDATE sync_events SET
                    child_playlist_ids = ?, status = ?, completed_at = ?,
                    tracks_processed = ?, total_api_requests = ?,
                    error_message = ?, updated = ?
                WHERE id = ?
            """, (
                json.dumps(list(event.child_playlist_ids)), event.status.value,
                event.completed_at, event.tracks_processed, event.total_api_requests,
                event.error_message, self._now_iso(), event_id
            ))
            return self._row_to_event(self._fetch_event_row(conn, event_id))

    def get_sync_event(self, event_id: str, user_id: str | None = None) -> SyncEvent:
        """
        Get a sync event, optionally restricted to one owner.

        Raises:
            NotFoundError: If missing (or owned by another user when user_id is given).
        """
        with self._transaction() as conn:
            row = self._fetch_event_row(conn, event_id)
            if user_id is not None and row["user_id"] != user_id:
                raise NotFoundError(
                    f"Sync event not found: {event_id}",
                    details={"sync_event_id": event_id, "user_id": user_id}
                )
            return self._row_to_event(row)

    def list_sync_events(
        self,
        user_id: str,
        base_playlist_id: str | None = None,
        limit: int = DEFAULT_EVENTS_LIMIT
    ) -> list[SyncEvent]:
        """Most recent sync events first."""
        query = "SELECT * FROM sync_events WHERE user_id = ?"
        params: list[Any] = [user_id]
        if base_playlist_id is not None:
            query += " AND base_playlist_id = ?"
            params.append(base_playlist_id)
        query += " ORDER BY started_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._transaction() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _fetch_event_row(self, conn: sqlite3.Connection, event_id: str) -> sqlite3.Row:
        cursor = conn.execute("SELECT * FROM sync_events WHERE id = ?", (event_id,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(
                f"Sync event not found: {event_id}",
                details={"sync_event_id": event_id}
            )
        return row
