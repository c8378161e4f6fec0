"""Test the sync workflow end to end with a real database and a mock Spotify"""

from unittest.mock import Mock

import pytest

from playlist_router.core.exceptions import (
    AggregationError,
    DatabaseError,
    FilterRulesError,
    ReconciliationError,
    SpotifyError,
    SyncCancelledError,
    SyncConflictError,
)
from playlist_router.filters.rules import FilterRules
from playlist_router.playlists.models import CHILD_DESCRIPTION_BANNER
from playlist_router.sync.models import SyncEvent, SyncStatus
from playlist_router.sync.orchestrator import SyncOrchestrator


USER_ID = 'user_1'


def make_orchestrator(spotify, database, page_size=50):
    return SyncOrchestrator(spotify, database, database, database, page_size=page_size)


def add_child(database, base, name, remote_id, predicates=None, description=''):
    rules = FilterRules.from_dict({'predicates': predicates}) if predicates is not None else None
    return database.create_child_playlist(
        USER_ID, base.id, name, remote_id, description=description, filter_rules=rules
    )


def only_event(database, base):
    events = database.list_sync_events(USER_ID, base_playlist_id=base.id)
    assert len(events) == 1
    return events[0]


class TestGuard:
    """Test the in-progress guard"""

    def test_conflict_creates_no_event_and_makes_no_call(self, database, base_playlist, spotify_factory):
        """A second sync while one is running is refused before anything happens"""
        add_child(database, base_playlist, 'All', 'child_remote')
        running = database.create_sync_event(SyncEvent(user_id=USER_ID, base_playlist_id=base_playlist.id))
        spotify = spotify_factory()

        with pytest.raises(SyncConflictError):
            make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert only_event(database, base_playlist).id == running.id
        assert spotify.method_calls == []

    def test_finished_sync_does_not_block(self, database, base_playlist, spotify_factory):
        """Completed and failed events do not count as in progress"""
        orchestrator = make_orchestrator(spotify_factory(), database)

        first = orchestrator.sync_base_playlist(USER_ID, base_playlist.id)
        second = orchestrator.sync_base_playlist(USER_ID, base_playlist.id)

        assert first.id != second.id
        assert second.status == SyncStatus.COMPLETED


class TestSuccessfulSync:
    """Test completed syncs and their accounting"""

    def test_no_active_children_completes_immediately(self, database, base_playlist, spotify_factory):
        """Without active children nothing is fetched"""
        inactive = add_child(database, base_playlist, 'Off', 'child_remote')
        database.update_child_playlist(inactive.id, USER_ID, is_active=False)
        spotify = spotify_factory()

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert event.status == SyncStatus.COMPLETED
        assert event.tracks_processed == 0
        assert event.total_api_requests == 0
        assert event.child_playlist_ids == []
        assert spotify.method_calls == []

    def test_two_track_popularity_scenario(self, database, base_playlist, spotify_factory, track_item, artist_data):
        """The popular track is routed; the child is rebuilt under its new name"""
        child = add_child(
            database, base_playlist, 'Popular', 'child_remote',
            predicates={'popularity': {'kind': 'range', 'min': 50}},
            description='Hits only'
        )
        spotify = spotify_factory(
            [track_item('a', popularity=80), track_item('b', popularity=30)],
            [artist_data('artist_1')]
        )

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert event.status == SyncStatus.COMPLETED
        assert event.tracks_processed == 2
        # 1 page + 1 artist batch + delete + create + 1 add
        assert event.total_api_requests == 5
        assert event.child_playlist_ids == [child.id]
        assert event.completed_at is not None

        spotify.delete_playlist.assert_called_once_with('child_remote')
        spotify.create_playlist.assert_called_once_with(
            '[My Favorites] > Popular',
            f'{CHILD_DESCRIPTION_BANNER} Hits only',
            public=False
        )
        spotify.add_tracks_to_playlist.assert_called_once_with('new_1', ['spotify:track:a'])

    def test_new_remote_id_is_persisted(self, database, base_playlist, spotify_factory, track_item):
        """The child record points at the recreated playlist"""
        child = add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item('a')])

        make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert database.get_child_playlist(child.id, USER_ID).spotify_playlist_id == 'new_1'

    def test_event_is_persisted(self, database, base_playlist, spotify_factory, track_item):
        """The stored event matches the returned one"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item('a')])

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        stored = database.get_sync_event(event.id, USER_ID)
        assert stored.status == SyncStatus.COMPLETED
        assert stored.tracks_processed == event.tracks_processed
        assert stored.total_api_requests == event.total_api_requests
        assert not database.has_in_progress_sync(USER_ID, base_playlist.id)

    def test_tracks_are_added_in_batches_of_100(self, database, base_playlist, spotify_factory, track_item):
        """150 matching tracks are added as 100 + 50"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item(f't{i}') for i in range(150)])

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        batches = [c.args[1] for c in spotify.add_tracks_to_playlist.call_args_list]
        assert [len(b) for b in batches] == [100, 50]
        assert batches[0][0] == 'spotify:track:t0'
        assert batches[1][-1] == 'spotify:track:t149'
        # 3 pages + 1 artist batch + delete + create + 2 adds
        assert event.total_api_requests == 8

    def test_call_accounting_over_several_children(self, database, base_playlist, spotify_factory, track_item):
        """total = aggregation calls + sum over routed children of (2 + batches)"""
        add_child(database, base_playlist, 'All', 'remote_all')
        add_child(database, base_playlist, 'Popular', 'remote_popular', {'popularity': {'min': 70}})
        add_child(database, base_playlist, 'Nothing', 'remote_nothing', {'popularity': {'min': 101}})
        items = [track_item(f't{i}', popularity=i % 100) for i in range(120)]
        spotify = spotify_factory(items)

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        aggregation_calls = 3 + 1
        all_child = 2 + 2
        popular_child = 2 + 1
        assert event.total_api_requests == aggregation_calls + all_child + popular_child
        assert len(event.child_playlist_ids) == 3

    def test_child_without_matches_is_not_touched(self, database, base_playlist, spotify_factory, track_item):
        """No match: no delete, no create, no record change"""
        child = add_child(database, base_playlist, 'Obscure', 'child_remote', {'popularity': {'max': 10}})
        spotify = spotify_factory([track_item('a', popularity=90)])

        event = make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert event.status == SyncStatus.COMPLETED
        assert event.total_api_requests == 2
        spotify.delete_playlist.assert_not_called()
        spotify.create_playlist.assert_not_called()
        assert database.get_child_playlist(child.id, USER_ID).spotify_playlist_id == 'child_remote'

    def test_children_are_rebuilt_in_creation_order(self, database, base_playlist, spotify_factory, track_item):
        """Reconciliation follows the order the children were added"""
        add_child(database, base_playlist, 'First', 'remote_first')
        add_child(database, base_playlist, 'Second', 'remote_second')
        spotify = spotify_factory([track_item('a')])

        make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        deleted = [c.args[0] for c in spotify.delete_playlist.call_args_list]
        assert deleted == ['remote_first', 'remote_second']


class TestFailedSync:
    """Test failure recording"""

    def test_page_failure_keeps_counters(self, database, base_playlist, spotify_factory, track_item):
        """Page 2 of 3 fails: 2 tracks processed, 2 requests"""
        add_child(database, base_playlist, 'All', 'child_remote')
        items = [track_item(f't{i}') for i in range(6)]
        spotify = spotify_factory(items)

        def list_tracks(playlist_id, limit, offset):
            if offset >= 2:
                raise SpotifyError('Server error', http_status=500)
            return items[offset:offset + limit], len(items)

        spotify.list_playlist_tracks.side_effect = list_tracks

        with pytest.raises(AggregationError):
            make_orchestrator(spotify, database, page_size=2).sync_base_playlist(USER_ID, base_playlist.id)

        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.tracks_processed == 2
        assert event.total_api_requests == 2
        assert 'Server error' in event.error_message
        spotify.delete_playlist.assert_not_called()

    def test_failed_call_is_counted(self, database, base_playlist, spotify_factory, track_item):
        """A failing delete still counts as a request"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item('a')])
        spotify.delete_playlist.side_effect = SpotifyError('Not found', http_status=404)

        with pytest.raises(ReconciliationError) as exc_info:
            make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert exc_info.value.step == 'delete'
        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.total_api_requests == 3
        spotify.create_playlist.assert_not_called()

    def test_first_failure_stops_remaining_children(self, database, base_playlist, spotify_factory, track_item):
        """Children after the failing one are not touched"""
        first = add_child(database, base_playlist, 'First', 'remote_first')
        add_child(database, base_playlist, 'Second', 'remote_second')
        spotify = spotify_factory([track_item('a')])
        spotify.add_tracks_to_playlist.side_effect = SpotifyError('Rate limited', is_rate_limit=True)

        with pytest.raises(ReconciliationError) as exc_info:
            make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert exc_info.value.step == 'add_tracks'
        assert exc_info.value.child_id == first.id
        assert spotify.delete_playlist.call_count == 1
        # The first child already points at its new playlist
        assert database.get_child_playlist(first.id, USER_ID).spotify_playlist_id == 'new_1'

    def test_unreadable_stored_rules_fail_before_remote_calls(self, database, base_playlist, spotify_factory):
        """Rules that cannot be parsed fail the sync, they are never read as 'no rules'"""
        child = add_child(database, base_playlist, 'Broken', 'child_remote')
        with database._transaction() as conn:
            conn.execute(
                'UPDATE child_playlists SET filter_rules = ? WHERE id = ?',
                ('{"version": 1, "predicates": ', child.id)
            )
        spotify = spotify_factory()

        with pytest.raises(FilterRulesError) as exc_info:
            make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        assert exc_info.value.child_id == child.id
        assert only_event(database, base_playlist).status == SyncStatus.FAILED
        assert spotify.method_calls == []

    def test_failed_final_write_keeps_original_error(self, database, base_playlist, spotify_factory):
        """A store error while recording the failure does not mask the sync error"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory()
        spotify.list_playlist_tracks.side_effect = SpotifyError('Unauthorized', is_auth_error=True)

        events = Mock(wraps=database)
        events.update_sync_event.side_effect = DatabaseError('disk I/O error')
        orchestrator = SyncOrchestrator(spotify, database, database, events)

        with pytest.raises(AggregationError):
            orchestrator.sync_base_playlist(USER_ID, base_playlist.id)

        events.update_sync_event.assert_called_once()

    def test_failed_final_write_on_success(self, database, base_playlist, spotify_factory):
        """A completed sync is still returned when the final write fails"""
        spotify = spotify_factory()
        events = Mock(wraps=database)
        events.update_sync_event.side_effect = DatabaseError('disk I/O error')

        event = SyncOrchestrator(spotify, database, database, events).sync_base_playlist(
            USER_ID, base_playlist.id
        )

        assert event.status == SyncStatus.COMPLETED

    def test_missing_base_playlist(self, database, spotify_factory):
        """Unknown base playlist: no event, not found"""
        with pytest.raises(DatabaseError):
            make_orchestrator(spotify_factory(), database).sync_base_playlist(USER_ID, 'missing')

        assert database.list_sync_events(USER_ID) == []

    def test_interrupt_marks_event_failed(self, database, base_playlist, spotify_factory):
        """Ctrl-C during a sync leaves a failed event, not an in_progress one"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory()
        spotify.list_playlist_tracks.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            make_orchestrator(spotify, database).sync_base_playlist(USER_ID, base_playlist.id)

        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.error_message == 'Sync interrupted by user'


class TestCancellation:
    """Test cancel_check"""

    def test_cancel_between_delete_and_create(self, database, base_playlist, spotify_factory, track_item):
        """Cancellation stops before the next remote call and is recorded"""
        child = add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item('a')])

        with pytest.raises(SyncCancelledError) as exc_info:
            make_orchestrator(spotify, database).sync_base_playlist(
                USER_ID, base_playlist.id,
                cancel_check=lambda: spotify.delete_playlist.called
            )

        assert exc_info.value.step == 'create'
        assert exc_info.value.child_id == child.id
        spotify.create_playlist.assert_not_called()
        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.total_api_requests == 3

    def test_cancel_during_aggregation_keeps_counters(self, database, base_playlist, spotify_factory, track_item):
        """Pages read before the cancel are recorded on the failed event"""
        add_child(database, base_playlist, 'All', 'child_remote')
        spotify = spotify_factory([track_item(f't{i}') for i in range(6)])

        with pytest.raises(SyncCancelledError):
            make_orchestrator(spotify, database, page_size=2).sync_base_playlist(
                USER_ID, base_playlist.id,
                cancel_check=lambda: spotify.list_playlist_tracks.call_count >= 2
            )

        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.tracks_processed == 4
        assert event.total_api_requests == 2
        spotify.delete_playlist.assert_not_called()

    def test_interrupt_during_aggregation_keeps_counters(self, database, base_playlist, spotify_factory, track_item):
        """Ctrl-C on page 3 of 3: two pages read, three requests made"""
        add_child(database, base_playlist, 'All', 'child_remote')
        items = [track_item(f't{i}') for i in range(6)]
        spotify = spotify_factory(items)

        def list_tracks(playlist_id, limit, offset):
            if offset >= 4:
                raise KeyboardInterrupt
            return items[offset:offset + limit], len(items)

        spotify.list_playlist_tracks.side_effect = list_tracks

        with pytest.raises(KeyboardInterrupt):
            make_orchestrator(spotify, database, page_size=2).sync_base_playlist(USER_ID, base_playlist.id)

        event = only_event(database, base_playlist)
        assert event.status == SyncStatus.FAILED
        assert event.error_message == 'Sync interrupted by user'
        assert event.tracks_processed == 4
        assert event.total_api_requests == 3


class TestSyncUser:
    """Test syncing every base playlist of a user"""

    def test_continues_after_a_failure(self, database, spotify_factory, track_item):
        """A failing base playlist does not stop the next one"""
        first = database.create_base_playlist(USER_ID, 'A', 'remote_a')
        second = database.create_base_playlist(USER_ID, 'B', 'remote_b')
        database.create_sync_event(SyncEvent(user_id=USER_ID, base_playlist_id=first.id))
        spotify = spotify_factory([track_item('a')])

        results = dict(
            (base.id, result)
            for base, result in make_orchestrator(spotify, database).sync_user(USER_ID)
        )

        assert isinstance(results[first.id], SyncConflictError)
        assert results[second.id].status == SyncStatus.COMPLETED

    def test_skips_inactive_base_playlists(self, database, spotify_factory):
        """Only active base playlists are synced"""
        active = database.create_base_playlist(USER_ID, 'A', 'remote_a')
        inactive = database.create_base_playlist(USER_ID, 'B', 'remote_b')
        database.update_base_playlist(inactive.id, USER_ID, is_active=False)

        results = make_orchestrator(spotify_factory(), database).sync_user(USER_ID)

        assert [base.id for base, _ in results] == [active.id]

    def test_continues_after_an_unexpected_error(self, database, spotify_factory, track_item):
        """Errors outside the package hierarchy are collected too"""
        first = database.create_base_playlist(USER_ID, 'A', 'remote_a')
        second = database.create_base_playlist(USER_ID, 'B', 'remote_b')
        add_child(database, first, 'All', 'child_a')
        add_child(database, second, 'All', 'child_b')
        items = [track_item('a')]
        spotify = spotify_factory(items)

        def list_tracks(playlist_id, limit, offset):
            if playlist_id == 'remote_a':
                raise KeyError('artists')
            return items[offset:offset + limit], len(items)

        spotify.list_playlist_tracks.side_effect = list_tracks

        results = dict(
            (base.id, result)
            for base, result in make_orchestrator(spotify, database).sync_user(USER_ID)
        )

        assert isinstance(results[first.id], KeyError)
        assert only_event(database, first).status == SyncStatus.FAILED
        assert results[second.id].status == SyncStatus.COMPLETED
