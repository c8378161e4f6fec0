"""Test the Spotify client wrapper"""

from unittest.mock import Mock, patch

import pytest
import requests
import spotipy

from playlist_router.core.exceptions import SpotifyError
from playlist_router.spotify.client import OAUTH_SCOPE, SpotifyClient
from playlist_router.spotify.models import RemotePlaylist


@pytest.fixture
def spotipy_mock():
    """Initialize SpotifyClient on top of a mocked spotipy.Spotify"""
    sp = Mock()
    sp.current_user.return_value = {'id': 'user_1'}

    with patch('playlist_router.spotify.client.SpotifyOAuth') as oauth, \
            patch('spotipy.Spotify', return_value=sp):
        SpotifyClient.init('client_id', 'client_secret', 'http://127.0.0.1:8888/callback')
        sp.oauth = oauth
        yield sp

    SpotifyClient.reset()


def spotify_exception(status):
    return spotipy.SpotifyException(status, -1, f'HTTP {status}')


class TestSingleton:
    """Test SpotifyClient initialization"""

    def test_not_initialized(self):
        """SpotifyClient() before init() fails"""
        SpotifyClient.reset()
        with pytest.raises(SpotifyError):
            SpotifyClient()

    def test_init_once(self, spotipy_mock):
        """init() returns the singleton; a second init() fails"""
        assert SpotifyClient() is SpotifyClient()
        assert SpotifyClient.is_initialized()
        assert SpotifyClient().current_user_id() == 'user_1'

        with pytest.raises(SpotifyError):
            SpotifyClient.init('a', 'b', 'c')

    def test_oauth_scope(self, spotipy_mock):
        """The authorization code flow is requested with playlist scopes"""
        kwargs = spotipy_mock.oauth.call_args.kwargs
        assert kwargs['scope'] == OAUTH_SCOPE
        assert 'playlist-modify-private' in kwargs['scope']

    def test_failed_authentication(self):
        """A failing current_user() aborts init"""
        SpotifyClient.reset()
        sp = Mock()
        sp.current_user.side_effect = spotify_exception(401)

        with patch('playlist_router.spotify.client.SpotifyOAuth'), \
                patch('spotipy.Spotify', return_value=sp):
            with pytest.raises(SpotifyError) as exc_info:
                SpotifyClient.init('client_id', 'client_secret', 'http://127.0.0.1:8888/callback')

        assert exc_info.value.is_auth_error
        assert not SpotifyClient.is_initialized()


class TestOperations:
    """Test the wrapped API calls"""

    def test_list_playlist_tracks(self, spotipy_mock):
        """One page of items and the total"""
        spotipy_mock.playlist_items.return_value = {'items': [{'track': {'id': 't1'}}], 'total': 7}

        items, total = SpotifyClient().list_playlist_tracks('pl', limit=50, offset=0)

        assert items == [{'track': {'id': 't1'}}]
        assert total == 7
        spotipy_mock.playlist_items.assert_called_once_with(
            'pl', limit=50, offset=0, additional_types=['track']
        )

    def test_artists(self, spotipy_mock):
        """Unknown artists (None) are dropped"""
        spotipy_mock.artists.return_value = {'artists': [{'id': 'a1'}, None]}

        assert SpotifyClient().artists(['a1', 'a2']) == [{'id': 'a1'}]

    def test_artists_batch_limit(self, spotipy_mock):
        """More than 50 artists is a caller error"""
        with pytest.raises(ValueError):
            SpotifyClient().artists([f'a{i}' for i in range(51)])
        spotipy_mock.artists.assert_not_called()

    def test_create_playlist(self, spotipy_mock):
        """Playlists are created in the authenticated account"""
        spotipy_mock.user_playlist_create.return_value = {'id': 'new', 'name': 'Name', 'uri': 'spotify:playlist:new'}

        remote = SpotifyClient().create_playlist('Name', 'Description')

        assert remote == RemotePlaylist(spotify_id='new', name='Name', uri='spotify:playlist:new')
        spotipy_mock.user_playlist_create.assert_called_once_with(
            'user_1', 'Name', public=False, description='Description'
        )

    def test_delete_playlist_unfollows(self, spotipy_mock):
        """Deleting is unfollowing"""
        SpotifyClient().delete_playlist('pl')
        spotipy_mock.current_user_unfollow_playlist.assert_called_once_with('pl')

    def test_add_tracks_batch_limit(self, spotipy_mock):
        """More than 100 tracks is a caller error"""
        client = SpotifyClient()
        client.add_tracks_to_playlist('pl', [f'spotify:track:{i}' for i in range(100)])

        with pytest.raises(ValueError):
            client.add_tracks_to_playlist('pl', [f'spotify:track:{i}' for i in range(101)])
        assert spotipy_mock.playlist_add_items.call_count == 1


class TestErrorMapping:
    """Test conversion of spotipy/requests errors"""

    def test_rate_limit(self, spotipy_mock):
        """429 sets is_rate_limit"""
        spotipy_mock.playlist_items.side_effect = spotify_exception(429)

        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient().list_playlist_tracks('pl', limit=50, offset=0)

        assert exc_info.value.is_rate_limit
        assert exc_info.value.http_status == 429

    def test_auth_error(self, spotipy_mock):
        """401 sets is_auth_error"""
        spotipy_mock.current_user_unfollow_playlist.side_effect = spotify_exception(401)

        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient().delete_playlist('pl')

        assert exc_info.value.is_auth_error

    def test_not_found(self, spotipy_mock):
        """Other statuses keep the status code"""
        spotipy_mock.playlist.side_effect = spotify_exception(404)

        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient().playlist('missing')

        assert exc_info.value.http_status == 404
        assert not exc_info.value.is_rate_limit
        assert not exc_info.value.is_auth_error

    def test_network_error(self, spotipy_mock):
        """requests failures become SpotifyError"""
        spotipy_mock.playlist_add_items.side_effect = requests.ConnectionError('down')

        with pytest.raises(SpotifyError) as exc_info:
            SpotifyClient().add_tracks_to_playlist('pl', ['spotify:track:1'])

        assert exc_info.value.http_status is None
