"""Test configuration and fixtures"""

import itertools
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from playlist_router.core.database import Database
from playlist_router.spotify.models import RemotePlaylist


USER_ID = 'user_1'
OTHER_USER_ID = 'user_2'


def _make_track_item(
    track_id,
    name='Test Song',
    popularity=50,
    artist_ids=('artist_1',),
    duration_ms=200000,
    explicit=False,
    release_date='2020-01-01'
):
    return {
        'added_at': '2024-01-01T00:00:00Z',
        'is_local': False,
        'track': {
            'id': track_id,
            'name': name,
            'type': 'track',
            'uri': f'spotify:track:{track_id}',
            'artists': [{'id': a, 'name': f'Artist {a}'} for a in artist_ids],
            'album': {
                'id': f'album_{track_id}',
                'name': 'Test Album',
                'release_date': release_date,
                'uri': f'spotify:album:album_{track_id}',
            },
            'duration_ms': duration_ms,
            'explicit': explicit,
            'popularity': popularity,
            'is_local': False,
        }
    }


def _make_artist(artist_id, name=None, genres=(), popularity=50):
    return {
        'id': artist_id,
        'name': name or f'Artist {artist_id}',
        'genres': list(genres),
        'popularity': popularity,
        'uri': f'spotify:artist:{artist_id}',
    }


def _make_spotify(items=(), artists=None):
    """
    Mock Spotify client serving a playlist from memory.

    list_playlist_tracks slices `items`, artists() looks ids up in
    `artists`, create_playlist returns new_1, new_2, ...
    """
    items = list(items)
    artist_map = {a['id']: a for a in (artists or [])}
    counter = itertools.count(1)

    spotify = Mock()
    spotify.list_playlist_tracks.side_effect = (
        lambda playlist_id, limit, offset: (items[offset:offset + limit], len(items))
    )
    spotify.artists.side_effect = lambda ids: [artist_map[i] for i in ids if i in artist_map]
    spotify.create_playlist.side_effect = (
        lambda name, description, public=False: RemotePlaylist(
            spotify_id=f'new_{next(counter)}', name=name
        )
    )
    spotify.playlist.side_effect = lambda playlist_id: {'id': playlist_id, 'name': 'Remote Name'}
    spotify.current_user_id.return_value = USER_ID
    return spotify


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database(temp_dir):
    """Fresh SQLite database in a temporary directory"""
    db = Database(temp_dir / 'database.db')
    yield db
    db.close()


@pytest.fixture
def track_item():
    """Factory for playlist items as returned by Spotify"""
    return _make_track_item


@pytest.fixture
def artist_data():
    """Factory for artist objects as returned by Spotify"""
    return _make_artist


@pytest.fixture
def spotify_factory():
    """Factory for a mock Spotify client backed by in-memory data"""
    return _make_spotify


@pytest.fixture
def base_playlist(database):
    """A base playlist owned by USER_ID"""
    return database.create_base_playlist(USER_ID, 'My Favorites', 'base_remote')

