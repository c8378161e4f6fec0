"""Test Spotify models"""

from playlist_router.spotify.models import (
    Album,
    Artist,
    PlaylistTrackSet,
    Track,
    is_playable_track_item,
)


class TestSpotifyModels:
    """Test Spotify data models"""

    def test_track_from_api(self, track_item):
        """Test track creation from a playlist item"""
        track = Track.from_spotify_api(track_item(
            'abc', name='Song', popularity=77, artist_ids=('a1', 'a2'), explicit=True
        )['track'])

        assert track.spotify_id == 'abc'
        assert track.uri == 'spotify:track:abc'
        assert track.popularity == 77
        assert track.explicit
        assert track.artist_ids == ('a1', 'a2')
        assert track.artist_names == ('Artist a1', 'Artist a2')
        assert track.genres == ()

    def test_track_missing_fields(self):
        """Sparse track objects get defaults"""
        track = Track.from_spotify_api({'id': 'abc'})

        assert track.uri == 'spotify:track:abc'
        assert track.duration_ms == 0
        assert track.artist_ids == ()
        assert track.album == Album(spotify_id='', name='')

    def test_release_year(self):
        """Test release year parsing"""
        assert Album(spotify_id='a', name='A', release_date='1999-12-31').release_year == 1999
        assert Album(spotify_id='a', name='A', release_date='1999').release_year == 1999
        assert Album(spotify_id='a', name='A', release_date='').release_year == 0
        assert Album(spotify_id='a', name='A', release_date='0000-00-00').release_year == 0

    def test_artist_from_api(self, artist_data):
        """Test artist creation"""
        artist = Artist.from_spotify_api(artist_data('a1', name='Band', genres=['rock'], popularity=61))

        assert artist == Artist(
            spotify_id='a1', name='Band', genres=('rock',), popularity=61, uri='spotify:artist:a1'
        )

    def test_is_playable_track_item(self, track_item):
        """Only real tracks with an id are routable"""
        assert is_playable_track_item(track_item('abc'))
        assert not is_playable_track_item(None)
        assert not is_playable_track_item({'track': None})
        assert not is_playable_track_item({'track': {'id': 'x', 'is_local': True}})
        assert not is_playable_track_item({'track': {'id': 'x', 'type': 'episode'}})
        assert not is_playable_track_item({'track': {'id': None}})

    def test_unique_artist_ids(self, track_item):
        """Artist ids are deduplicated in first-seen order"""
        tracks = tuple(
            Track.from_spotify_api(track_item(track_id, artist_ids=artists)['track'])
            for track_id, artists in [('t1', ('b', 'a')), ('t2', ('a', 'c'))]
        )
        track_set = PlaylistTrackSet(playlist_id='base', spotify_playlist_id='remote', tracks=tracks)

        assert track_set.unique_artist_ids() == ['b', 'a', 'c']
        assert track_set.track_count == 2
