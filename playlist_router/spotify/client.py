"""
The process-wide Spotify connection used by playlist-router.

Routing deletes, recreates and fills playlists in the user's own library,
so the client always authenticates with the OAuth authorization code flow
(SpotifyOAuth). spotipy caches the token under the storage directory and
the browser prompt only appears on the first run.

There is exactly one client per process. The CLI opens it once:

    SpotifyClient.init(client_id, client_secret, redirect_uri, cache_path=...)

and every other module reaches it through SpotifyClient(). Opening it a
second time, or using it before it is open, raises SpotifyError.

Failures from spotipy or requests never escape as-is. They are converted
to SpotifyError carrying http_status, with is_rate_limit for 429 and
is_auth_error for 401. Nothing here retries.
"""

from pathlib import Path
from typing import Any

import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from playlist_router.core.exceptions import SpotifyError
from playlist_router.spotify.models import RemotePlaylist


# Spotify API limits
MAX_PLAYLIST_PAGE = 100
MAX_ARTISTS_PER_REQUEST = 50
MAX_TRACKS_PER_ADD = 100

OAUTH_SCOPE = "playlist-read-private playlist-modify-private playlist-modify-public"


def _to_spotify_error(
    error: Exception,
    action: str,
    details: dict[str, Any]
) -> SpotifyError:
    """
    Convert a spotipy or requests exception into a SpotifyError.

    Args:
        error: The exception raised by spotipy (or by requests underneath it).
        action: Short description used in the message, e.g. "delete playlist".
        details: Context to attach (playlist id, batch size, ...).
    """
    if isinstance(error, spotipy.SpotifyException):
        status = error.http_status
        if status == 429:
            return SpotifyError(
                f"Rate limited while trying to {action}",
                details={**details, "http_status": 429},
                is_rate_limit=True,
                http_status=429
            )
        if status == 401:
            return SpotifyError(
                f"Authentication expired or invalid while trying to {action}",
                details={**details, "http_status": 401},
                is_auth_error=True,
                http_status=401
            )
        return SpotifyError(
            f"Failed to {action}: {error.msg}",
            details={**details, "http_status": status, "original_error": str(error)},
            http_status=status
        )

    return SpotifyError(
        f"Failed to {action}: {error}",
        details={**details, "original_error": str(error)}
    )


class SpotifyClientMeta(type):
    """
    Makes SpotifyClient a process-wide singleton.

    SpotifyClient() hands back the instance created by init() and refuses
    to build a fresh one; init() itself works only while nothing is open.
    """

    _instance: "SpotifyClient | None" = None

    def __call__(cls) -> "SpotifyClient":
        if cls._instance is None:
            raise SpotifyError(
                "Spotify is not connected yet; SpotifyClient.init() must run "
                "before SpotifyClient() is used.",
                is_auth_error=True
            )
        return cls._instance

    def init(
        cls,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        cache_path: Path | None = None,
        open_browser: bool = True
    ) -> "SpotifyClient":
        """
        Authenticate and open the shared client.

        The connection is verified with a current_user() call, whose id
        becomes the owner of every playlist the client creates.

        Args:
            client_id: Client ID of the Spotify app.
            client_secret: Client secret of the Spotify app.
            redirect_uri: A redirect URI registered for that app.
            cache_path: Token cache file. None lets spotipy pick
                        (.cache in the working directory).
            open_browser: Whether spotipy may open the consent page itself.

        Raises:
            SpotifyError: The client is already open, or authentication
                          failed. Both carry is_auth_error.
        """
        if cls._instance is not None:
            raise SpotifyError(
                "Spotify is already connected; use SpotifyClient() instead "
                "of calling init() again.",
                is_auth_error=True
            )

        try:
            oauth = SpotifyOAuth(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
                scope=OAUTH_SCOPE,
                cache_path=str(cache_path) if cache_path else None,
                open_browser=open_browser
            )
            sp = spotipy.Spotify(auth_manager=oauth)
            me = sp.current_user()
        except (spotipy.SpotifyException, SpotifyOauthError, requests.RequestException) as e:
            raise SpotifyError(
                f"Could not authenticate with Spotify: {e}",
                details={"original_error": str(e)},
                is_auth_error=True
            ) from e

        cls._instance = super().__call__(sp, me["id"])
        return cls._instance

    def is_initialized(cls) -> bool:
        """True once init() has succeeded."""
        return cls._instance is not None

    def reset(cls) -> None:
        """Forget the open client. Tests use this between cases."""
        cls._instance = None


class SpotifyClient(metaclass=SpotifyClientMeta):
    """
    The remote playlist service behind a sync.

    Offers exactly what the sync engine and the playlist manager call:
    one page of playlist items per call, artist lookups in batches of 50,
    and playlist create / rename / delete / add-tracks. Each method maps
    to one HTTP request; batching and pagination belong to the callers.

    spotipy already retries a 429 a few times before giving up; what
    reaches this class is surfaced as SpotifyError(is_rate_limit=True).
    """

    def __init__(self, spotify_instance: spotipy.Spotify, user_id: str) -> None:
        # Built by SpotifyClient.init() only
        self._spotify = spotify_instance
        self._user_id = user_id

    def current_user_id(self) -> str:
        """Spotify ID of the authenticated user (the owner of all records)."""
        return self._user_id

    # ---- reads ----

    def playlist(self, playlist_id_or_url: str) -> dict[str, Any]:
        """
        Playlist metadata without its items.

        Accepts an ID, a spotify: URI or an open.spotify.com URL. The result
        holds id, name, description, owner, external_urls, tracks.total
        and uri.
        """
        details = {"playlist_id": playlist_id_or_url}
        try:
            data = self._spotify.playlist(
                playlist_id_or_url,
                fields="id,name,description,owner,external_urls,tracks.total,uri"
            )
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "fetch playlist", details) from e

        if data is None:
            raise SpotifyError(
                f"No such playlist: {playlist_id_or_url}",
                details=details,
                http_status=404
            )
        return data

    def list_playlist_tracks(
        self,
        playlist_id: str,
        limit: int,
        offset: int
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Get one page of playlist items.

        Args:
            playlist_id: Spotify playlist ID.
            limit: Maximum number of items to return (max 100).
            offset: Index of the first item to return.

        Returns:
            Tuple of (items, total) where items are raw playlist item dicts
            (each with a 'track' key) and total is the item count Spotify
            reports for the whole playlist.

        Raises:
            SpotifyError: If playlist not found or network error.

        Note:
            One call to this method is exactly one remote request.
            Pagination is the caller's job (see TrackAggregator).
        """
        details = {"playlist_id": playlist_id, "limit": limit, "offset": offset}
        try:
            result = self._spotify.playlist_items(
                playlist_id,
                limit=min(limit, MAX_PLAYLIST_PAGE),
                offset=offset,
                additional_types=["track"]
            )
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "fetch playlist tracks", details) from e

        if result is None:
            raise SpotifyError(
                f"Failed to fetch playlist items: {playlist_id}",
                details=details
            )
        return result.get("items") or [], result.get("total") or 0

    def artists(self, artist_ids: list[str]) -> list[dict[str, Any]]:
        """
        Get metadata for up to 50 artists in a single request.

        Args:
            artist_ids: Spotify artist IDs (max 50).

        Returns:
            List of artist dicts in input order; unknown ids are dropped.

        Raises:
            ValueError: If more than 50 ids are passed.
            SpotifyError: If rate limited or network error.
        """
        if len(artist_ids) > MAX_ARTISTS_PER_REQUEST:
            raise ValueError(
                f"At most {MAX_ARTISTS_PER_REQUEST} artists per request, got {len(artist_ids)}"
            )
        if not artist_ids:
            return []

        try:
            response = self._spotify.artists(artist_ids)
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "fetch artists", {"batch_size": len(artist_ids)}) from e

        return [a for a in (response or {}).get("artists", []) if a]

    # ---- writes ----

    def delete_playlist(self, playlist_id: str) -> None:
        """
        Delete (unfollow) a playlist owned by the current user.

        Spotify has no hard delete; unfollowing your own playlist removes
        it from your library, which is what the web player calls deleting.

        Raises:
            SpotifyError: On any API or network failure.
        """
        try:
            self._spotify.current_user_unfollow_playlist(playlist_id)
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "delete playlist", {"playlist_id": playlist_id}) from e

    def create_playlist(
        self,
        name: str,
        description: str,
        public: bool = False
    ) -> RemotePlaylist:
        """
        Create a playlist in the current user's account.

        Args:
            name: Playlist name.
            description: Playlist description.
            public: Whether the playlist is public. Defaults to private.

        Returns:
            RemotePlaylist with the new Spotify id and name.

        Raises:
            SpotifyError: On any API or network failure.
        """
        try:
            result = self._spotify.user_playlist_create(
                self._user_id,
                name,
                public=public,
                description=description
            )
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "create playlist", {"name": name}) from e

        if not result or not result.get("id"):
            raise SpotifyError(
                f"Spotify returned no playlist for create: {name}",
                details={"name": name}
            )
        return RemotePlaylist.from_spotify_api(result)

    def update_playlist_details(self, playlist_id: str, name: str, description: str) -> None:
        """
        Rename a playlist and replace its description.

        Raises:
            SpotifyError: On any API or network failure.
        """
        try:
            self._spotify.playlist_change_details(
                playlist_id,
                name=name,
                description=description
            )
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(e, "update playlist", {"playlist_id": playlist_id}) from e

    def add_tracks_to_playlist(self, playlist_id: str, uris: list[str]) -> None:
        """
        Append up to 100 tracks to a playlist in one request.

        Args:
            playlist_id: Spotify playlist ID.
            uris: Track URIs, at most 100. Chunking is the caller's job.

        Raises:
            ValueError: If more than 100 URIs are passed.
            SpotifyError: On any API or network failure.
        """
        if len(uris) > MAX_TRACKS_PER_ADD:
            raise ValueError(
                f"At most {MAX_TRACKS_PER_ADD} tracks per request, got {len(uris)}"
            )

        try:
            self._spotify.playlist_add_items(playlist_id, uris)
        except (spotipy.SpotifyException, requests.RequestException) as e:
            raise _to_spotify_error(
                e,
                "add tracks",
                {"playlist_id": playlist_id, "batch_size": len(uris)}
            ) from e
