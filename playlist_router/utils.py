"""
Small helpers shared by the CLI and the playlist manager.
"""

from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """mkdir -p; returns path so calls can be chained. OSError propagates."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def _split_reference(reference: str) -> tuple[str | None, str]:
    """
    Split a Spotify reference into (kind, id).

    kind is "playlist", "track", ... for URLs and URIs, and None for a
    bare ID. Query strings and trailing slashes are dropped, so a link
    copied from the share menu (…/playlist/ID?si=…) works as is.
    """
    reference = reference.strip()

    if reference.startswith("spotify:"):
        parts = reference.split(":")
        return (parts[-2] if len(parts) > 2 else None), parts[-1]

    if "spotify.com" in reference:
        segments = [s for s in reference.split("?")[0].split("/") if s]
        kind = segments[-2] if len(segments) > 1 else None
        return kind, segments[-1] if segments else ""

    return None, reference


def extract_playlist_id(url_or_id: str) -> str:
    """
    Return the playlist ID from an open.spotify.com URL, a spotify: URI
    or a bare ID.

        extract_playlist_id("https://open.spotify.com/playlist/abc123?si=xyz")  # "abc123"
        extract_playlist_id("spotify:playlist:abc123")                          # "abc123"

    Raises:
        ValueError: The reference points at something other than a
                    playlist, or holds no ID at all.
    """
    kind, playlist_id = _split_reference(url_or_id)
    if kind is not None and kind != "playlist":
        raise ValueError(f"Not a playlist URL: {url_or_id}")
    if not playlist_id:
        raise ValueError(f"No playlist ID in: {url_or_id!r}")
    return playlist_id
