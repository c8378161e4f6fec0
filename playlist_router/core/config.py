"""
Settings for playlist-router, read from config.yaml.

Three sections are recognized, all optional except the credentials:
    spotify  - app credentials and the OAuth redirect URI
    storage  - where database.db and logs/ are kept
    sync     - page size for reading base playlists

The credentials may instead be supplied through SPOTIFY_CLIENT_ID,
SPOTIFY_CLIENT_SECRET and SPOTIFY_REDIRECT_URI, either exported or in a
.env file next to where the command runs. When both are present the
environment wins.

A complete file:
    spotify:
      client_id: "..."
      client_secret: "..."
      redirect_uri: "http://127.0.0.1:8888/callback"

    storage:
      directory: "~/.playlist-router"

    sync:
      page_size: 50
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from playlist_router.core.exceptions import ConfigError


# Looked up in the working directory when --config is not given
CONFIG_FILENAME = "config.yaml"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_STORAGE_DIRECTORY = "~/.playlist-router"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

_ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "client_id",
    "SPOTIFY_CLIENT_SECRET": "client_secret",
    "SPOTIFY_REDIRECT_URI": "redirect_uri",
}


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Credentials of the Spotify app (created at
    https://developer.spotify.com/dashboard).

    redirect_uri must match one registered for the app; it is where the
    authorization code flow sends the browser back to.
    """
    client_id: str
    client_secret: str
    redirect_uri: str


@dataclass(frozen=True)
class StorageConfig:
    """
    Storage location configuration.

    Attributes:
        directory: Absolute path holding database.db and the logs/ folder.
                   ~ is expanded. Created at startup if missing.
    """
    directory: Path

    @property
    def database_path(self) -> Path:
        return self.directory / "database.db"


@dataclass(frozen=True)
class SyncConfig:
    """
    Sync behavior configuration.

    Attributes:
        page_size: Tracks requested per page when reading the base playlist.
                   Spotify accepts 1-100. Default: 50.
    """
    page_size: int


@dataclass(frozen=True)
class Config:
    """Everything load_config() produced, grouped by section."""
    spotify: SpotifyConfig
    storage: StorageConfig
    sync: SyncConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Build the Config for this run.

    Args:
        config_path: File passed with --config. It must exist. Without it,
                     config.yaml in the working directory is used if there
                     is one; otherwise everything comes from the
                     environment and the defaults.

    Raises:
        ConfigError: The file is unreadable or not a YAML mapping, a
                     section is not a mapping, or a value is missing or
                     out of range.
    """
    load_dotenv()

    if config_path is None:
        default_path = Path.cwd() / CONFIG_FILENAME
        raw_config = _read_yaml(default_path) if default_path.exists() else {}
        config_path = default_path
    elif config_path.exists():
        raw_config = _read_yaml(config_path)
    else:
        raise ConfigError(
            f"No configuration file at {config_path}",
            details={"file_path": str(config_path)}
        )

    _check_sections(raw_config)

    spotify_section = dict(raw_config.get("spotify") or {})
    spotify_section.update(
        (key, os.environ[env_var])
        for env_var, key in _ENV_OVERRIDES.items()
        if os.environ.get(env_var)
    )

    return Config(
        spotify=_parse_spotify_config(spotify_section, config_path),
        storage=_parse_storage_config(raw_config.get("storage")),
        sync=_parse_sync_config(raw_config.get("sync"))
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    details = {"file_path": str(config_path)}
    try:
        loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(
            f"Cannot read {config_path}: {e}",
            details={**details, "original_error": str(e)}
        ) from e
    except yaml.YAMLError as e:
        raise ConfigError(
            f"{config_path} is not valid YAML: {e}",
            details={**details, "original_error": str(e)}
        ) from e

    if loaded is None:
        # empty file
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(
            f"{config_path} must hold a mapping at the top level",
            details=details
        )
    return loaded


def _check_sections(raw_config: dict[str, Any]) -> None:
    for section in ("spotify", "storage", "sync"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"'{section}' must be a mapping, got {type(value).__name__}",
                details={"section": section}
            )


def _non_empty_string(section: dict[str, Any], key: str) -> str | None:
    value = section.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _parse_spotify_config(spotify_section: dict[str, Any], config_path: Path) -> SpotifyConfig:
    """
    Read the credentials; client_id and client_secret are required.

    Raises:
        ConfigError: A credential is missing, empty, or not a string.
    """
    credentials = {}
    for key, env_var in (("client_id", "SPOTIFY_CLIENT_ID"), ("client_secret", "SPOTIFY_CLIENT_SECRET")):
        credentials[key] = _non_empty_string(spotify_section, key)
        if credentials[key] is None:
            raise ConfigError(
                f"'spotify.{key}' is required (in the config file or as {env_var})",
                details={"field": f"spotify.{key}", "file_path": str(config_path)}
            )

    redirect_uri = spotify_section.get("redirect_uri") or DEFAULT_REDIRECT_URI
    if not isinstance(redirect_uri, str):
        raise ConfigError(
            "'spotify.redirect_uri' must be a string",
            details={"field": "spotify.redirect_uri"}
        )

    return SpotifyConfig(redirect_uri=redirect_uri.strip(), **credentials)


def _parse_storage_config(storage_section: dict[str, Any] | None) -> StorageConfig:
    """Resolve storage.directory to an absolute path. The CLI creates it."""
    section = storage_section or {}
    if section.get("directory") is None:
        directory = DEFAULT_STORAGE_DIRECTORY
    else:
        directory = _non_empty_string(section, "directory")
        if directory is None:
            raise ConfigError(
                "'storage.directory' must be a non-empty string",
                details={"field": "storage.directory"}
            )

    return StorageConfig(directory=Path(directory).expanduser().resolve())


def _parse_sync_config(sync_section: dict[str, Any] | None) -> SyncConfig:
    page_size = (sync_section or {}).get("page_size")
    if page_size is None:
        return SyncConfig(page_size=DEFAULT_PAGE_SIZE)

    # bool is an int subclass
    if (
        not isinstance(page_size, int)
        or isinstance(page_size, bool)
        or not 1 <= page_size <= MAX_PAGE_SIZE
    ):
        raise ConfigError(
            f"'sync.page_size' must be an integer between 1 and {MAX_PAGE_SIZE}",
            details={"field": "sync.page_size", "value": page_size}
        )

    return SyncConfig(page_size=page_size)
