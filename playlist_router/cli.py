"""
Command-line interface for playlist-router.

This module implements the CLI using Click, providing all commands
for managing base/child playlists and running syncs.
rich-click is used for the output colors.

Commands:
    playlist-router base add <spotify-url-or-id> [--name]
    playlist-router base list
    playlist-router base update <base-id> [--name] [--active/--inactive]
    playlist-router base remove <base-id> [--keep-remote] [--yes]

    playlist-router child add <base-id> --name <name> [--description] [--rules <file>]
    playlist-router child list <base-id>
    playlist-router child update <child-id> [--name] [--description]
                                 [--rules <file> | --clear-rules] [--active/--inactive]
    playlist-router child remove <child-id> [--yes]

    playlist-router sync <base-id>      Rebuild the children of one base playlist
    playlist-router sync --all          Sync every active base playlist

    playlist-router events [--base <base-id>] [--limit N]

Rules files:
    YAML or JSON, in the stored format:

        version: 1
        predicates:
          popularity: {kind: range, min: 50}
          genres: {kind: set, include: [rock, indie], exclude: [metal]}

Configuration:
    The CLI reads config.yaml from the current directory (or --config)
    and .env; see playlist_router.core.config.

Exit codes:
    0 success, 1 configuration, 2 database, 3 Spotify, 4 other error
    (including a failed sync), 5 sync already in progress, 130 interrupted.
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Optional

import rich_click as click
import yaml

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100

from playlist_router import __version__
from playlist_router.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    FilterRulesError,
    PlaylistRouterError,
    SpotifyError,
    SyncConflictError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_router.core.logger import format_sync_summary
from playlist_router.filters.rules import FilterRules
from playlist_router.playlists import ChildPlaylist, PlaylistManager
from playlist_router.spotify import SpotifyClient
from playlist_router.sync import SyncEvent, SyncOrchestrator
from playlist_router.utils import ensure_directory

logger = get_logger(__name__)


TOKEN_CACHE_FILENAME = ".spotify_token_cache"

EXIT_CONFIG = 1
EXIT_UNEXPECTED = 1
EXIT_DATABASE = 2
EXIT_SPOTIFY = 3
EXIT_OTHER = 4
EXIT_CONFLICT = 5
EXIT_INTERRUPTED = 130


@dataclass
class Session:
    """Everything a command needs once startup has succeeded."""
    config: Config
    database: Database
    spotify: SpotifyClient
    user_id: str

    @property
    def manager(self) -> PlaylistManager:
        return PlaylistManager(self.database, self.spotify)

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            self.spotify,
            self.database,
            self.database,
            self.database,
            page_size=self.config.sync.page_size
        )


@contextmanager
def _session(ctx: click.Context) -> Generator[Session, None, None]:
    """
    Start the application for one command.

    Loads the configuration, sets up logging, opens the database and
    authenticates with Spotify. Errors are mapped to exit codes; logging
    is shut down and the database closed on the way out.
    """
    options = ctx.find_root().obj or {}
    database: Database | None = None

    try:
        config = load_config(options.get("config_path"))

        ensure_directory(config.storage.directory)
        setup_logging(
            config.storage.directory,
            console_level=logging.DEBUG if options.get("verbose") else logging.INFO
        )

        database = Database(config.storage.database_path)

        spotify = _initialize_spotify(config)
        yield Session(config, database, spotify, spotify.current_user_id())

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(EXIT_CONFIG)

    except SyncConflictError as e:
        click.echo(f"Sync conflict: {e.message}", err=True)
        sys.exit(EXIT_CONFLICT)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(EXIT_DATABASE)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_auth_error:
            click.echo("Check your client_id and client_secret in config.yaml", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(EXIT_SPOTIFY)

    except PlaylistRouterError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(EXIT_OTHER)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(EXIT_INTERRUPTED)

    except click.ClickException:
        raise

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(EXIT_UNEXPECTED)

    finally:
        if database is not None:
            database.close()
        shutdown_logging()


def _initialize_spotify(config: Config) -> SpotifyClient:
    """
    Initialize the Spotify client singleton.

    The OAuth token is cached in the storage directory so the browser
    authorization only happens on first use.

    Raises:
        SpotifyError: If authentication fails.
    """
    return SpotifyClient.init(
        client_id=config.spotify.client_id,
        client_secret=config.spotify.client_secret,
        redirect_uri=config.spotify.redirect_uri,
        cache_path=config.storage.directory / TOKEN_CACHE_FILENAME
    )


def load_rules_file(path: Path) -> FilterRules:
    """
    Read filter rules from a YAML or JSON file.

    Raises:
        FilterRulesError: If the file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise FilterRulesError(
            f"Failed to read rules file: {e}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e
    except yaml.YAMLError as e:
        raise FilterRulesError(
            f"Invalid YAML/JSON in rules file: {e}",
            details={"file_path": str(path), "original_error": str(e)}
        ) from e

    return FilterRules.from_dict(data)


# =============================================================================
# Root group
# =============================================================================

@click.group(invoke_without_command=True)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug output on the console"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, version: bool) -> None:
    """
    playlist-router: Route the tracks of a Spotify playlist into filtered child playlists.

    A [bold]base[/bold] playlist is the one you curate. Each [bold]child[/bold]
    playlist has filter rules; a sync rebuilds every child from the base playlist.

    \b
    BASIC USAGE:
        playlist-router base add "https://open.spotify.com/playlist/..."
        playlist-router child add <base-id> --name "Chill" --rules chill.yaml
        playlist-router sync <base-id>
        playlist-router events --base <base-id>
    """
    if version:
        click.echo(f"playlist-router {__version__}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# =============================================================================
# Base playlists
# =============================================================================

@cli.group()
def base() -> None:
    """Manage base playlists."""


@base.command("add")
@click.argument("playlist_ref", metavar="<spotify-url-or-id>")
@click.option("--name", default=None, help="Display name (default: the Spotify name)")
@click.pass_context
def base_add(ctx: click.Context, playlist_ref: str, name: Optional[str]) -> None:
    """Register a Spotify playlist as a base playlist."""
    with _session(ctx) as session:
        try:
            playlist = session.manager.add_base_playlist(session.user_id, playlist_ref, name=name)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="<spotify-url-or-id>") from e
        click.echo(f"Added base playlist {playlist.id}: {playlist.name}")


@base.command("list")
@click.pass_context
def base_list(ctx: click.Context) -> None:
    """List your base playlists."""
    with _session(ctx) as session:
        playlists = session.manager.list_base_playlists(session.user_id)
        if not playlists:
            click.echo("No base playlists. Add one with: playlist-router base add <url>")
            return
        for playlist in playlists:
            state = "" if playlist.is_active else " (inactive)"
            click.echo(f"{playlist.id}  {playlist.name}{state}  [spotify:{playlist.spotify_playlist_id}]")


@base.command("update")
@click.argument("base_id", metavar="<base-id>")
@click.option("--name", default=None, help="New display name")
@click.option("--active/--inactive", "is_active", default=None, help="Include in `sync --all`")
@click.pass_context
def base_update(
    ctx: click.Context,
    base_id: str,
    name: Optional[str],
    is_active: Optional[bool]
) -> None:
    """Rename or (de)activate a base playlist."""
    if name is None and is_active is None:
        raise click.UsageError("Nothing to update: pass --name and/or --active/--inactive")

    with _session(ctx) as session:
        playlist = session.manager.update_base_playlist(
            session.user_id, base_id, name=name, is_active=is_active
        )
        click.echo(f"Updated base playlist {playlist.id}: {playlist.name}")


@base.command("remove")
@click.argument("base_id", metavar="<base-id>")
@click.option("--keep-remote", is_flag=True, help="Keep the children's Spotify playlists")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def base_remove(ctx: click.Context, base_id: str, keep_remote: bool, yes: bool) -> None:
    """Remove a base playlist with its children and sync history."""
    if not yes:
        click.confirm(
            "This removes the base playlist, all its children"
            + ("" if keep_remote else " and their Spotify playlists")
            + ". Continue?",
            abort=True
        )

    with _session(ctx) as session:
        session.manager.remove_base_playlist(session.user_id, base_id, keep_remote=keep_remote)
        click.echo(f"Removed base playlist {base_id}")


# =============================================================================
# Child playlists
# =============================================================================

@cli.group()
def child() -> None:
    """Manage child playlists."""


@child.command("add")
@click.argument("base_id", metavar="<base-id>")
@click.option("--name", required=True, help="Child name")
@click.option("--description", default="", help="Child description")
@click.option(
    "--rules", "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<file.yaml|json>",
    help="Filter rules (default: every track)"
)
@click.pass_context
def child_add(
    ctx: click.Context,
    base_id: str,
    name: str,
    description: str,
    rules_path: Optional[Path]
) -> None:
    """Create a child playlist (and its Spotify playlist)."""
    with _session(ctx) as session:
        rules = load_rules_file(rules_path) if rules_path else None
        playlist = session.manager.add_child_playlist(
            session.user_id, base_id, name, description=description, filter_rules=rules
        )
        click.echo(f"Added child playlist {playlist.id}: {playlist.name}")


@child.command("list")
@click.argument("base_id", metavar="<base-id>")
@click.pass_context
def child_list(ctx: click.Context, base_id: str) -> None:
    """List the child playlists of a base playlist."""
    with _session(ctx) as session:
        children = session.manager.list_child_playlists(session.user_id, base_id)
        if not children:
            click.echo("No child playlists.")
            return
        for playlist in children:
            click.echo(_format_child(playlist))


@child.command("update")
@click.argument("child_id", metavar="<child-id>")
@click.option("--name", default=None, help="New name")
@click.option("--description", default=None, help="New description")
@click.option(
    "--rules", "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<file.yaml|json>",
    help="Replace the filter rules"
)
@click.option("--clear-rules", is_flag=True, help="Remove the filter rules (match every track)")
@click.option("--active/--inactive", "is_active", default=None, help="Include in syncs")
@click.pass_context
def child_update(
    ctx: click.Context,
    child_id: str,
    name: Optional[str],
    description: Optional[str],
    rules_path: Optional[Path],
    clear_rules: bool,
    is_active: Optional[bool]
) -> None:
    """Update a child playlist."""
    if rules_path and clear_rules:
        raise click.UsageError("Cannot use both --rules and --clear-rules")

    with _session(ctx) as session:
        rules = load_rules_file(rules_path) if rules_path else None
        playlist = session.manager.update_child_playlist(
            session.user_id,
            child_id,
            name=name,
            description=description,
            filter_rules=rules,
            clear_filter_rules=clear_rules,
            is_active=is_active
        )
        click.echo(f"Updated child playlist {playlist.id}: {playlist.name}")


@child.command("remove")
@click.argument("child_id", metavar="<child-id>")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def child_remove(ctx: click.Context, child_id: str, yes: bool) -> None:
    """Remove a child playlist and delete its Spotify playlist."""
    if not yes:
        click.confirm("This also deletes the child's Spotify playlist. Continue?", abort=True)

    with _session(ctx) as session:
        session.manager.remove_child_playlist(session.user_id, child_id)
        click.echo(f"Removed child playlist {child_id}")


# =============================================================================
# Sync and history
# =============================================================================

@cli.command()
@click.argument("base_id", metavar="<base-id>", required=False)
@click.option("--all", "sync_all", is_flag=True, help="Sync every active base playlist")
@click.pass_context
def sync(ctx: click.Context, base_id: Optional[str], sync_all: bool) -> None:
    """Rebuild the child playlists of a base playlist from its current tracks."""
    if bool(base_id) == sync_all:
        raise click.UsageError("Pass either <base-id> or --all")

    with _session(ctx) as session:
        orchestrator = session.orchestrator

        if not sync_all:
            event = orchestrator.sync_base_playlist(session.user_id, base_id)
            _print_event_summary(event)
            return

        results = orchestrator.sync_user(session.user_id, show_progress=True)
        if not results:
            click.echo("No active base playlists.")
            return

        failed = 0
        for playlist, result in results:
            if isinstance(result, SyncEvent):
                click.echo(f"{playlist.name}: " + format_sync_summary(
                    result.tracks_processed,
                    result.total_api_requests,
                    len(result.child_playlist_ids)
                ))
            else:
                failed += 1
                click.echo(f"{playlist.name}: FAILED - {result}", err=True)

        logger.info(f"Synced {len(results) - failed}/{len(results)} base playlists")
        if failed:
            sys.exit(EXIT_OTHER)


@cli.command()
@click.option("--base", "base_id", default=None, metavar="<base-id>", help="Only this base playlist")
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1), help="Number of events")
@click.pass_context
def events(ctx: click.Context, base_id: Optional[str], limit: int) -> None:
    """Show recent sync events, newest first."""
    with _session(ctx) as session:
        history = session.database.list_sync_events(session.user_id, base_playlist_id=base_id, limit=limit)
        if not history:
            click.echo("No sync events.")
            return
        for event in history:
            click.echo(_format_event(event))


# =============================================================================
# Output helpers
# =============================================================================

def _format_child(playlist: ChildPlaylist) -> str:
    state = "" if playlist.is_active else " (inactive)"
    rules = "all tracks"
    if playlist.filter_rules is not None and not playlist.filter_rules.is_empty():
        rules = ", ".join(playlist.filter_rules.predicates)
    return f"{playlist.id}  {playlist.name}{state}  rules: {rules}  [spotify:{playlist.spotify_playlist_id}]"


def _format_event(event: SyncEvent) -> str:
    line = (
        f"{event.started_at}  {event.status.value:<11}  base={event.base_playlist_id}  "
        f"tracks={event.tracks_processed}  requests={event.total_api_requests}"
    )
    if event.error_message:
        line += f"\n    {event.error_message}"
    return line


def _print_event_summary(event: SyncEvent) -> None:
    click.echo(format_sync_summary(
        event.tracks_processed,
        event.total_api_requests,
        len(event.child_playlist_ids)
    ))


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `playlist-router` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
