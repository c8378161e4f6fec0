"""
Logging for playlist-router.

Every run writes to four places:
    - the terminal, through tqdm so `sync --all` progress bars stay intact
    - log_full_<ts>.log with every record from DEBUG up
    - log_errors_<ts>.log with ERROR and CRITICAL only
    - sync_failures_<ts>.log, a short report with one block per failed sync

The files live in <storage directory>/logs and are never appended to;
each invocation gets a fresh set named after its start time.

Modules only ever need get_logger():

    from playlist_router.core.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Routing %d tracks", len(tracks))

setup_logging() is the CLI's job.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


LOG_FULL_FILENAME = "log_full"
LOG_ERRORS_FILENAME = "log_errors"
SYNC_FAILURES_FILENAME = "sync_failures"

FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that flood DEBUG output with HTTP traffic
QUIET_LOGGERS = ("spotipy", "urllib3")

# Extra record attributes read by SyncFailureHandler
FAILURE_FIELDS = ("base_playlist_id", "event_id", "step", "child_id", "error")


class Colors:
    """Terminal escape sequences."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """Prefix each message with its level name, colored by severity."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        message = super().format(record)
        return f"{color}{record.levelname}{Colors.RESET}: {message}"


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that prints through tqdm.write().

    A plain StreamHandler would draw over the progress bar that
    `playlist-router sync --all` keeps at the bottom of the terminal.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


class SyncFailureHandler(logging.Handler):
    """
    Write failed syncs to the sync failures report.

    Records are ignored unless they were emitted by log_sync_failure(),
    which attaches the `sync_failed_*` attributes. Each failure becomes a
    header line followed by the error text:

        base=3f2a... event=9c1e... step=add_tracks child=77ab...
        failed to add tracks batch 100-150 to playlist 5Xyz: ...
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self._report: TextIO | None = None

    def open(self) -> None:
        """Create (or truncate) the report file."""
        self._report = self.report_path.open("w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if self._report is None or not hasattr(record, "sync_failed_base_playlist_id"):
            return

        fields = {
            name: getattr(record, f"sync_failed_{name}", None) or ""
            for name in FAILURE_FIELDS
        }
        header = " ".join(
            f"{label}={fields[name] or '-'}"
            for label, name in (
                ("base", "base_playlist_id"),
                ("event", "event_id"),
                ("step", "step"),
                ("child", "child_id"),
            )
        )

        try:
            self._report.write(f"{header}\n{fields['error']}\n\n")
            self._report.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._report is not None:
            try:
                self._report.close()
            except OSError:
                pass
            self._report = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Let through ERROR and above."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def _file_handler(path: Path, error_only: bool = False) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    if error_only:
        handler.addFilter(ErrorOnlyFilter())
    return handler


def setup_logging(storage_dir: Path, console_level: int = logging.INFO) -> None:
    """
    Install the console, file and failure-report handlers on the root logger.

    Any handlers already on the root logger are dropped first, so calling
    this again (as the tests do through the CLI) does not duplicate output.
    Not thread-safe; call it from the main thread before work starts.

    Args:
        storage_dir: The configured storage directory. Log files go to
                     its logs/ subdirectory, which is created if missing.
        console_level: Lowest level shown in the terminal. Files always
                       receive DEBUG and up.
    """
    logs_dir = storage_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    started = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    console = TqdmLoggingHandler()
    console.setLevel(console_level)
    console.setFormatter(ColoredConsoleFormatter())

    failures = SyncFailureHandler(logs_dir / f"{SYNC_FAILURES_FILENAME}_{started}.log")
    failures.open()

    root = logging.getLogger()
    shutdown_logging()
    root.setLevel(logging.DEBUG)
    for handler in (
        console,
        _file_handler(logs_dir / f"{LOG_FULL_FILENAME}_{started}.log"),
        _file_handler(logs_dir / f"{LOG_ERRORS_FILENAME}_{started}.log", error_only=True),
        failures,
    ):
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module; pass __name__."""
    return logging.getLogger(name)


def log_sync_failure(
    logger: logging.Logger,
    base_playlist_id: str,
    sync_event_id: str | None,
    error_message: str,
    step: str | None = None,
    child_id: str | None = None
) -> None:
    """
    Log a failed sync at ERROR, tagged so it also lands in the failures report.

    Example:
        log_sync_failure(
            logger,
            base_playlist_id=event.base_playlist_id,
            sync_event_id=event.id,
            error_message=str(error),
            step="add_tracks",
            child_id=child.id
        )
    """
    values = (base_playlist_id, sync_event_id, step, child_id, error_message)
    logger.error(
        f"Sync failed for base playlist {base_playlist_id}: {error_message}",
        extra={f"sync_failed_{name}": value for name, value in zip(FAILURE_FIELDS, values)}
    )


def format_sync_summary(tracks: int, api_requests: int, children: int) -> str:
    """One-line summary printed after a successful sync."""
    return (
        f"{Colors.GREEN}Synced{Colors.RESET}: "
        f"{tracks} tracks, {children} child playlists, "
        f"{Colors.CYAN}{api_requests}{Colors.RESET} API requests"
    )


def shutdown_logging() -> None:
    """Flush, close and detach every root handler. Safe to call repeatedly."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root.removeHandler(handler)
