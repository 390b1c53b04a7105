"""
Error types and error logging for tidbits.

Failures are classified rather than handled here: the service and CLI
decide whether to retry, buffer for sync, or give up.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class TidbitsError(Exception):
    """Base class for all tidbits errors."""


class DataError(TidbitsError):
    """Input failed validation. Never retried."""

    def __init__(self, message: str, violations: Optional[list[str]] = None):
        super().__init__(message)
        self.violations = list(violations or [])


class ClientError(TidbitsError):
    """The remote service rejected the request (4xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServerError(TidbitsError):
    """The remote service failed (5xx) or could not be reached.

    Entries that hit this error can be buffered in the sync queue.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(TidbitsError):
    """Local persistence failure."""


class DuplicateKeyError(StorageError):
    """An entry with the same key (or id) already exists."""


class NotFoundError(StorageError):
    """The row targeted by an update does not exist."""


class SyncQueueError(TidbitsError):
    """The sync log could not be read or written."""


class MediaError(TidbitsError):
    """A media resource could not be downloaded or saved."""


class NotAMediaFileError(TidbitsError):
    """The entry value is neither a web address nor an existing local file."""


class ConfigurationError(TidbitsError):
    """Settings are missing or inconsistent."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting TIDBITS_HOME."""
    home = os.environ.get("TIDBITS_HOME")
    if home:
        return Path(home) / "tidbits-errors.log"
    return Path.home() / ".tidbits" / "tidbits-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Error log unwritable, keep going
    return log_path
