"""
Error types and error logging utilities for linemark.

Nothing here is fatal: every failure degrades to a reported condition.
Full tracebacks go to an error log; users see a clean one-line message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class LinemarkError(Exception):
    """Base class for all reportable linemark conditions."""


class ValidationError(LinemarkError, ValueError):
    """A group name (or similar user input) was rejected. No state changed."""


class LoadVersionMismatch(LinemarkError):
    """The storage artifact carries an unrecognized ``fileVersion``."""

    def __init__(self, found: object, expected: str):
        self.found = found
        self.expected = expected
        super().__init__(
            f"Bookmark file version {found!r} does not match expected {expected!r}"
        )


class LoadParseFailure(LinemarkError):
    """A collection (groups or bookmarks) in the artifact could not be rebuilt."""

    def __init__(self, collection: str, cause: Exception):
        self.collection = collection
        self.cause = cause
        super().__init__(f"Restoring {collection} failed ({cause})")


class NavigationFailure(LinemarkError):
    """A bookmark's anchor could not be revealed."""

    def __init__(self, message: str, bookmark: Optional[object] = None):
        self.bookmark = bookmark
        super().__init__(message)


class NoUsableBookmarksError(NavigationFailure):
    """Every bookmark in the group is flagged as a failed jump."""

    def __init__(self, group_name: str):
        self.group_name = group_name
        super().__init__(
            f"All bookmarks in group {group_name!r} are broken, time for some cleanup"
        )


class NoDestinationAvailable(LinemarkError):
    """A move or navigation had no eligible target."""


def linemark_home() -> Path:
    """Directory for linemark's own logs, respecting LINEMARK_HOME."""
    home = os.environ.get("LINEMARK_HOME")
    if home:
        return Path(home)
    return Path.home() / ".linemark"


def _error_log_path() -> Path:
    return linemark_home() / "linemark-errors.log"


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
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write the error log; the user still gets the message
    return log_path
