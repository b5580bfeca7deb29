"""
Labeled line bookmarks

Bookmarks anchored to lines of text files, kept correct while the text is
edited, organized into named and styled groups, and persisted to a JSON
file in the workspace.

Quick Start:
    from linemark import commands, loop_timer_factory, open_context

    ctx = open_context(".")        # loads .linemark/bookmarks.json
    commands.toggle_bookmark(ctx, "/abs/path/app.py", 41)
    ctx.flush()                    # write the pending save now

    # Inside an asyncio host, let saves flush themselves after the delay
    ctx = open_context(".", timer_factory=loop_timer_factory())

CLI Usage:
    linemark toggle app.py 42
    linemark label app.py 10 "entry@@review"
    linemark list --all

Environment Variables:
    LINEMARK_ROOT     - Default workspace root for the CLI
    LINEMARK_VERBOSE  - Debug logging to stderr
    LINEMARK_HOME     - Directory for the error log (default ~/.linemark)
"""

from .context import BookmarkContext, open_context
from .errors import (
    LinemarkError,
    LoadParseFailure,
    LoadVersionMismatch,
    NavigationFailure,
    NoDestinationAvailable,
    NoUsableBookmarksError,
    ValidationError,
)
from .groups import GroupRegistry
from .persistence import LoadResult, PersistenceManager, loop_timer_factory
from .reconcile import EditReconciler, TextChange
from .store import BookmarkStore
from .types import Bookmark, Group

__all__ = [
    "Bookmark",
    "BookmarkContext",
    "BookmarkStore",
    "EditReconciler",
    "Group",
    "GroupRegistry",
    "LinemarkError",
    "LoadParseFailure",
    "LoadResult",
    "LoadVersionMismatch",
    "NavigationFailure",
    "NoDestinationAvailable",
    "NoUsableBookmarksError",
    "PersistenceManager",
    "TextChange",
    "ValidationError",
    "loop_timer_factory",
    "open_context",
]
