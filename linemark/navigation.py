"""
Ordered navigation over bookmarks.

The navigator only reads the store's canonical-order views. Bookmarks
flagged ``failed_jump`` are skipped by next/previous and excluded from
wraparound, unless every bookmark in the group is flagged, in which case
navigation reports ``NoUsableBookmarksError`` instead of moving.
"""

import logging
from typing import Optional

from .errors import NavigationFailure, NoUsableBookmarksError
from .protocol import Document, EditorHost
from .store import BookmarkStore
from .types import Bookmark, Selection

logger = logging.getLogger(__name__)


class Navigator:
    """Next / previous / nearest queries against a BookmarkStore."""

    def __init__(self, store: BookmarkStore, group_name=None):
        self._store = store
        # Resolves a group id to a display name for error messages
        self._group_name = group_name or str

    def next(self, path: str, line: int, group_id: int) -> Optional[Bookmark]:
        """
        First bookmark strictly after ``(path, line)`` in canonical order.

        Wraps around to the first usable bookmark of the group when nothing
        follows. Returns None for an empty group.

        Raises:
            NoUsableBookmarksError: every bookmark of the group failed to jump
        """
        bookmarks = self._store.group_bookmarks(group_id)
        broken = 0
        for bookmark in bookmarks:
            if bookmark.failed_jump:
                broken += 1
                continue
            if bookmark.file_path > path:
                return bookmark
            if bookmark.file_path == path and bookmark.line > line:
                return bookmark
        return self._wrap(bookmarks, broken, group_id, reverse=False)

    def previous(self, path: str, line: int, group_id: int) -> Optional[Bookmark]:
        """Mirror image of ``next``: last bookmark strictly before ``(path, line)``."""
        bookmarks = self._store.group_bookmarks(group_id)
        broken = 0
        for bookmark in reversed(bookmarks):
            if bookmark.failed_jump:
                broken += 1
                continue
            if bookmark.file_path < path:
                return bookmark
            if bookmark.file_path == path and bookmark.line < line:
                return bookmark
        return self._wrap(bookmarks, broken, group_id, reverse=True)

    def _wrap(self, bookmarks: list[Bookmark], broken: int, group_id: int,
              *, reverse: bool) -> Optional[Bookmark]:
        if not bookmarks:
            return None
        if broken >= len(bookmarks):
            raise NoUsableBookmarksError(self._group_name(group_id))
        ordered = reversed(bookmarks) if reverse else bookmarks
        for bookmark in ordered:
            if not bookmark.failed_jump:
                return bookmark
        return None

    def nearest_in_file(self, path: str, line: int, group_id: Optional[int] = None) -> Optional[Bookmark]:
        """
        Closest bookmark to *line* in *path*, optionally within one group.

        Scans once, tracking the closest bookmark at or before *line* and the
        closest at or after it. On equal distance the one before wins.
        """
        before: Optional[Bookmark] = None
        after: Optional[Bookmark] = None
        for bookmark in self._store.file_bookmarks(path):
            if group_id is not None and bookmark.group_id != group_id:
                continue
            if bookmark.line <= line and (before is None or bookmark.line > before.line):
                before = bookmark
            if bookmark.line >= line and (after is None or bookmark.line < after.line):
                after = bookmark

        if before is not None and after is not None:
            if after.line - line < line - before.line:
                return after
            return before
        return before or after

    # -------------------------------------------------------------------------
    # Selection expansion
    # -------------------------------------------------------------------------

    def expand_selection_forward(self, path: str, selection: Selection, document: Document,
                                 group_id: int) -> Optional[Selection]:
        """
        Extend *selection* down to the next bookmark line of the group.

        A selection that already ends at the end of its line searches from
        the following line. The new end is the end of the bookmark line when
        the bookmark sits on the selection's own end line, else column 0.
        """
        end_line_length = len(document.line_at(selection.end_line))
        search_from = selection.end_line
        if selection.end_column >= end_line_length:
            search_from += 1

        target = None
        for bookmark in self._store.file_bookmarks(path):
            if bookmark.group_id == group_id and bookmark.line >= search_from:
                target = bookmark
                break
        if target is None:
            return None

        end_column = end_line_length if target.line == selection.end_line else 0
        return Selection(selection.start_line, selection.start_column, target.line, end_column)

    def expand_selection_backward(self, path: str, selection: Selection, document: Document,
                                  group_id: int) -> Optional[Selection]:
        """Extend *selection* up to the previous bookmark line of the group."""
        search_from = selection.start_line
        if selection.start_column == 0:
            search_from -= 1

        target = None
        for bookmark in reversed(self._store.file_bookmarks(path)):
            if bookmark.group_id == group_id and bookmark.line <= search_from:
                target = bookmark
                break
        if target is None:
            return None

        if target.line == selection.start_line:
            start_column = 0
        else:
            start_column = len(document.line_at(target.line))
        return Selection(target.line, start_column, selection.end_line, selection.end_column)

    # -------------------------------------------------------------------------
    # Jumping
    # -------------------------------------------------------------------------

    def jump(self, bookmark: Bookmark, host: EditorHost, *, preview: bool = False) -> None:
        """
        Reveal *bookmark* through the host.

        On failure the bookmark is flagged ``failed_jump`` (sticky until
        cleared) and NavigationFailure is raised. Success clears the flag.
        """
        try:
            host.reveal(bookmark.file_path, bookmark.line, bookmark.column, preview=preview)
        except Exception as e:
            bookmark.failed_jump = True
            logger.warning("Failed to navigate to bookmark %s: %s", bookmark, e)
            raise NavigationFailure(
                f"Failed to navigate to bookmark ({e})", bookmark=bookmark
            ) from e
        bookmark.failed_jump = False
