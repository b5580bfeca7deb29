"""
Edit reconciliation: keep bookmark anchors correct while text changes.

An edit event is a sequence of ``TextChange`` values. Each change replaces
the pre-edit range ``(start_line, start_column)..(end_line, end_column)``
with ``text``. Changes are reconciled one at a time, in event order, against
the positions left by the previous change.

Three cases, by comparing the number of line breaks inserted (``new``) with
the number of line breaks replaced (``old = end_line - start_line``):

- ``new == old``: in-place edit. Bookmarks inside the range get their line
  text refreshed and their column clamped; nothing moves.
- ``new > old``: lines were inserted. If the text before the edit start on
  the first line is blank, a bookmark on that line moves with the inserted
  text; otherwise it stays anchored to its unedited prefix.
- ``new < old``: lines were removed. Bookmarks whose lines vanished are
  deleted, bookmarks below move up. A bookmark on the first line survives
  when the prefix before the edit is non-blank.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .protocol import Document
from .store import BookmarkStore
from .types import Bookmark

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextChange:
    """One replaced range of a buffer, in pre-edit coordinates."""
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    text: str = ""

    def __post_init__(self) -> None:
        if (self.end_line, self.end_column) < (self.start_line, self.start_column):
            raise ValueError("TextChange end is before its start")
        if self.start_line < 0 or self.start_column < 0:
            raise ValueError("TextChange positions must be non-negative")

    @classmethod
    def insert(cls, line: int, column: int, text: str) -> "TextChange":
        return cls(line, column, line, column, text)

    @classmethod
    def delete(cls, start_line: int, start_column: int, end_line: int, end_column: int) -> "TextChange":
        return cls(start_line, start_column, end_line, end_column, "")

    @property
    def new_line_count(self) -> int:
        return self.text.count("\n")

    @property
    def old_line_count(self) -> int:
        return self.end_line - self.start_line


@dataclass
class ReconcileResult:
    """What one edit event did to a file's bookmarks."""
    moved: int = 0
    refreshed: int = 0
    removed: list[Bookmark] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.moved or self.refreshed or self.removed)

    def merge(self, other: "ReconcileResult") -> None:
        self.moved += other.moved
        self.refreshed += other.refreshed
        self.removed.extend(other.removed)


class EditReconciler:
    """Applies buffer edits to the bookmarks of one file at a time."""

    def __init__(self, store: BookmarkStore):
        self._store = store

    def apply(self, file_path: str, changes: Iterable[TextChange], document: Document) -> ReconcileResult:
        """
        Reconcile every change of one edit event.

        Args:
            file_path: The edited file; other files are untouched
            changes: The event's changes, in event order
            document: The buffer after the whole event was applied

        Returns:
            Aggregate ReconcileResult for the event
        """
        result = ReconcileResult()
        if not self._store.file_bookmarks(file_path):
            return result

        for change in changes:
            result.merge(self._apply_one(file_path, change, document))

        if result.changed:
            logger.debug(
                "Reconciled %s: moved=%d refreshed=%d removed=%d",
                file_path, result.moved, result.refreshed, len(result.removed),
            )
            self._store.touch([file_path])
        return result

    def _apply_one(self, file_path: str, change: TextChange, document: Document) -> ReconcileResult:
        # Snapshot: removals below must not disturb the iteration
        bookmarks = list(self._store.file_bookmarks(file_path))
        if not bookmarks:
            return ReconcileResult()

        new_count = change.new_line_count
        old_count = change.old_line_count
        if new_count == old_count:
            return self._refresh_range(bookmarks, change.start_line, change.end_line, document)
        if new_count > old_count:
            return self._shift_down(bookmarks, change, document)
        return self._shift_up(file_path, bookmarks, change, document)

    def _refresh_range(self, bookmarks: list[Bookmark], first_line: int, last_line: int,
                       document: Document) -> ReconcileResult:
        result = ReconcileResult()
        for bookmark in bookmarks:
            if first_line <= bookmark.line <= last_line:
                if _refresh_line_text(document, bookmark):
                    result.refreshed += 1
        return result

    def _shift_down(self, bookmarks: list[Bookmark], change: TextChange,
                    document: Document) -> ReconcileResult:
        result = ReconcileResult()
        first_line = change.start_line
        shift_by = change.new_line_count - change.old_line_count
        new_last_line = first_line + change.new_line_count

        if _prefix_is_blank(document, first_line, change.start_column):
            shift_from = first_line
        else:
            shift_from = first_line + 1

        for bookmark in bookmarks:
            if bookmark.line >= shift_from:
                bookmark.line += shift_by
                result.moved += 1
            if first_line <= bookmark.line <= new_last_line:
                if _refresh_line_text(document, bookmark):
                    result.refreshed += 1
        return result

    def _shift_up(self, file_path: str, bookmarks: list[Bookmark], change: TextChange,
                  document: Document) -> ReconcileResult:
        result = ReconcileResult()
        first_line = change.start_line
        shift_by = change.old_line_count - change.new_line_count
        new_last_line = first_line + change.new_line_count

        first_line_deletable = _prefix_is_blank(document, first_line, change.start_column)
        if not first_line_deletable:
            if not any(b.line == first_line for b in bookmarks):
                first_line_deletable = True

        delete_from = first_line if first_line_deletable else first_line + 1
        shift_from = delete_from + shift_by

        for bookmark in bookmarks:
            if bookmark.line < first_line:
                continue
            if delete_from <= bookmark.line < shift_from:
                self._store.remove(bookmark)
                result.removed.append(bookmark)
                continue
            if bookmark.line >= shift_from:
                bookmark.line -= shift_by
                result.moved += 1
            if first_line <= bookmark.line <= new_last_line:
                if _refresh_line_text(document, bookmark):
                    result.refreshed += 1

        if result.removed:
            logger.info("Edit removed %d bookmark(s) in %s", len(result.removed), file_path)
        return result


def _prefix_is_blank(document: Document, line: int, column: int) -> bool:
    """True if the text on *line* before *column* is whitespace only."""
    if line >= document.line_count:
        return True
    return document.line_at(line)[:column].strip() == ""


def _refresh_line_text(document: Document, bookmark: Bookmark) -> bool:
    """Re-read the bookmark's line. Returns True if text or column changed."""
    if bookmark.line >= document.line_count:
        return False
    text = document.line_at(bookmark.line)
    column = min(bookmark.column, len(text))
    line_text = text.strip()
    if column == bookmark.column and line_text == bookmark.line_text:
        return False
    bookmark.column = column
    bookmark.line_text = line_text
    return True
