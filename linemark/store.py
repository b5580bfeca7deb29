"""
In-memory bookmark store.

The store exclusively owns all Bookmark values and is the source of truth
for:
- The flat bookmark collection, kept in canonical order
  (file path, line, column)
- Derived per-file and per-group lists (caches, rebuilt on next read)

Every mutation invalidates the affected cache entries eagerly and emits a
decoration-dirty event for the affected file and group.
"""

import logging
from typing import Callable, Iterable, Optional

from .events import DecorationEvents
from .types import DEFAULT_GROUP_NAME, Bookmark, sort_key

logger = logging.getLogger(__name__)

Predicate = Callable[[Bookmark], bool]


class BookmarkStore:
    """
    Bookmark collection with cached views by file and by group.

    Views returned by ``file_bookmarks`` / ``group_bookmarks`` are in
    canonical order. They are owned by the cache: callers must not mutate
    them and must not hold them across a store mutation.
    """

    def __init__(self, events: Optional[DecorationEvents] = None):
        self._events = events or DecorationEvents()
        self._bookmarks: list[Bookmark] = []
        self._by_file: dict[str, list[Bookmark]] = {}
        self._by_group: dict[int, list[Bookmark]] = {}

    @property
    def events(self) -> DecorationEvents:
        return self._events

    def __len__(self) -> int:
        return len(self._bookmarks)

    def __iter__(self):
        return iter(list(self._bookmarks))

    def __contains__(self, bookmark: Bookmark) -> bool:
        return any(b is bookmark for b in self._bookmarks)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(self, bookmark: Bookmark) -> Bookmark:
        """
        Insert a bookmark and re-sort.

        Args:
            bookmark: The bookmark to insert

        Returns:
            The inserted bookmark

        Raises:
            ValueError: If the group already has a bookmark on that line
        """
        existing = self.at(bookmark.file_path, bookmark.line, bookmark.group_id)
        if existing is not None and existing is not bookmark:
            raise ValueError(
                f"Group {bookmark.group_id} already has a bookmark at "
                f"{bookmark.file_path}:{bookmark.line}"
            )
        if existing is bookmark:
            return bookmark
        self._bookmarks.append(bookmark)
        self._sort()
        self._invalidate_for(bookmark, "add")
        return bookmark

    def add_many(self, bookmarks: Iterable[Bookmark]) -> int:
        """Insert several bookmarks with a single re-sort. Returns the count."""
        count = 0
        with self._events.batch():
            for bookmark in bookmarks:
                existing = self.at(bookmark.file_path, bookmark.line, bookmark.group_id)
                if existing is not None:
                    raise ValueError(
                        f"Duplicate bookmark at {bookmark.file_path}:{bookmark.line}"
                    )
                self._bookmarks.append(bookmark)
                # Keep the per-file view coherent for the duplicate check above
                self._invalidate_for(bookmark, "add")
                count += 1
            self._sort()
            self._by_file.clear()
            self._by_group.clear()
        return count

    def remove(self, bookmark: Bookmark) -> bool:
        """
        Delete a bookmark.

        Args:
            bookmark: The bookmark instance to delete

        Returns:
            True if the bookmark was present and removed
        """
        for index, candidate in enumerate(self._bookmarks):
            if candidate is bookmark:
                del self._bookmarks[index]
                self._invalidate_for(bookmark, "remove")
                return True
        return False

    def remove_many(self, bookmarks: Iterable[Bookmark]) -> int:
        removed = 0
        with self._events.batch():
            for bookmark in list(bookmarks):
                if self.remove(bookmark):
                    removed += 1
        return removed

    def replace(self, old: Bookmark, new: Bookmark) -> Bookmark:
        """
        Remove *old* and insert *new* as one logical change.

        Relabel and move are implemented this way so that the single-label
        and one-per-line invariants are checked against the new identity.
        """
        with self._events.batch():
            self.remove(old)
            self.add(new)
        return new

    def touch(self, paths: Iterable[str]) -> None:
        """
        Re-sort after bookmarks were mutated in place.

        Invalidates the file caches for *paths* and every group cache, since
        a position change moves entries within group lists too.
        """
        self._sort()
        with self._events.batch():
            for path in set(paths):
                self._by_file.pop(path, None)
                self._events.dirty("moved", file_path=path)
            self._by_group.clear()

    def rename_file(self, old_path: str, new_path: str, *, prefix: bool = False) -> set[str]:
        """
        Re-point bookmarks from *old_path* to *new_path*.

        With ``prefix=True`` every path under the directory *old_path* is
        rewritten. A renamed bookmark landing on a line its group already
        uses at the destination is dropped. A single-character label takes
        over that label's slot at the destination. Returns the set of
        affected (old and new) paths.
        """
        moves: list[tuple[Bookmark, str]] = []
        for bookmark in self._bookmarks:
            if prefix:
                if not _is_under(bookmark.file_path, old_path):
                    continue
                moves.append((bookmark, new_path + bookmark.file_path[len(old_path):]))
            elif bookmark.file_path == old_path:
                moves.append((bookmark, new_path))
        if not moves:
            return set()

        moving = {id(b) for b, _ in moves}
        staying = [b for b in self._bookmarks if id(b) not in moving]
        lines = {(b.file_path, b.line, b.group_id) for b in staying}
        slots = {(b.file_path, b.label, b.group_id): b for b in staying if b.has_slot_label}

        changed: set[str] = set()
        doomed: list[Bookmark] = []
        for bookmark, target in moves:
            changed.add(bookmark.file_path)
            changed.add(target)
            if (target, bookmark.line, bookmark.group_id) in lines:
                logger.warning(
                    "Dropping bookmark %s: %s already has one on line %d",
                    bookmark, target, bookmark.line + 1,
                )
                doomed.append(bookmark)
                continue
            if bookmark.has_slot_label:
                holder = slots.pop((target, bookmark.label, bookmark.group_id), None)
                if holder is not None:
                    logger.debug("Label %r moves from %s", bookmark.label, holder)
                    doomed.append(holder)
                    lines.discard((holder.file_path, holder.line, holder.group_id))
            bookmark.file_path = target

        if doomed:
            gone = {id(b) for b in doomed}
            self._bookmarks = [b for b in self._bookmarks if id(b) not in gone]
        logger.debug("Renamed %s -> %s (%d paths)", old_path, new_path, len(changed))
        self.touch(changed)
        return changed

    def clear(self) -> None:
        self._bookmarks = []
        self.invalidate_all()

    # -------------------------------------------------------------------------
    # Cache invalidation
    # -------------------------------------------------------------------------

    def invalidate_file(self, path: str) -> None:
        self._by_file.pop(path, None)
        self._events.dirty("file", file_path=path)

    def invalidate_group(self, group_id: int) -> None:
        self._by_group.pop(group_id, None)
        self._events.dirty("group", group_id=group_id)

    def invalidate_all(self) -> None:
        self._by_file.clear()
        self._by_group.clear()
        self._events.dirty("all")

    def _invalidate_for(self, bookmark: Bookmark, reason: str) -> None:
        self._by_file.pop(bookmark.file_path, None)
        self._by_group.pop(bookmark.group_id, None)
        self._events.dirty(reason, file_path=bookmark.file_path, group_id=bookmark.group_id)

    def _sort(self) -> None:
        self._bookmarks.sort(key=sort_key)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def all(self) -> list[Bookmark]:
        """All bookmarks in canonical order (a copy)."""
        return list(self._bookmarks)

    def file_bookmarks(self, path: str) -> list[Bookmark]:
        cached = self._by_file.get(path)
        if cached is None:
            cached = [b for b in self._bookmarks if b.file_path == path]
            self._by_file[path] = cached
        return cached

    def group_bookmarks(self, group_id: int) -> list[Bookmark]:
        cached = self._by_group.get(group_id)
        if cached is None:
            cached = [b for b in self._bookmarks if b.group_id == group_id]
            self._by_group[group_id] = cached
        return cached

    def find_in_file(self, path: str, predicate: Optional[Predicate] = None) -> list[Bookmark]:
        """Bookmarks of one file matching *predicate*, in canonical order."""
        bookmarks = self.file_bookmarks(path)
        if predicate is None:
            return list(bookmarks)
        return [b for b in bookmarks if predicate(b)]

    def find_in_group(self, group_id: int, predicate: Optional[Predicate] = None) -> list[Bookmark]:
        """Bookmarks of one group matching *predicate*, in canonical order."""
        bookmarks = self.group_bookmarks(group_id)
        if predicate is None:
            return list(bookmarks)
        return [b for b in bookmarks if predicate(b)]

    def at(self, path: str, line: int, group_id: int) -> Optional[Bookmark]:
        """The bookmark of *group_id* on *line* of *path*, if any."""
        for bookmark in self.file_bookmarks(path):
            if bookmark.line == line and bookmark.group_id == group_id:
                return bookmark
        return None

    def with_label(self, path: str, label: str, group_id: int) -> Optional[Bookmark]:
        for bookmark in self.file_bookmarks(path):
            if bookmark.group_id == group_id and bookmark.label == label:
                return bookmark
        return None

    def files(self) -> list[str]:
        """Distinct file paths in canonical order."""
        seen: dict[str, None] = {}
        for bookmark in self._bookmarks:
            seen.setdefault(bookmark.file_path, None)
        return list(seen)

    def is_empty(self, groups) -> bool:
        """
        True when there is nothing worth persisting.

        Zero bookmarks and exactly one group, which is the default group
        with no customization.
        """
        if self._bookmarks:
            return False
        remaining = groups.all()
        if len(remaining) != 1:
            return False
        only = remaining[0]
        return only.name == DEFAULT_GROUP_NAME and not groups.is_customized(only)


def _is_under(path: str, directory: str) -> bool:
    if path == directory:
        return True
    stripped = directory.rstrip("/\\")
    return path.startswith(stripped + "/") or path.startswith(stripped + "\\")
