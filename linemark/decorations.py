"""
Decoration handles and per-file range maps.

This is the integration layer between the core and a ``DecorationBinder``.
It subscribes to the decoration-dirty channel, so the store and registry
never call into rendering.

Handles are cached by their logical key ``(shape, color, icon_text, label)``:
the group handle uses ``label=None``, a labeled bookmark gets its own
handle. Which handle a line shows:

- bookmarks of the active group win over other groups on the same line;
- a bookmark of an active, visible group uses its own handle when one
  exists, otherwise the group handle;
- bookmarks of invisible groups are not drawn.

Handle creation is asynchronous. Until it completes, lines fall back to
the group handle (or stay undecorated); completion invalidates the range
maps so the next ``apply`` picks the new handle up.
"""

import logging
from typing import Any, Hashable, Optional

from .events import DecorationDirty, DecorationEvents
from .groups import GroupRegistry
from .protocol import DecorationBinder, EditorHost
from .store import BookmarkStore
from .types import Bookmark, Group

logger = logging.getLogger(__name__)

HandleKey = tuple[str, str, str, Optional[str]]
RangeMap = dict[Hashable, list[int]]


def group_key(group: Group) -> HandleKey:
    return (group.shape, group.color, group.icon_text, None)


def bookmark_key(group: Group, bookmark: Bookmark) -> HandleKey:
    return (group.shape, group.color, group.icon_text, bookmark.label)


class DecorationCache:
    """
    Caches decoration handles and derives handle -> lines maps per file.

    Args:
        store: Bookmark store to read from
        groups: Group registry to read styles and visibility from
        binder: Creates handles; may be None for headless use
        events: The channel store and registry emit on
    """

    def __init__(
        self,
        store: BookmarkStore,
        groups: GroupRegistry,
        binder: Optional[DecorationBinder],
        events: DecorationEvents,
    ):
        self._store = store
        self._groups = groups
        self._binder = binder
        self._handles: dict[HandleKey, Hashable] = {}
        self._artifacts: dict[HandleKey, Any] = {}
        self._ranges: dict[str, RangeMap] = {}
        self._removed: set[Hashable] = set()
        self._unsubscribe = events.subscribe(self._on_dirty)

    def close(self) -> None:
        self._unsubscribe()

    @property
    def removed_handles(self) -> set[Hashable]:
        return set(self._removed)

    def handle_for(self, key: HandleKey) -> Optional[Hashable]:
        return self._handles.get(key)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def _on_dirty(self, event: DecorationDirty) -> None:
        if event.file_path is not None and not event.style_changed:
            self._ranges.pop(event.file_path, None)
            return
        self._ranges.clear()
        if event.style_changed:
            self._prune()

    def reset(self) -> None:
        """Forget every handle, e.g. after a rendering style change."""
        self._removed.update(self._handles.values())
        self._handles.clear()
        self._artifacts.clear()
        self._ranges.clear()

    def _wanted_keys(self) -> set[HandleKey]:
        wanted: set[HandleKey] = set()
        for group in self._groups.all():
            wanted.add(group_key(group))
        for bookmark in self._store.all():
            if bookmark.label is None:
                continue
            group = self._groups.by_id(bookmark.group_id)
            if group is not None:
                wanted.add(bookmark_key(group, bookmark))
        return wanted

    def _prune(self) -> None:
        """Drop handles nothing refers to any more and remember them as removed."""
        wanted = self._wanted_keys()
        for key in list(self._handles):
            if key not in wanted:
                handle = self._handles.pop(key)
                self._artifacts.pop(key, None)
                self._removed.add(handle)
                logger.debug("Dropped decoration handle %r", handle)

    # -------------------------------------------------------------------------
    # Handle creation
    # -------------------------------------------------------------------------

    async def _create(self, key: HandleKey) -> Optional[Hashable]:
        if self._binder is None:
            return None
        shape, color, icon_text, label = key
        handle, artifact = await self._binder.create(shape, color, icon_text, label)
        previous = self._handles.get(key)
        if previous is not None and previous != handle:
            self._removed.add(previous)
        self._handles[key] = handle
        self._artifacts[key] = artifact
        self._ranges.clear()
        return handle

    async def refresh_group(self, group: Group) -> None:
        """(Re)create the group handle and the own handles of its labeled bookmarks."""
        await self._create(group_key(group))
        for bookmark in list(self._store.group_bookmarks(group.id)):
            if bookmark.label is not None:
                await self._create(bookmark_key(group, bookmark))
        self._prune()

    async def refresh_bookmark(self, bookmark: Bookmark) -> None:
        if bookmark.label is None:
            return
        group = self._groups.by_id(bookmark.group_id)
        if group is None:
            return
        key = bookmark_key(group, bookmark)
        if key not in self._handles:
            await self._create(key)

    async def refresh_all(self) -> None:
        """Create every missing handle and drop the unused ones."""
        for key in sorted(self._wanted_keys(), key=repr):
            if key not in self._handles:
                await self._create(key)
        self._prune()

    # -------------------------------------------------------------------------
    # Ranges
    # -------------------------------------------------------------------------

    def _handle_for_bookmark(self, bookmark: Bookmark, group: Group) -> Optional[Hashable]:
        if not group.is_visible:
            return None
        group_handle = self._handles.get(group_key(group))
        if group.is_active and bookmark.label is not None:
            return self._handles.get(bookmark_key(group, bookmark), group_handle)
        return group_handle

    def ranges_for_file(self, file_path: str) -> RangeMap:
        """Handle -> sorted line numbers for one file (cached until dirty)."""
        cached = self._ranges.get(file_path)
        if cached is not None:
            return cached

        active = self._groups.active
        by_line: dict[int, Hashable] = {}
        bookmarks = self._store.file_bookmarks(file_path)
        # Active group first so it wins each line
        ordered = [b for b in bookmarks if b.group_id == active.id]
        ordered += [b for b in bookmarks if b.group_id != active.id]
        for bookmark in ordered:
            group = self._groups.by_id(bookmark.group_id)
            if group is None or bookmark.line in by_line:
                continue
            handle = self._handle_for_bookmark(bookmark, group)
            if handle is not None:
                by_line[bookmark.line] = handle

        ranges: RangeMap = {}
        for line, handle in sorted(by_line.items()):
            ranges.setdefault(handle, []).append(line)
        self._ranges[file_path] = ranges
        return ranges

    def apply(self, host: EditorHost) -> int:
        """
        Push range maps to every visible editor.

        Handles that were dropped since the last call are sent with an empty
        line list so the host clears them. Returns the number of editors
        updated.
        """
        count = 0
        for file_path in host.visible_editors():
            ranges = self.ranges_for_file(file_path)
            for handle in self._removed:
                if handle not in ranges:
                    host.set_decorations(file_path, handle, [])
            for handle, lines in ranges.items():
                host.set_decorations(file_path, handle, list(lines))
            count += 1
        self._removed.clear()
        return count
