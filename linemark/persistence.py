"""
Persistence of bookmarks and groups to a JSON artifact.

The artifact lives in the workspace (``.linemark/bookmarks.json`` by
default) and carries a version envelope:

    {"fileVersion": "1.0", "bookmarks": [...], "groups": [...],
     "activeGroup": "...", "hideInactiveGroups": false, "hideAll": false}

Bookmark paths under the workspace root are stored relative to it.

The artifact may be edited outside the process (another editor window, a
git checkout). A change notification reloads it, except within
``SAVE_GUARD_SECONDS`` of our own last write, so a self-triggered
notification never discards in-memory state.
"""

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import LinemarkError, LoadParseFailure, LoadVersionMismatch, ValidationError
from .groups import GroupRegistry, validate_group_name
from .store import BookmarkStore
from .types import DEFAULT_GROUP_NAME, Bookmark, Group

logger = logging.getLogger(__name__)

FILE_VERSION = "1.0"
STORAGE_DIRNAME = ".linemark"
STORAGE_FILENAME = "bookmarks.json"

# Minimum age of our own last write before a change notification may reload
SAVE_GUARD_SECONDS = 2.5

# Envelope keys
KEY_VERSION = "fileVersion"
KEY_BOOKMARKS = "bookmarks"
KEY_GROUPS = "groups"
KEY_ACTIVE_GROUP = "activeGroup"
KEY_HIDE_INACTIVE = "hideInactiveGroups"
KEY_HIDE_ALL = "hideAll"


def default_storage_path(workspace_root: Path) -> Path:
    return Path(workspace_root) / STORAGE_DIRNAME / STORAGE_FILENAME


@dataclass
class LoadResult:
    """Outcome of ``PersistenceManager.load``."""
    loaded: bool
    groups: int = 0
    bookmarks: int = 0
    errors: list[LinemarkError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.loaded and not self.errors


class PersistenceManager:
    """
    Serializes the full bookmark state to a JSON file and back.

    Args:
        store: The bookmark store to save from / load into
        groups: The group registry to save from / load into
        path: Location of the JSON artifact
        workspace_root: Root for relative bookmark paths (None = absolute only)
        clock: Time source in seconds, injectable for tests
    """

    def __init__(
        self,
        store: BookmarkStore,
        groups: GroupRegistry,
        path: Path,
        workspace_root: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._groups = groups
        self.path = Path(path)
        self.workspace_root = Path(workspace_root) if workspace_root is not None else None
        self._clock = clock
        self.last_save_timestamp = 0.0

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def to_stored_path(self, file_path: str) -> str:
        """Relative to the workspace root when the file lies under it."""
        if self.workspace_root is None:
            return file_path
        try:
            return str(Path(file_path).relative_to(self.workspace_root))
        except ValueError:
            return file_path

    def from_stored_path(self, stored: str) -> str:
        if self.workspace_root is None or os.path.isabs(stored):
            return stored
        return str(self.workspace_root / stored)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def serialize_group(self, group: Group) -> dict[str, Any]:
        return {
            "name": group.name,
            "color": group.color,
            "shape": group.shape,
            "iconText": group.icon_text,
        }

    def serialize_bookmark(self, bookmark: Bookmark) -> dict[str, Any]:
        data: dict[str, Any] = {
            "filePath": self.to_stored_path(bookmark.file_path),
            "line": bookmark.line,
            "column": bookmark.column,
        }
        if bookmark.label is not None:
            data["label"] = bookmark.label
        data["lineText"] = bookmark.line_text
        data["groupName"] = self._groups.name_of(bookmark.group_id)
        return data

    def to_dict(self) -> dict[str, Any]:
        """The full versioned envelope for the current state."""
        return {
            KEY_VERSION: FILE_VERSION,
            KEY_BOOKMARKS: [self.serialize_bookmark(b) for b in self._store.all()],
            KEY_GROUPS: [self.serialize_group(g) for g in self._groups.all()],
            KEY_ACTIVE_GROUP: self._groups.active.name,
            KEY_HIDE_INACTIVE: self._groups.hide_inactive_groups,
            KEY_HIDE_ALL: self._groups.hide_all,
        }

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def save(self) -> bool:
        """
        Write the artifact, or remove it when there is nothing to keep.

        Returns:
            True if the file was written, False if it was removed or skipped
        """
        if self._store.is_empty(self._groups):
            self._remove_artifact()
            return False

        payload = json.dumps(self.to_dict(), indent=4, ensure_ascii=False)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Recorded before writing so the resulting change event is ignored
        self.last_save_timestamp = self._clock()
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self.path)
        logger.debug("Saved %d bookmarks to %s", len(self._store), self.path)
        return True

    def _remove_artifact(self) -> None:
        if not self.path.exists():
            return
        logger.info("No bookmarks left, deleting %s", self.path)
        self.path.unlink()
        parent = self.path.parent
        if self.workspace_root is not None and parent.resolve() == self.workspace_root.resolve():
            return
        try:
            if parent.is_dir() and not any(parent.iterdir()):
                logger.debug("Deleting empty directory %s", parent)
                parent.rmdir()
        except OSError as e:
            logger.debug("Could not remove %s: %s", parent, e)

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def load(self) -> LoadResult:
        """
        Replace the in-memory state with the artifact's contents.

        A missing file or a version mismatch leaves the in-memory state
        untouched. A malformed group or bookmark entry discards that whole
        collection only; the other collection still loads. Problems are
        returned in ``LoadResult.errors``, never raised.
        """
        if not self.path.exists():
            logger.debug("No bookmark file at %s", self.path)
            return LoadResult(loaded=False)

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
        except (OSError, ValueError) as e:
            logger.warning("Failed to read bookmark file %s: %s", self.path, e)
            return LoadResult(loaded=False, errors=[LoadParseFailure("file", e)])

        version = data.get(KEY_VERSION)
        if version != FILE_VERSION:
            error = LoadVersionMismatch(version, FILE_VERSION)
            logger.warning("Load aborted: %s", error)
            return LoadResult(loaded=False, errors=[error])

        result = LoadResult(loaded=True)

        # Scalars are checked before anything in memory is replaced
        active_name = DEFAULT_GROUP_NAME
        raw_active = data.get(KEY_ACTIVE_GROUP)
        if raw_active is not None and raw_active != "":
            try:
                if not isinstance(raw_active, str):
                    raise TypeError(f"activeGroup must be a string: {raw_active!r}")
                active_name = validate_group_name(raw_active)
            except (TypeError, ValidationError) as e:
                logger.warning("Ignoring active group from %s: %s", self.path, e)
                result.errors.append(LoadParseFailure("activeGroup", e))
        hide_all = _read_flag(data, KEY_HIDE_ALL)
        hide_inactive_groups = _read_flag(data, KEY_HIDE_INACTIVE)

        groups: list[Group] = []
        try:
            for entry in data.get(KEY_GROUPS) or []:
                groups.append(self._parse_group(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Restoring bookmark groups failed: %s", e)
            result.errors.append(LoadParseFailure("groups", e))
            groups = []
        self._groups.replace_all(
            groups,
            hide_all=hide_all,
            hide_inactive_groups=hide_inactive_groups,
        )
        result.groups = len(self._groups)

        bookmarks: list[Bookmark] = []
        try:
            seen: set[tuple[str, int, int]] = set()
            for entry in data.get(KEY_BOOKMARKS) or []:
                bookmark = self._parse_bookmark(entry)
                key = (bookmark.file_path, bookmark.line, bookmark.group_id)
                if key in seen:
                    logger.warning("Skipping duplicate bookmark at %s:%d", key[0], key[1])
                    continue
                seen.add(key)
                bookmarks.append(bookmark)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Restoring bookmarks failed: %s", e)
            result.errors.append(LoadParseFailure("bookmarks", e))
            bookmarks = []
        self._store.clear()
        self._store.add_many(bookmarks)
        result.bookmarks = len(self._store)

        self._groups.set_active(active_name)
        result.groups = len(self._groups)
        logger.info(
            "Loaded %d bookmarks in %d groups from %s",
            result.bookmarks, result.groups, self.path,
        )
        return result

    def _parse_group(self, entry: dict) -> Group:
        if not isinstance(entry, dict):
            raise TypeError(f"group entry is not an object: {entry!r}")
        return self._groups.new_group(
            name=_require_str(entry, "name"),
            color=_require_str(entry, "color"),
            shape=entry.get("shape") or self._groups.default_shape,
            icon_text=entry.get("iconText") or "",
        )

    def _parse_bookmark(self, entry: dict) -> Bookmark:
        if not isinstance(entry, dict):
            raise TypeError(f"bookmark entry is not an object: {entry!r}")
        label = entry.get("label")
        if label is not None and not isinstance(label, str):
            raise TypeError(f"label must be a string: {label!r}")
        group = self._groups.ensure_group(_require_str(entry, "groupName"))
        return Bookmark(
            file_path=self.from_stored_path(_require_str(entry, "filePath")),
            line=_require_int(entry, "line"),
            column=_require_int(entry, "column"),
            group_id=group.id,
            label=label,
            line_text=entry.get("lineText") or "",
        )

    # -------------------------------------------------------------------------
    # External changes
    # -------------------------------------------------------------------------

    def within_guard_window(self) -> bool:
        return self._clock() - self.last_save_timestamp <= SAVE_GUARD_SECONDS

    def on_storage_changed(self) -> Optional[LoadResult]:
        """
        Handle a change notification for the artifact.

        Reloads unless our own save happened within the guard window.
        Returns the LoadResult, or None when the notification was ignored.
        """
        if self.within_guard_window():
            logger.debug("Ignoring change of %s right after our own save", self.path)
            return None
        logger.info("Bookmark file changed externally, reloading")
        return self.load()


def _require_str(entry: dict, key: str) -> str:
    value = entry[key]
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string: {value!r}")
    return value


def _require_int(entry: dict, key: str) -> int:
    value = entry[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer: {value!r}")
    return value


def _read_flag(data: dict, key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, bool):
        return value
    logger.warning("%s must be true or false, not %r; using false", key, value)
    return False


class LoopTimer:
    """One-shot timer scheduled on an asyncio event loop.

    Has the ``start()``/``cancel()`` shape of ``threading.Timer`` but runs
    its callback on the loop's own thread.
    """

    def __init__(self, delay: float, callback: Callable[[], object],
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.delay = delay
        self.callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self.callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


def loop_timer_factory(loop: Optional[asyncio.AbstractEventLoop] = None) -> Callable[..., LoopTimer]:
    """Timer factory for ``SaveScheduler`` that schedules on *loop* (default: the running loop)."""

    def _factory(delay: float, callback: Callable[[], object]) -> LoopTimer:
        return LoopTimer(delay, callback, loop)

    return _factory


class SaveScheduler:
    """
    Debounces save requests.

    ``request()`` marks the state dirty; ``flush()`` runs the save once for
    all requests made meanwhile. Saves run on the caller's thread, after the
    mutation that requested them.

    Without a ``timer_factory`` nothing fires by itself and the owner
    calls ``flush()`` (the CLI does so before exiting). Hosts with an event
    loop pass ``loop_timer_factory()`` so the flush runs on that loop once
    *delay* has passed.
    """

    def __init__(
        self,
        save: Callable[[], object],
        delay: float = 0.5,
        timer_factory: Optional[Callable[..., Any]] = None,
    ):
        self._save = save
        self._delay = max(0.0, float(delay))
        self._timer_factory = timer_factory
        self._timer: Optional[Any] = None
        self._dirty = False

    @property
    def pending(self) -> bool:
        return self._dirty

    def request(self) -> None:
        self._dirty = True
        if self._delay == 0:
            self.flush()
            return
        if self._timer is not None or self._timer_factory is None:
            return
        self._timer = self._timer_factory(self._delay, self.flush)
        self._timer.start()

    def flush(self) -> bool:
        """Run the pending save now. Returns True if a save ran."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if not self._dirty:
            return False
        self._dirty = False
        try:
            self._save()
        except OSError as e:
            logger.warning("Saving bookmarks failed: %s", e)
            self._dirty = True
            raise
        return True

    def cancel(self) -> None:
        timer, self._timer = self._timer, None
        self._dirty = False
        if timer is not None:
            timer.cancel()


class StorageWatcher:
    """
    Polls the artifact for changes made by other processes.

    Compares ``(st_mtime_ns, st_size)`` between polls and calls *on_change*
    when they differ. The first poll only records a baseline.
    """

    def __init__(self, path: Path, on_change: Callable[[], object]):
        self.path = Path(path)
        self._on_change = on_change
        self._signature: Optional[tuple[int, int]] = None
        self._primed = False

    def _stat(self) -> Optional[tuple[int, int]]:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def poll(self) -> bool:
        """Check once. Returns True if a change was reported."""
        signature = self._stat()
        if not self._primed:
            self._primed = True
            self._signature = signature
            return False
        if signature == self._signature:
            return False
        self._signature = signature
        if signature is None:
            # Deletion is not a change we reload from
            return False
        self._on_change()
        return True
