"""
Explicit state for one workspace.

A ``BookmarkContext`` wires the store, registry, persistence and event
channel for a workspace root. Commands take the context as their first
argument; nothing in linemark reads module-level state.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .config import LinemarkConfig, load_config
from .decorations import DecorationCache
from .events import DecorationEvents
from .groups import GroupRegistry
from .navigation import Navigator
from .persistence import LoadResult, PersistenceManager, SaveScheduler, StorageWatcher
from .protocol import DecorationBinder, EditorHost
from .reconcile import EditReconciler
from .store import BookmarkStore

logger = logging.getLogger(__name__)


@dataclass
class BookmarkContext:
    """Everything the commands operate on, for one workspace."""
    root: Path
    config: LinemarkConfig
    events: DecorationEvents
    groups: GroupRegistry
    store: BookmarkStore
    reconciler: EditReconciler
    navigator: Navigator
    persistence: PersistenceManager
    scheduler: SaveScheduler
    watcher: StorageWatcher
    decorations: DecorationCache
    host: Optional[EditorHost] = None
    last_load: Optional[LoadResult] = field(default=None, repr=False)

    def request_save(self) -> None:
        """Schedule a debounced save of the current state."""
        self.scheduler.request()

    def flush(self) -> bool:
        """Run a pending save now. Returns True if one ran."""
        return self.scheduler.flush()

    def reload(self) -> LoadResult:
        self.last_load = self.persistence.load()
        return self.last_load

    def close(self) -> None:
        """Flush pending work and detach listeners."""
        self.scheduler.flush()
        self.decorations.close()


def open_context(
    root,
    config: Optional[LinemarkConfig] = None,
    binder: Optional[DecorationBinder] = None,
    host: Optional[EditorHost] = None,
    timer_factory: Optional[Callable[..., Any]] = None,
    clock: Optional[Callable[[], float]] = None,
    load: bool = True,
) -> BookmarkContext:
    """
    Build a context for *root* and load its saved bookmarks.

    Args:
        root: Workspace root directory
        config: Configuration; read from ``linemark.toml`` when omitted
        binder: Decoration binder, None for headless use
        host: Editor host used by navigation and decoration commands
        timer_factory: Timer for debounced saves; None means the caller
            flushes (see ``loop_timer_factory`` for event-loop hosts)
        clock: Time source for the save guard window
        load: Load the saved state right away
    """
    root = Path(root).resolve()
    if config is None:
        config = load_config(root)

    events = DecorationEvents()
    groups = GroupRegistry(config.colors, config.default_shape, events=events)
    store = BookmarkStore(events=events)

    persistence_kwargs = {} if clock is None else {"clock": clock}
    persistence = PersistenceManager(
        store, groups, config.storage_path, workspace_root=root, **persistence_kwargs,
    )
    scheduler = SaveScheduler(persistence.save, config.save_delay, timer_factory=timer_factory)

    ctx = BookmarkContext(
        root=root,
        config=config,
        events=events,
        groups=groups,
        store=store,
        reconciler=EditReconciler(store),
        navigator=Navigator(store, group_name=groups.name_of),
        persistence=persistence,
        scheduler=scheduler,
        watcher=StorageWatcher(config.storage_path, persistence.on_storage_changed),
        decorations=DecorationCache(store, groups, binder, events),
        host=host,
    )
    if load:
        result = ctx.reload()
        for error in result.errors:
            logger.warning("Loading bookmarks: %s", error)
    # Baseline for change detection
    ctx.watcher.poll()
    return ctx
