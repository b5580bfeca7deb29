"""
Decoration-dirty event channel.

The store and the group registry never call into rendering. They emit
``DecorationDirty`` events; whoever owns decorations (see
``linemark.decorations``) subscribes and rebuilds on its next read.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecorationDirty:
    """
    Something that affects rendering changed.

    ``file_path`` and ``group_id`` narrow the scope; both ``None`` means
    everything is dirty (visibility or style changes).
    """
    reason: str
    file_path: Optional[str] = None
    group_id: Optional[int] = None
    style_changed: bool = False

    @property
    def is_global(self) -> bool:
        return self.file_path is None and self.group_id is None


Listener = Callable[[DecorationDirty], object]


class DecorationEvents:
    """Synchronous publish/subscribe hub for decoration-dirty events."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._muted = 0
        self._held: list[DecorationDirty] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: DecorationDirty) -> None:
        if self._muted:
            if event not in self._held:
                self._held.append(event)
            return
        for listener in list(self._listeners):
            listener(event)

    def dirty(self, reason: str, *, file_path: Optional[str] = None,
              group_id: Optional[int] = None, style_changed: bool = False) -> None:
        self.emit(DecorationDirty(reason, file_path, group_id, style_changed))

    def batch(self) -> "_Batch":
        """Hold events until the block exits, then deliver each distinct one once.

        Used by delete-then-recreate operations so caches are invalidated a
        single time per logical change.
        """
        return _Batch(self)


class _Batch:
    def __init__(self, events: DecorationEvents):
        self._events = events

    def __enter__(self) -> DecorationEvents:
        self._events._muted += 1
        return self._events

    def __exit__(self, *exc) -> None:
        events = self._events
        events._muted -= 1
        if events._muted:
            return
        held, events._held = events._held, []
        logger.debug("Delivering %d batched decoration events", len(held))
        for event in held:
            events.emit(event)
