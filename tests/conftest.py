"""
Shared pytest fixtures for linemark tests.

Provides fakes for the host collaborators (decoration binder, editor host,
timer, clock) so no editor or background thread is involved.
"""

from pathlib import Path

import pytest

from linemark.config import LinemarkConfig
from linemark.context import open_context
from linemark.events import DecorationEvents
from linemark.groups import GroupRegistry
from linemark.protocol import TextDocument
from linemark.store import BookmarkStore
from linemark.types import Bookmark


PALETTE = {"red": "ff0000ff", "green": "00ff00ff", "blue": "0000ffff"}


class FakeTimer:
    """Stands in for a LoopTimer; fires only when told to."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class TimerFactory:
    """Callable timer factory that remembers every timer it created."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBinder:
    """Decoration binder returning readable handles."""

    def __init__(self):
        self.calls: list[tuple] = []

    async def create(self, shape, color, icon_text, label):
        self.calls.append((shape, color, icon_text, label))
        handle = f"{shape}:{color}:{icon_text}:{label or ''}#{len(self.calls)}"
        return handle, f"/tmp/{len(self.calls)}.svg"


class FakeHost:
    """Editor host recording decorations and reveals."""

    def __init__(self, visible=None, broken=None):
        self.visible = list(visible or [])
        self.broken = set(broken or [])
        self.decorations: dict[str, dict] = {}
        self.revealed: list[tuple] = []

    def visible_editors(self):
        return list(self.visible)

    def set_decorations(self, file_path, handle, lines):
        self.decorations.setdefault(file_path, {})[handle] = list(lines)

    def reveal(self, file_path, line, column, *, preview=False):
        if file_path in self.broken:
            raise FileNotFoundError(file_path)
        self.revealed.append((file_path, line, column, preview))


def make_document(lines: int = 20, prefix: str = "line") -> TextDocument:
    """Document whose line N reads 'line N'."""
    return TextDocument("\n".join(f"{prefix} {n}" for n in range(lines)))


@pytest.fixture
def events():
    return DecorationEvents()


@pytest.fixture
def groups(events):
    return GroupRegistry(PALETTE, events=events)


@pytest.fixture
def store(events):
    return BookmarkStore(events=events)


@pytest.fixture
def add(store, groups):
    """Add a bookmark to a group by name (default: the active group)."""

    def _add(path, line, group=None, label=None, column=0, line_text=""):
        group_id = groups.active.id if group is None else groups.ensure_group(group).id
        return store.add(Bookmark(path, line, column, group_id, label=label, line_text=line_text))

    return _add


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def make_ctx(workspace, timers, clock):
    """Open a BookmarkContext on the workspace with fake timer and clock."""

    def _make(binder=None, host=None, **config_overrides):
        config = LinemarkConfig(path=workspace, colors=dict(PALETTE), **config_overrides)
        return open_context(
            workspace,
            config=config,
            binder=binder,
            host=host,
            timer_factory=timers,
            clock=clock,
        )

    return _make


@pytest.fixture
def ctx(make_ctx):
    return make_ctx()
