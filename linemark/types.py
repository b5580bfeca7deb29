"""
Data types for labeled line bookmarks.

A bookmark is an anchor (file, line, column) plus an optional label and a
cached copy of the line text. Every bookmark belongs to exactly one group;
the group is referenced by its registry id, never by object.
"""

import re
from dataclasses import dataclass
from typing import Optional


DEFAULT_GROUP_NAME = "default"
EXTERNAL_GROUP_NAME = "external"
RESERVED_GROUP_NAMES = frozenset({DEFAULT_GROUP_NAME, EXTERNAL_GROUP_NAME})

MAX_GROUP_NAME_LENGTH = 40

FALLBACK_COLOR = "00ddddff"
FALLBACK_COLOR_NAME = "teal"

# Vector shapes rendered by the decoration binder; "unicode" carries a glyph
UNICODE_SHAPE = "unicode"
SHAPES = ("bookmark", "circle", "heart", "label", "star")
DEFAULT_SHAPE = "bookmark"

_HEX_COLOR_RE = re.compile(r'^[0-9a-f]+$')

# Sentinel for "keep the current value" in Bookmark.copy_to
_UNCHANGED = object()


def normalize_color(value: str) -> str:
    """Normalize a color to lowercase 8-digit ``rrggbbaa`` hex.

    Accepts ``#rgb``, ``#rgba``, ``#rrggbb`` and ``#rrggbbaa`` with or
    without the leading ``#``. Missing alpha is treated as opaque.

    Raises ValueError for anything else.
    """
    color = (value or "").strip().lower().lstrip("#")
    if not _HEX_COLOR_RE.match(color):
        raise ValueError(f"Invalid color: {value!r}")
    if len(color) in (3, 4):
        color = "".join(c * 2 for c in color)
    if len(color) == 6:
        color += "ff"
    if len(color) != 8:
        raise ValueError(f"Invalid color: {value!r}")
    return color


def is_valid_shape(shape: str) -> bool:
    return shape in SHAPES or shape == UNICODE_SHAPE


def is_slot_label(label: Optional[str]) -> bool:
    """Single-character labels are unique per group and file."""
    return label is not None and len(label) == 1


@dataclass(eq=False)
class Bookmark:
    """
    A line anchor owned by one group.

    Bookmarks compare by identity: two bookmarks with equal fields are still
    distinct entries in the store. Use ``location`` or ``sort_key`` for
    value comparisons.
    """
    file_path: str
    line: int
    column: int
    group_id: int
    label: Optional[str] = None
    line_text: str = ""
    failed_jump: bool = False

    def __post_init__(self) -> None:
        if self.line < 0 or self.column < 0:
            raise ValueError(
                f"Bookmark position must be non-negative: {self.line}:{self.column}"
            )
        if self.label is not None and self.label == "":
            self.label = None

    @property
    def location(self) -> tuple[str, int]:
        return (self.file_path, self.line)

    @property
    def has_slot_label(self) -> bool:
        return is_slot_label(self.label)

    def sort_key(self) -> tuple[str, int, int]:
        return (self.file_path, self.line, self.column)

    def copy_to(self, *, group_id: Optional[int] = None, label=_UNCHANGED) -> "Bookmark":
        """Return a fresh bookmark at the same anchor.

        Used for relabel and move, which are delete-then-recreate.
        """
        return Bookmark(
            file_path=self.file_path,
            line=self.line,
            column=self.column,
            group_id=self.group_id if group_id is None else group_id,
            label=self.label if label is _UNCHANGED else label,
            line_text=self.line_text,
        )

    def __str__(self) -> str:
        label = f" [{self.label}]" if self.label else ""
        return f"{self.file_path}:{self.line + 1}{label} {self.line_text}"


def sort_key(bookmark: Bookmark) -> tuple[str, int, int]:
    """Canonical order: file path, then line, then column."""
    return bookmark.sort_key()


@dataclass(eq=False)
class Group:
    """A named, styled partition of bookmarks."""
    id: int
    name: str
    color: str
    shape: str = DEFAULT_SHAPE
    icon_text: str = ""
    is_active: bool = False
    is_visible: bool = True

    def style(self) -> tuple[str, str, str]:
        return (self.shape, self.color, self.icon_text)

    def __str__(self) -> str:
        marker = "*" if self.is_active else " "
        return f"{marker} {self.name}"


@dataclass
class Selection:
    """A selection in a document; ``start`` is always before ``end``."""
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __post_init__(self) -> None:
        if (self.end_line, self.end_column) < (self.start_line, self.start_column):
            self.start_line, self.end_line = self.end_line, self.start_line
            self.start_column, self.end_column = self.end_column, self.start_column


@dataclass
class StatusSummary:
    """Snapshot for status bars and ``linemark status``."""
    active_group: str
    active_count: int
    group_count: int
    bookmark_count: int
    hide_all: bool = False
    hide_inactive_groups: bool = False
    failed_count: int = 0

    @property
    def visibility(self) -> str:
        if self.hide_all:
            return "all hidden"
        if self.hide_inactive_groups:
            return "inactive groups hidden"
        return "all visible"

    def __str__(self) -> str:
        return f"{self.active_group}: {self.active_count}"
