"""
Protocol definitions for the host collaborators linemark consumes.

Defines interface contracts for:
- Document: read access to a post-edit text buffer
- DecorationBinder: turns (shape, color, icon text, label) into a
  renderable handle; asynchronous, owns no bookmark state
- EditorHost: visible editors, applying decorations, revealing ranges

Hosts (editor plugins, the CLI, tests) provide implementations.
"""

from typing import Any, Hashable, Optional, Protocol, runtime_checkable


@runtime_checkable
class Document(Protocol):
    """Read-only view of a text buffer after an edit was applied."""

    @property
    def line_count(self) -> int: ...

    def line_at(self, line: int) -> str:
        """Text of *line* without its line terminator."""
        ...


@runtime_checkable
class DecorationBinder(Protocol):
    """
    Creates renderable decoration handles.

    ``create`` returns ``(handle, side_artifact_ref)``; the side artifact is
    whatever the binder generated to render the glyph (e.g. an SVG path)
    and may be None.
    """

    async def create(
        self,
        shape: str,
        color: str,
        icon_text: str,
        label: Optional[str],
    ) -> tuple[Hashable, Any]: ...


@runtime_checkable
class EditorHost(Protocol):
    """The host editor surface used by commands layered above the core."""

    def visible_editors(self) -> list[str]:
        """File paths of currently visible editors."""
        ...

    def set_decorations(self, file_path: str, handle: Hashable, lines: list[int]) -> None: ...

    def reveal(self, file_path: str, line: int, column: int, *, preview: bool = False) -> None:
        """Open *file_path* and place the cursor; raise on failure."""
        ...


class TextDocument:
    """
    Plain in-memory Document built from a string.

    Splits on ``\\n`` only; a trailing ``\\r`` is stripped from each line.
    """

    def __init__(self, text: str):
        self._lines = [line.rstrip("\r") for line in text.split("\n")]

    @classmethod
    def from_file(cls, path) -> "TextDocument":
        with open(path, encoding="utf-8", errors="replace") as f:
            return cls(f.read())

    @property
    def line_count(self) -> int:
        return len(self._lines)

    def line_at(self, line: int) -> str:
        return self._lines[line]
