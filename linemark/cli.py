"""
CLI interface for labeled line bookmarks.

Usage:
    linemark toggle src/app.py 42
    linemark label src/app.py 10 "entry@@review"
    linemark next src/app.py 42
    linemark list --group review

Line numbers on the command line are 1-based.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .context import BookmarkContext, open_context
from .errors import LinemarkError, NavigationFailure, linemark_home
from .logging_config import (
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
    remove_ops_log,
    verbose_requested,
)
from .protocol import TextDocument
from .types import Bookmark, Group
from . import commands

# Configure quiet mode by default
# Set LINEMARK_VERBOSE=1 to enable debug mode via environment
if verbose_requested():
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"linemark {version('linemark')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_root_override: Optional[Path] = None
_ops_handler = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _root_callback(value: Optional[Path]):
    global _root_override
    _root_override = value


app = typer.Typer(
    name="linemark",
    help="Labeled line bookmarks that follow your edits.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    root: Annotated[Optional[Path], typer.Option(
        "--root", "-r",
        envvar="LINEMARK_ROOT",
        help="Workspace root (default: current directory)",
        callback=_root_callback,
        is_eager=True,
    )] = None,
):
    """Labeled line bookmarks that follow your edits."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

FileArgument = Annotated[Path, typer.Argument(help="File the bookmark is in")]
LineArgument = Annotated[int, typer.Argument(min=1, help="Line number (1-based)")]

GroupOption = Annotated[
    Optional[str],
    typer.Option(
        "--group", "-g",
        help="Group name (default: the active group)"
    )
]

ColumnOption = Annotated[
    int,
    typer.Option(
        "--column", "-c",
        min=1,
        help="Column (1-based)"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_context() -> BookmarkContext:
    """Open the workspace, handling errors gracefully."""
    global _ops_handler
    root = _root_override if _root_override is not None else Path.cwd()
    try:
        ctx = open_context(root)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _ops_handler is None:
        try:
            _ops_handler = configure_ops_log(linemark_home())
        except OSError as e:
            typer.echo(f"Warning: no operations log ({e})", err=True)
    return ctx


def _release_ops_log() -> None:
    global _ops_handler
    if _ops_handler is not None:
        remove_ops_log(_ops_handler)
        _ops_handler = None


def _finish(ctx: BookmarkContext) -> None:
    """Write any pending save before the process exits."""
    try:
        ctx.close()
    except OSError as e:
        typer.echo(f"Error saving bookmarks: {e}", err=True)
        raise typer.Exit(1)
    finally:
        _release_ops_log()


def _fail(message: str) -> None:
    _release_ops_log()
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _abs(path: Path) -> str:
    return str(path.expanduser().resolve())


def _document(path: Path) -> Optional[TextDocument]:
    try:
        return TextDocument.from_file(path)
    except OSError:
        return None


def _bookmark_at(ctx: BookmarkContext, file: Path, line: int, group: Optional[str]) -> Bookmark:
    target = ctx.groups.active if group is None else ctx.groups.get(group)
    if target is None:
        _fail(f"No such group: {group!r}")
    bookmark = ctx.store.at(_abs(file), line - 1, target.id)
    if bookmark is None:
        _fail(f"No bookmark of group {target.name!r} at {file}:{line}")
    return bookmark


def _format_bookmark(ctx: BookmarkContext, bookmark: Bookmark, with_group: bool = True) -> str:
    path = ctx.persistence.to_stored_path(bookmark.file_path)
    parts = [f"{path}:{bookmark.line + 1}"]
    if bookmark.label:
        parts.append(f"[{bookmark.label}]")
    if with_group:
        parts.append(f"({ctx.groups.name_of(bookmark.group_id)})")
    if bookmark.failed_jump:
        parts.append("!")
    if bookmark.line_text:
        parts.append(bookmark.line_text)
    return " ".join(parts)


def _format_group(ctx: BookmarkContext, group: Group) -> str:
    count = len(ctx.store.group_bookmarks(group.id))
    hidden = "" if group.is_visible else " hidden"
    return f"{group}  {count} bookmark(s)  {group.shape} #{group.color}{hidden}"


def _echo_bookmarks(ctx: BookmarkContext, bookmarks: list[Bookmark]) -> None:
    if _get_json_output():
        typer.echo(json.dumps(
            [ctx.persistence.serialize_bookmark(b) for b in bookmarks],
            indent=2, ensure_ascii=False,
        ))
        return
    for bookmark in bookmarks:
        typer.echo(_format_bookmark(ctx, bookmark))


def _echo_bookmark(ctx: BookmarkContext, bookmark: Optional[Bookmark], empty: str) -> None:
    if bookmark is None:
        if _get_json_output():
            typer.echo("null")
        else:
            typer.echo(empty)
        return
    if _get_json_output():
        typer.echo(json.dumps(ctx.persistence.serialize_bookmark(bookmark), ensure_ascii=False))
    else:
        typer.echo(_format_bookmark(ctx, bookmark))


# -----------------------------------------------------------------------------
# Bookmarks
# -----------------------------------------------------------------------------

@app.command("list")
def list_bookmarks(
    group: GroupOption = None,
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-f",
        help="Only bookmarks in this file"
    )] = None,
    all_groups: Annotated[bool, typer.Option(
        "--all", "-a",
        help="Bookmarks of every group"
    )] = False,
):
    """
    List bookmarks in canonical order.

    \b
    Examples:
        linemark list                  # Active group
        linemark list --all            # Every group
        linemark list -g review        # One group
        linemark list -a -f src/app.py # One file, every group
    """
    ctx = _get_context()
    if all_groups:
        bookmarks = ctx.store.all()
    else:
        target = ctx.groups.active if group is None else ctx.groups.get(group)
        if target is None:
            _fail(f"No such group: {group!r}")
        bookmarks = ctx.store.find_in_group(target.id)
    if file is not None:
        path = _abs(file)
        bookmarks = [b for b in bookmarks if b.file_path == path]
    _echo_bookmarks(ctx, bookmarks)
    _finish(ctx)


@app.command()
def toggle(
    file: FileArgument,
    line: LineArgument,
    column: ColumnOption = 1,
    group: GroupOption = None,
):
    """Add a bookmark on a line, or remove the one already there."""
    ctx = _get_context()
    try:
        bookmark = commands.toggle_bookmark(
            ctx, _abs(file), line - 1, column - 1, document=_document(file), group=group,
        )
    except LinemarkError as e:
        _fail(str(e))
    _echo_bookmark(ctx, bookmark, "Bookmark removed")
    _finish(ctx)


@app.command()
def label(
    file: FileArgument,
    line: LineArgument,
    text: Annotated[str, typer.Argument(help="label, label@@group or @@group")],
    column: ColumnOption = 1,
):
    """
    Toggle a labeled bookmark on the active group.

    \b
    Examples:
        linemark label app.py 10 entry          # Label "entry"
        linemark label app.py 10 "a@@review"    # Label "a" in group review
        linemark label app.py 10 "@@review"     # Only switch to group review
    """
    ctx = _get_context()
    try:
        bookmark = commands.toggle_labeled_bookmark(
            ctx, _abs(file), line - 1, column - 1, text, document=_document(file),
        )
    except LinemarkError as e:
        _fail(str(e))
    _echo_bookmark(ctx, bookmark, "No bookmark added")
    _finish(ctx)


@app.command()
def delete(
    file: FileArgument,
    line: LineArgument,
    group: GroupOption = None,
):
    """Delete the bookmark on a line."""
    ctx = _get_context()
    bookmark = _bookmark_at(ctx, file, line, group)
    commands.delete_bookmark(ctx, bookmark)
    typer.echo(f"Deleted {_format_bookmark(ctx, bookmark, with_group=False)}")
    _finish(ctx)


@app.command("clear-file")
def clear_file(
    file: FileArgument,
    group: GroupOption = None,
):
    """Delete all bookmarks of a file (of every group unless --group is given)."""
    ctx = _get_context()
    try:
        removed = commands.delete_bookmarks_of_file(ctx, _abs(file), group)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Deleted {removed} bookmark(s)")
    _finish(ctx)


@app.command()
def relabel(
    file: FileArgument,
    line: LineArgument,
    new_label: Annotated[str, typer.Argument(help="New label (empty to remove)")],
    group: GroupOption = None,
):
    """Change the label of a bookmark."""
    ctx = _get_context()
    bookmark = _bookmark_at(ctx, file, line, group)
    replacement = commands.relabel(ctx, bookmark, new_label)
    _echo_bookmark(ctx, replacement, "")
    _finish(ctx)


@app.command()
def move(
    destination: Annotated[str, typer.Argument(help="Group to move bookmarks into")],
    source: Annotated[Optional[str], typer.Option(
        "--from",
        help="Group to move bookmarks out of (default: the active group)"
    )] = None,
    file: Annotated[Optional[Path], typer.Option(
        "--file", "-f",
        help="Only move bookmarks of this file"
    )] = None,
    line: Annotated[Optional[int], typer.Option(
        "--line", "-l",
        min=1,
        help="Only move the bookmark on this line (needs --file)"
    )] = None,
):
    """Move bookmarks from one group into another."""
    ctx = _get_context()
    if line is not None and file is None:
        _fail("--line needs --file")
    try:
        src = ctx.groups.active if source is None else commands.resolve_group(ctx, source)
        selected = None
        if file is not None:
            path = _abs(file)
            selected = [
                b for b in ctx.store.group_bookmarks(src.id)
                if b.file_path == path and (line is None or b.line == line - 1)
            ]
        moved = commands.move_bookmarks(ctx, src, destination, selected)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Moved {moved} bookmark(s) into {destination}")
    _finish(ctx)


@app.command("rename-file")
def rename_file(
    old: Annotated[Path, typer.Argument(help="Old path of the file or directory")],
    new: Annotated[Path, typer.Argument(help="New path of the file or directory")],
):
    """Re-point bookmarks after a file or directory was renamed."""
    ctx = _get_context()
    changed = commands.on_file_renamed(ctx, _abs(old), _abs(new))
    typer.echo(f"Updated {len(changed)} path(s)")
    _finish(ctx)


@app.command("clear-failed")
def clear_failed():
    """Clear the broken-bookmark flags."""
    ctx = _get_context()
    cleared = commands.clear_failed_jump_flags(ctx)
    typer.echo(f"Cleared broken bookmark flags: {cleared}")
    _finish(ctx)


# -----------------------------------------------------------------------------
# Navigation
# -----------------------------------------------------------------------------

def _navigate(file: Path, line: int, forward: bool) -> None:
    ctx = _get_context()
    active = ctx.groups.active
    try:
        if forward:
            bookmark = ctx.navigator.next(_abs(file), line - 1, active.id)
        else:
            bookmark = ctx.navigator.previous(_abs(file), line - 1, active.id)
    except NavigationFailure as e:
        _fail(str(e))
    _echo_bookmark(ctx, bookmark, f"No bookmarks in group {active.name}")
    _finish(ctx)


@app.command("next")
def next_bookmark(file: FileArgument, line: LineArgument):
    """Show the next bookmark of the active group (wraps around)."""
    _navigate(file, line, forward=True)


@app.command("prev")
def previous_bookmark(file: FileArgument, line: LineArgument):
    """Show the previous bookmark of the active group (wraps around)."""
    _navigate(file, line, forward=False)


@app.command()
def nearest(
    file: FileArgument,
    line: LineArgument,
    any_group: Annotated[bool, typer.Option(
        "--any-group", "-A",
        help="Consider bookmarks of every group"
    )] = False,
):
    """Show the bookmark closest to a line of a file."""
    ctx = _get_context()
    group_id = None if any_group else ctx.groups.active.id
    bookmark = ctx.navigator.nearest_in_file(_abs(file), line - 1, group_id)
    _echo_bookmark(ctx, bookmark, "No bookmarks in this file")
    _finish(ctx)


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------

@app.command()
def groups():
    """List groups; the active one is marked with *."""
    ctx = _get_context()
    # A fresh workspace lists its default group
    ctx.groups.active
    if _get_json_output():
        data = []
        for group in ctx.groups.all():
            entry = ctx.persistence.serialize_group(group)
            entry["active"] = group.is_active
            entry["visible"] = group.is_visible
            entry["bookmarks"] = len(ctx.store.group_bookmarks(group.id))
            data.append(entry)
        typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        for group in ctx.groups.all():
            typer.echo(_format_group(ctx, group))
    _finish(ctx)


@app.command("group-add")
def group_add(name: Annotated[str, typer.Argument(help="Group to create or switch to")]):
    """Create a group (if needed) and make it active."""
    ctx = _get_context()
    try:
        group = commands.add_group(ctx, name)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Active group: {group.name}")
    _finish(ctx)


@app.command("group-rename")
def group_rename(
    name: Annotated[str, typer.Argument(help="Current group name")],
    new_name: Annotated[str, typer.Argument(help="New group name")],
):
    """Rename a group; its bookmarks follow."""
    ctx = _get_context()
    try:
        group = commands.rename_group(ctx, name, new_name)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Renamed to {group.name}")
    _finish(ctx)


@app.command("group-delete")
def group_delete(
    names: Annotated[list[str], typer.Argument(help="Groups to delete")],
):
    """Delete groups together with their bookmarks."""
    ctx = _get_context()
    try:
        removed = commands.delete_groups(ctx, names)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Deleted {len(names)} group(s) and {removed} bookmark(s); active group: {ctx.groups.active.name}")
    _finish(ctx)


@app.command("group-color")
def group_color(
    color: Annotated[str, typer.Argument(help="Palette color name or hex color")],
    group: GroupOption = None,
):
    """Set the color of a group."""
    ctx = _get_context()
    try:
        target = commands.set_group_color(ctx, group, color)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"{target.name}: #{target.color}")
    _finish(ctx)


@app.command("group-shape")
def group_shape(
    shape: Annotated[str, typer.Argument(help="Shape name or unicode marker name")],
    group: GroupOption = None,
):
    """Set the gutter shape of a group."""
    ctx = _get_context()
    try:
        target = commands.set_group_shape(ctx, group, shape)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"{target.name}: {target.shape} {target.icon_text}")
    _finish(ctx)


@app.command()
def activate(name: Annotated[str, typer.Argument(help="Group to activate")]):
    """Make a group the active one (creating it if absent)."""
    ctx = _get_context()
    try:
        group = commands.set_active_group(ctx, name)
    except LinemarkError as e:
        _fail(str(e))
    typer.echo(f"Active group: {group.name}")
    _finish(ctx)


@app.command("hide-all")
def hide_all(
    off: Annotated[bool, typer.Option("--off", help="Show everything again")] = False,
):
    """Hide the bookmarks of every group."""
    ctx = _get_context()
    commands.set_hide_all(ctx, not off)
    typer.echo(commands.status_summary(ctx).visibility)
    _finish(ctx)


@app.command("hide-inactive")
def hide_inactive(
    off: Annotated[bool, typer.Option("--off", help="Show inactive groups again")] = False,
):
    """Hide the bookmarks of every group but the active one."""
    ctx = _get_context()
    commands.set_hide_inactive(ctx, not off)
    typer.echo(commands.status_summary(ctx).visibility)
    _finish(ctx)


@app.command()
def status():
    """Show the active group and bookmark counts."""
    ctx = _get_context()
    summary = commands.status_summary(ctx)
    if _get_json_output():
        typer.echo(json.dumps({
            "activeGroup": summary.active_group,
            "activeCount": summary.active_count,
            "groups": summary.group_count,
            "bookmarks": summary.bookmark_count,
            "failed": summary.failed_count,
            "visibility": summary.visibility,
        }))
    else:
        typer.echo(str(summary))
        typer.echo(f"{summary.group_count} group(s), {summary.bookmark_count} bookmark(s), {summary.visibility}")
        if summary.failed_count:
            typer.echo(f"{summary.failed_count} broken bookmark(s)")
    if ctx.last_load is not None:
        for error in ctx.last_load.errors:
            typer.echo(f"Warning: {error}", err=True)
    _finish(ctx)


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130)
    except Exception as e:
        # Full traceback to file, clean message to the user
        from .errors import log_exception
        log_path = log_exception(e, context="linemark CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
