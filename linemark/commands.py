"""
Command surface over a BookmarkContext.

Each command mutates the store and/or registry, then requests a
(debounced) save. Decoration refresh happens through the event channel.
Commands raise ``ValidationError`` or ``NoDestinationAvailable`` for
rejected input; nothing here is fatal.
"""

import logging
import os
from typing import Iterable, Optional

from .config import LinemarkConfig, style_changed
from .context import BookmarkContext
from .errors import NoDestinationAvailable, ValidationError
from .groups import validate_group_name
from .protocol import Document
from .reconcile import ReconcileResult, TextChange
from .types import UNICODE_SHAPE, Bookmark, Group, StatusSummary, is_slot_label, is_valid_shape

logger = logging.getLogger(__name__)

LABEL_GROUP_SEPARATOR = "@@"
# A literal "@" typed before a separator is escaped with a zero-width space
ESCAPED_AT = "@\u200b"


def _line_text(document: Optional[Document], line: int) -> str:
    if document is None or line >= document.line_count:
        return ""
    return document.line_at(line).strip()


def resolve_group(ctx: BookmarkContext, group) -> Group:
    """Accept a Group, a group name, or None (the active group)."""
    if group is None:
        return ctx.groups.active
    if isinstance(group, Group):
        return group
    found = ctx.groups.get(group)
    if found is None:
        raise ValidationError(f"No such group: {group!r}")
    return found


def _remove_slot_label(ctx: BookmarkContext, file_path: str, label: Optional[str],
                       group_id: int, keep: Optional[Bookmark] = None) -> None:
    """Free a single-character label slot in (file, group)."""
    if not is_slot_label(label):
        return
    existing = ctx.store.with_label(file_path, label, group_id)
    if existing is not None and existing is not keep:
        logger.debug("Label %r moves from line %d", label, existing.line)
        ctx.store.remove(existing)


# -----------------------------------------------------------------------------
# Toggling
# -----------------------------------------------------------------------------

def toggle_bookmark(
    ctx: BookmarkContext,
    file_path: str,
    line: int,
    column: int = 0,
    document: Optional[Document] = None,
    group=None,
) -> Optional[Bookmark]:
    """
    Add an unlabeled bookmark at *line*, or remove the one already there.

    Returns:
        The new bookmark, or None if an existing one was removed
    """
    target = resolve_group(ctx, group)
    existing = ctx.store.at(file_path, line, target.id)
    if existing is not None:
        ctx.store.remove(existing)
        ctx.request_save()
        return None

    bookmark = ctx.store.add(Bookmark(
        file_path=file_path,
        line=line,
        column=column,
        group_id=target.id,
        line_text=_line_text(document, line),
    ))
    ctx.request_save()
    return bookmark


def parse_label_input(text: str) -> tuple[str, str]:
    """
    Split ``label``, ``label@@group`` or ``@@group`` input.

    Returns:
        (label, group_name); either may be empty

    Raises:
        ValidationError: If the group name is too long
    """
    text = (text or "").strip()
    if LABEL_GROUP_SEPARATOR in text:
        label, _, group_name = text.partition(LABEL_GROUP_SEPARATOR)
        label, group_name = label.strip(), group_name.strip()
    else:
        label, group_name = text.replace(ESCAPED_AT, "@"), ""
    if group_name:
        validate_group_name(group_name)
    return label, group_name


def suggest_label(selected_text: str) -> str:
    """Default label for a selection: first line, whitespace collapsed, ``@`` escaped."""
    text = (selected_text or "").strip().split("\n", 1)[0].strip()
    text = " ".join(text.split())
    return text.replace("@", ESCAPED_AT)


def toggle_labeled_bookmark(
    ctx: BookmarkContext,
    file_path: str,
    line: int,
    column: int,
    text: str,
    document: Optional[Document] = None,
) -> Optional[Bookmark]:
    """
    Labeled toggle on the active group.

    An existing active-group bookmark on *line* is removed and *text* is
    ignored. Otherwise *text* is parsed as ``label``, ``label@@group`` or
    ``@@group``: a named group is created if needed and activated, then
    the labeled bookmark is added to it. A single-character label replaces
    the same label elsewhere in the file.

    Returns:
        The new bookmark, or None if nothing was added
    """
    existing = ctx.store.at(file_path, line, ctx.groups.active.id)
    if existing is not None:
        ctx.store.remove(existing)
        ctx.request_save()
        return None

    label, group_name = parse_label_input(text)
    if not label and not group_name:
        return None

    if group_name:
        ctx.groups.set_active(group_name)
    target = ctx.groups.active

    bookmark = None
    if label:
        with ctx.events.batch():
            _remove_slot_label(ctx, file_path, label, target.id)
            occupant = ctx.store.at(file_path, line, target.id)
            if occupant is not None:
                ctx.store.remove(occupant)
            bookmark = ctx.store.add(Bookmark(
                file_path=file_path,
                line=line,
                column=column,
                group_id=target.id,
                label=label,
                line_text=_line_text(document, line),
            ))
    ctx.request_save()
    return bookmark


# -----------------------------------------------------------------------------
# Deleting and relabeling
# -----------------------------------------------------------------------------

def delete_bookmark(ctx: BookmarkContext, bookmark: Bookmark) -> bool:
    removed = ctx.store.remove(bookmark)
    if removed:
        ctx.request_save()
    return removed


def delete_bookmarks_of_file(ctx: BookmarkContext, file_path: str, group=None) -> int:
    """Delete the file's bookmarks of one group, or of every group when *group* is None."""
    if group is None:
        doomed = ctx.store.find_in_file(file_path)
    else:
        group_id = resolve_group(ctx, group).id
        doomed = ctx.store.find_in_file(file_path, lambda b: b.group_id == group_id)
    removed = ctx.store.remove_many(doomed)
    if removed:
        ctx.request_save()
    return removed


def relabel(ctx: BookmarkContext, bookmark: Bookmark, new_label: Optional[str]) -> Bookmark:
    """
    Replace *bookmark* with a copy carrying *new_label*.

    An empty label removes the label. Unchanged input returns *bookmark*
    itself.
    """
    label = (new_label or "").strip() or None
    if label == bookmark.label:
        return bookmark
    with ctx.events.batch():
        _remove_slot_label(ctx, bookmark.file_path, label, bookmark.group_id, keep=bookmark)
        replacement = ctx.store.replace(bookmark, bookmark.copy_to(label=label))
    ctx.request_save()
    return replacement


# -----------------------------------------------------------------------------
# Groups
# -----------------------------------------------------------------------------

def add_group(ctx: BookmarkContext, name: str) -> Group:
    """Create *name* if needed and make it the active group."""
    group = ctx.groups.set_active(name)
    ctx.request_save()
    return group


def rename_group(ctx: BookmarkContext, group, new_name: str) -> Group:
    renamed = ctx.groups.rename(resolve_group(ctx, group), new_name)
    ctx.request_save()
    return renamed


def delete_groups(ctx: BookmarkContext, groups: Iterable) -> int:
    """Delete groups and their bookmarks. Returns the number of bookmarks removed."""
    targets = [resolve_group(ctx, g) for g in groups]
    with ctx.events.batch():
        removed = ctx.groups.delete(targets, ctx.store)
    ctx.request_save()
    return removed


def set_active_group(ctx: BookmarkContext, name: str) -> Group:
    group = ctx.groups.set_active(name)
    ctx.request_save()
    return group


def set_hide_all(ctx: BookmarkContext, hide_all: bool) -> bool:
    changed = ctx.groups.set_hide_all(hide_all)
    if changed:
        ctx.request_save()
    return changed


def set_hide_inactive(ctx: BookmarkContext, hide_inactive: bool) -> bool:
    changed = ctx.groups.set_hide_inactive_groups(hide_inactive)
    if changed:
        ctx.request_save()
    return changed


def set_group_color(ctx: BookmarkContext, group, color: str) -> Group:
    """*color* is a palette name or a hex color."""
    target = resolve_group(ctx, group)
    palette = ctx.groups.colors
    try:
        ctx.groups.set_color(target, palette.get(color, color))
    except ValueError as e:
        raise ValidationError(str(e)) from e
    ctx.request_save()
    return target


def set_group_shape(ctx: BookmarkContext, group, shape: str) -> Group:
    """*shape* is a vector shape name or a configured unicode marker name."""
    target = resolve_group(ctx, group)
    markers = ctx.config.unicode_markers
    if shape in markers:
        ctx.groups.set_shape(target, UNICODE_SHAPE, markers[shape])
    elif is_valid_shape(shape) and shape != UNICODE_SHAPE:
        ctx.groups.set_shape(target, shape)
    else:
        raise ValidationError(f"Unknown shape or marker: {shape!r}")
    ctx.request_save()
    return target


def move_bookmarks(ctx: BookmarkContext, src, dst, bookmarks: Optional[Iterable[Bookmark]] = None) -> int:
    """
    Move bookmarks from *src* into *dst* (all of them when *bookmarks* is None).

    A bookmark whose line is already taken in *dst* stays where it is.
    A single-character label takes over that label slot in *dst*.

    Raises:
        NoDestinationAvailable: If *dst* is *src* or there is no other group
    """
    source = resolve_group(ctx, src)
    if len(ctx.groups) < 2:
        raise NoDestinationAvailable("There is no other group to move bookmarks into")
    target = resolve_group(ctx, dst)
    if target is source:
        raise NoDestinationAvailable("Source and destination group are the same")

    if bookmarks is None:
        selected = list(ctx.store.group_bookmarks(source.id))
    else:
        selected = [b for b in bookmarks if b.group_id == source.id]

    moved = 0
    with ctx.events.batch():
        for bookmark in selected:
            if ctx.store.at(bookmark.file_path, bookmark.line, target.id) is not None:
                logger.warning(
                    "Not moving %s: %r already has a bookmark on that line", bookmark, target.name,
                )
                continue
            _remove_slot_label(ctx, bookmark.file_path, bookmark.label, target.id)
            ctx.store.replace(bookmark, bookmark.copy_to(group_id=target.id))
            moved += 1
    if moved:
        logger.info("Moved %d bookmark(s) from %r to %r", moved, source.name, target.name)
        ctx.request_save()
    return moved


def clear_failed_jump_flags(ctx: BookmarkContext) -> int:
    cleared = 0
    for bookmark in ctx.store.all():
        if bookmark.failed_jump:
            bookmark.failed_jump = False
            cleared += 1
    if cleared:
        ctx.request_save()
    return cleared


# -----------------------------------------------------------------------------
# Host events
# -----------------------------------------------------------------------------

def apply_edit(ctx: BookmarkContext, file_path: str, changes: Iterable[TextChange],
               document: Document) -> ReconcileResult:
    result = ctx.reconciler.apply(file_path, changes, document)
    if result.changed:
        ctx.request_save()
    return result


def on_file_renamed(ctx: BookmarkContext, old_path: str, new_path: str,
                    is_directory: Optional[bool] = None) -> set[str]:
    """Re-point bookmarks after a rename. Directories rewrite every path under them."""
    if is_directory is None:
        is_directory = os.path.isdir(new_path)
    changed = ctx.store.rename_file(old_path, new_path, prefix=is_directory)
    if changed:
        ctx.request_save()
    return changed


def on_file_deleted(ctx: BookmarkContext, file_path: str) -> int:
    return delete_bookmarks_of_file(ctx, file_path)


def reload_settings(ctx: BookmarkContext, config: LinemarkConfig) -> bool:
    """
    Apply a new configuration.

    Returns True if the rendering style changed, in which case every
    decoration handle is dropped and must be re-created.
    """
    redo = style_changed(ctx.config, config)
    ctx.config = config
    ctx.groups.update_palette(config.colors, config.default_shape)
    if redo:
        logger.info("Decoration style changed, redoing all decorations")
        ctx.decorations.reset()
        ctx.events.dirty("style", style_changed=True)
    return redo


def status_summary(ctx: BookmarkContext) -> StatusSummary:
    active = ctx.groups.active
    bookmarks = ctx.store.all()
    return StatusSummary(
        active_group=active.name,
        active_count=len(ctx.store.group_bookmarks(active.id)),
        group_count=len(ctx.groups),
        bookmark_count=len(bookmarks),
        hide_all=ctx.groups.hide_all,
        hide_inactive_groups=ctx.groups.hide_inactive_groups,
        failed_count=sum(1 for b in bookmarks if b.failed_jump),
    )
