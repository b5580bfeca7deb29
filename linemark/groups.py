"""
Group registry: named, styled bookmark groups.

The registry exclusively owns Group values. Exactly one group is active
at a time. Visibility is derived from two global flags:

    visible = not hide_all and (not hide_inactive_groups or group.is_active)
"""

import itertools
import logging
from typing import Iterable, Mapping, Optional

from .errors import ValidationError
from .events import DecorationEvents
from .types import (
    DEFAULT_GROUP_NAME,
    DEFAULT_SHAPE,
    FALLBACK_COLOR,
    MAX_GROUP_NAME_LENGTH,
    RESERVED_GROUP_NAMES,
    UNICODE_SHAPE,
    Group,
    is_valid_shape,
    normalize_color,
)

logger = logging.getLogger(__name__)


def validate_group_name(name: str) -> str:
    """Trim and check a group name. Returns the trimmed name."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name cannot be empty")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise ValidationError(
            f"Choose a maximum {MAX_GROUP_NAME_LENGTH} character long group name"
        )
    return name


class GroupRegistry:
    """
    Owns all groups, the active group and the global visibility flags.

    Args:
        colors: Ordered palette (name -> color). Empty means "use the
            fallback color for everything".
        default_shape: Shape given to newly created groups
        events: Channel for decoration-dirty notifications
    """

    def __init__(
        self,
        colors: Optional[Mapping[str, str]] = None,
        default_shape: str = DEFAULT_SHAPE,
        events: Optional[DecorationEvents] = None,
    ):
        self._events = events or DecorationEvents()
        self._ids = itertools.count(1)
        self._groups: list[Group] = []
        self._active: Optional[Group] = None
        self.hide_all = False
        self.hide_inactive_groups = False
        self._colors: dict[str, str] = {}
        self.default_shape = DEFAULT_SHAPE
        self.update_palette(colors or {}, default_shape)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def all(self) -> list[Group]:
        """Groups sorted by name (a copy)."""
        return list(self._groups)

    def names(self) -> list[str]:
        return [g.name for g in self._groups]

    def get(self, name: str) -> Optional[Group]:
        for group in self._groups:
            if group.name == name:
                return group
        return None

    def by_id(self, group_id: int) -> Optional[Group]:
        for group in self._groups:
            if group.id == group_id:
                return group
        return None

    def name_of(self, group_id: int) -> str:
        group = self.by_id(group_id)
        if group is None:
            raise KeyError(f"Unknown group id: {group_id}")
        return group.name

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    @property
    def active(self) -> Group:
        """The active group; the default group is created on first access."""
        if self._active is None:
            self.set_active(DEFAULT_GROUP_NAME)
        return self._active

    @property
    def colors(self) -> dict[str, str]:
        return dict(self._colors)

    # -------------------------------------------------------------------------
    # Creation and colors
    # -------------------------------------------------------------------------

    def ensure_group(self, name: str) -> Group:
        """
        Get the group called *name*, creating it if needed.

        A new group gets the least-used palette color and the default shape.
        Idempotent: calling it again returns the same Group.
        """
        name = validate_group_name(name)
        group = self.get(name)
        if group is not None:
            return group
        group = Group(
            id=next(self._ids),
            name=name,
            color=self.least_used_color(),
            shape=self.default_shape,
            icon_text=name,
        )
        self._add(group)
        logger.debug("Created group %r (color=%s)", name, group.color)
        return group

    def least_used_color(self) -> str:
        """
        Palette color used by the fewest groups.

        Ties go to the first color in palette order. Colors of groups that
        are not in the palette are ignored.
        """
        if not self._colors:
            return FALLBACK_COLOR
        usages: dict[str, int] = {}
        for color in self._colors.values():
            usages.setdefault(color, 0)
        for group in self._groups:
            if group.color in usages:
                usages[group.color] += 1
        least = min(usages.values())
        for color, count in usages.items():
            if count == least:
                return color
        return FALLBACK_COLOR  # unreachable, usages is non-empty

    def initial_color(self) -> str:
        """The color a brand-new group gets in an empty registry."""
        if not self._colors:
            return FALLBACK_COLOR
        return next(iter(self._colors.values()))

    def is_customized(self, group: Group) -> bool:
        """True if *group* differs from what ``ensure_group`` would create."""
        return (
            group.shape != self.default_shape
            or group.color != self.initial_color()
        )

    def update_palette(self, colors: Mapping[str, str], default_shape: str = DEFAULT_SHAPE) -> None:
        """Replace the configured palette and default shape."""
        palette: dict[str, str] = {}
        for color_name, value in colors.items():
            try:
                palette[color_name] = normalize_color(value)
            except ValueError:
                logger.warning("Ignoring invalid color %r for %r", value, color_name)
        self._colors = palette
        if is_valid_shape(default_shape) and default_shape != UNICODE_SHAPE:
            self.default_shape = default_shape
        else:
            logger.warning("Unknown default shape %r, using %r", default_shape, DEFAULT_SHAPE)
            self.default_shape = DEFAULT_SHAPE

    def _add(self, group: Group) -> None:
        self._groups.append(group)
        self._groups.sort(key=lambda g: g.name)
        group.is_visible = self._visibility_for(group)
        self._events.dirty("group-added", group_id=group.id)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def rename(self, group: Group, new_name: str) -> Group:
        """
        Rename *group* in place; its id and all bookmark references survive.

        Raises:
            ValidationError: empty, unchanged, too long, reserved or taken
        """
        trimmed = (new_name or "").strip()
        if trimmed == group.name:
            raise ValidationError("The new group name is the same as the current one")
        trimmed = validate_group_name(trimmed)
        if trimmed in RESERVED_GROUP_NAMES:
            raise ValidationError(f"{trimmed!r} is a reserved group name")
        other = self.get(trimmed)
        if other is not None and other is not group:
            raise ValidationError("The entered bookmark group name is already in use")
        logger.info("Renaming group %r to %r", group.name, trimmed)
        group.name = trimmed
        if group.shape != UNICODE_SHAPE:
            group.icon_text = trimmed
        self._groups.sort(key=lambda g: g.name)
        self._events.dirty("group-renamed", group_id=group.id)
        return group

    def delete(self, groups: Iterable[Group], store) -> int:
        """
        Delete *groups* and every bookmark they own.

        If the active group is among them, the first remaining group becomes
        active, or a recreated default group when none remain.

        Returns:
            Number of bookmarks removed
        """
        removed = 0
        active_deleted = False
        for group in list(groups):
            if group not in self._groups:
                continue
            active_deleted = active_deleted or group is self._active
            removed += store.remove_many(store.group_bookmarks(group.id))
            self._groups.remove(group)
            store.invalidate_group(group.id)
            logger.info("Deleted group %r", group.name)
        if active_deleted:
            self._active = None
        if not self._groups:
            self.set_active(DEFAULT_GROUP_NAME)
        elif active_deleted:
            self.set_active(self._groups[0].name)
        return removed

    def set_active(self, name: str) -> Group:
        """Activate *name* (creating it if absent) and recompute visibility."""
        group = self.ensure_group(name)
        if group is self._active:
            return group
        if self._active is not None:
            self._active.is_active = False
        group.is_active = True
        self._active = group
        self._refresh_visibility()
        return group

    def set_hide_all(self, hide_all: bool) -> bool:
        """Returns True if the flag changed."""
        if self.hide_all == hide_all:
            return False
        self.hide_all = hide_all
        self._refresh_visibility()
        return True

    def set_hide_inactive_groups(self, hide_inactive_groups: bool) -> bool:
        """Returns True if the flag changed."""
        if self.hide_inactive_groups == hide_inactive_groups:
            return False
        self.hide_inactive_groups = hide_inactive_groups
        self._refresh_visibility()
        return True

    def set_color(self, group: Group, color: str) -> None:
        group.color = normalize_color(color)
        self._events.dirty("group-style", group_id=group.id, style_changed=True)

    def set_shape(self, group: Group, shape: str, icon_text: str = "") -> None:
        if not is_valid_shape(shape):
            raise ValidationError(f"Unknown shape: {shape!r}")
        if shape == UNICODE_SHAPE and not icon_text:
            raise ValidationError("A unicode marker needs a glyph")
        group.shape = shape
        group.icon_text = icon_text if shape == UNICODE_SHAPE else group.name
        self._events.dirty("group-style", group_id=group.id, style_changed=True)

    def replace_all(
        self,
        groups: Iterable[Group],
        *,
        hide_all: bool = False,
        hide_inactive_groups: bool = False,
    ) -> None:
        """
        Swap in a freshly loaded set of groups.

        Incoming ids are reassigned so they stay unique within the session.
        No group is active afterwards until ``set_active`` is called (or
        ``active`` is read, which falls back to the default group).
        """
        self._groups = []
        self._active = None
        for group in groups:
            if self.get(group.name) is not None:
                logger.warning("Skipping duplicate group %r", group.name)
                continue
            group.id = next(self._ids)
            group.is_active = False
            self._groups.append(group)
        self._groups.sort(key=lambda g: g.name)
        self.hide_all = hide_all
        self.hide_inactive_groups = hide_inactive_groups
        self._refresh_visibility()

    def new_group(self, name: str, color: str, shape: str = DEFAULT_SHAPE, icon_text: str = "") -> Group:
        """Build a detached Group (for deserialization); see ``replace_all``."""
        name = validate_group_name(name)
        if not is_valid_shape(shape):
            raise ValueError(f"Unknown shape: {shape!r}")
        if shape != UNICODE_SHAPE or not icon_text:
            icon_text = icon_text or name
        return Group(id=0, name=name, color=normalize_color(color), shape=shape, icon_text=icon_text)

    def _visibility_for(self, group: Group) -> bool:
        return not self.hide_all and (not self.hide_inactive_groups or group.is_active)

    def _refresh_visibility(self) -> None:
        for group in self._groups:
            group.is_visible = self._visibility_for(group)
        self._events.dirty("visibility")
