"""
Tests for the GroupRegistry: color allocation, rename validation,
cascading delete and visibility.
"""

import pytest

from linemark.errors import ValidationError
from linemark.groups import GroupRegistry, validate_group_name
from linemark.types import DEFAULT_GROUP_NAME, FALLBACK_COLOR, MAX_GROUP_NAME_LENGTH


class TestColors:

    def test_least_used_color_tie_break(self):
        registry = GroupRegistry({"A": "aaaaaaff", "B": "bbbbbbff"})
        assert registry.ensure_group("one").color == "aaaaaaff"
        assert registry.ensure_group("two").color == "bbbbbbff"
        assert registry.ensure_group("three").color == "aaaaaaff"

    def test_no_palette_uses_fallback(self):
        registry = GroupRegistry({})
        assert registry.ensure_group("one").color == FALLBACK_COLOR
        assert registry.ensure_group("two").color == FALLBACK_COLOR

    def test_foreign_colors_are_not_counted(self, groups):
        first = groups.ensure_group("one")
        groups.set_color(first, "#123456")
        assert groups.ensure_group("two").color == "ff0000ff"

    def test_invalid_palette_entries_skipped(self):
        registry = GroupRegistry({"bad": "nope", "ok": "#010203"})
        assert registry.colors == {"ok": "010203ff"}

    def test_unknown_default_shape_falls_back(self):
        registry = GroupRegistry({}, default_shape="hexagon")
        assert registry.default_shape == "bookmark"


class TestEnsureGroup:

    def test_idempotent(self, groups):
        first = groups.ensure_group("review")
        assert groups.ensure_group("review") is first
        assert groups.ensure_group("  review  ") is first
        assert len(groups) == 1

    def test_new_group_defaults(self, groups):
        group = groups.ensure_group("review")
        assert group.shape == "bookmark"
        assert group.icon_text == "review"
        assert not group.is_active

    def test_ids_are_unique(self, groups):
        ids = {groups.ensure_group(name).id for name in ("a", "b", "c")}
        assert len(ids) == 3

    def test_sorted_by_name(self, groups):
        for name in ("zeta", "alpha", "mid"):
            groups.ensure_group(name)
        assert groups.names() == ["alpha", "mid", "zeta"]

    @pytest.mark.parametrize("name", ["", "   ", "x" * (MAX_GROUP_NAME_LENGTH + 1)])
    def test_invalid_names(self, groups, name):
        with pytest.raises(ValidationError):
            groups.ensure_group(name)

    def test_validate_trims(self):
        assert validate_group_name("  ok ") == "ok"


class TestRename:

    def test_rename_keeps_identity(self, groups, store, add):
        group = groups.ensure_group("old")
        bookmark = add("a.py", 1, group="old")
        renamed = groups.rename(group, "  new ")
        assert renamed is group
        assert group.name == "new"
        assert group.icon_text == "new"
        assert groups.name_of(bookmark.group_id) == "new"
        assert groups.get("old") is None

    @pytest.mark.parametrize("new_name", ["", "old", "x" * 41, "taken", DEFAULT_GROUP_NAME, "external"])
    def test_rename_rejected(self, groups, new_name):
        group = groups.ensure_group("old")
        groups.ensure_group("taken")
        groups.active
        with pytest.raises(ValidationError):
            groups.rename(group, new_name)
        assert group.name == "old"

    def test_rename_keeps_unicode_glyph(self, groups):
        group = groups.ensure_group("old")
        groups.set_shape(group, "unicode", "✓")
        groups.rename(group, "new")
        assert group.icon_text == "✓"


class TestDelete:

    def test_cascade_removes_bookmarks(self, groups, store, add):
        add("a.py", 1, group="gone")
        add("a.py", 2, group="gone")
        kept = add("a.py", 1, group="kept")
        removed = groups.delete([groups.get("gone")], store)
        assert removed == 2
        assert store.all() == [kept]
        assert groups.get("gone") is None

    def test_active_falls_back_to_first_remaining(self, groups, store):
        groups.ensure_group("beta")
        groups.ensure_group("alpha")
        groups.set_active("gamma")
        groups.delete([groups.get("gamma")], store)
        assert groups.active.name == "alpha"
        assert groups.active.is_active

    def test_deleting_everything_recreates_default(self, groups, store, add):
        add("a.py", 1, group="one")
        groups.set_active("one")
        groups.delete(groups.all(), store)
        assert groups.names() == [DEFAULT_GROUP_NAME]
        assert groups.active.name == DEFAULT_GROUP_NAME
        assert store.all() == []

    def test_deleting_inactive_keeps_active(self, groups, store):
        groups.set_active("main")
        groups.delete([groups.ensure_group("other")], store)
        assert groups.active.name == "main"


class TestVisibility:

    def test_single_active_group(self, groups):
        groups.set_active("a")
        groups.set_active("b")
        assert [g.name for g in groups.all() if g.is_active] == ["b"]

    def test_hide_inactive(self, groups):
        groups.ensure_group("a")
        groups.set_active("b")
        assert groups.set_hide_inactive_groups(True)
        assert not groups.get("a").is_visible
        assert groups.get("b").is_visible
        groups.set_active("a")
        assert groups.get("a").is_visible
        assert not groups.get("b").is_visible

    def test_hide_all_wins(self, groups):
        groups.set_active("a")
        groups.set_hide_all(True)
        assert not groups.get("a").is_visible
        assert groups.set_hide_all(True) is False
        groups.set_hide_all(False)
        assert groups.get("a").is_visible

    def test_new_group_respects_flags(self, groups):
        groups.set_active("a")
        groups.set_hide_inactive_groups(True)
        assert not groups.ensure_group("late").is_visible


class TestStyle:

    def test_set_shape_vector(self, groups):
        group = groups.ensure_group("g")
        groups.set_shape(group, "heart")
        assert group.style() == ("heart", group.color, "g")

    def test_unicode_needs_glyph(self, groups):
        with pytest.raises(ValidationError):
            groups.set_shape(groups.ensure_group("g"), "unicode")

    def test_unknown_shape(self, groups):
        with pytest.raises(ValidationError):
            groups.set_shape(groups.ensure_group("g"), "hexagon")

    def test_style_change_emits_event(self, groups, events):
        seen = []
        group = groups.ensure_group("g")
        events.subscribe(seen.append)
        groups.set_color(group, "#abcdef")
        assert seen[-1].style_changed
        assert seen[-1].group_id == group.id
