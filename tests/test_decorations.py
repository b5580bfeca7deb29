"""
Tests for decoration handles and the per-file range maps.
"""

import pytest

from linemark.commands import (
    add_group,
    reload_settings,
    set_group_color,
    set_hide_all,
    set_hide_inactive,
    toggle_bookmark,
    toggle_labeled_bookmark,
)
from linemark.config import LinemarkConfig
from linemark.decorations import bookmark_key, group_key

from conftest import FakeBinder, FakeHost


P = "/w/a.py"


@pytest.fixture
def binder():
    return FakeBinder()


@pytest.fixture
def host():
    return FakeHost(visible=[P])


@pytest.fixture
def dctx(make_ctx, binder, host):
    return make_ctx(binder=binder, host=host)


def group_handle(ctx, name):
    return ctx.decorations.handle_for(group_key(ctx.groups.get(name)))


class TestHandles:

    @pytest.mark.asyncio
    async def test_refresh_all_creates_group_and_label_handles(self, dctx, binder):
        toggle_bookmark(dctx, P, 1)
        toggle_labeled_bookmark(dctx, P, 2, 0, "x")
        await dctx.decorations.refresh_all()

        assert sorted(binder.calls, key=repr) == sorted([
            ("bookmark", "ff0000ff", "default", None),
            ("bookmark", "ff0000ff", "default", "x"),
        ], key=repr)
        group = dctx.groups.get("default")
        labeled = dctx.store.at(P, 2, group.id)
        assert dctx.decorations.handle_for(bookmark_key(group, labeled)) is not None

    @pytest.mark.asyncio
    async def test_refresh_all_is_incremental(self, dctx, binder):
        toggle_bookmark(dctx, P, 1)
        await dctx.decorations.refresh_all()
        await dctx.decorations.refresh_all()
        assert len(binder.calls) == 1

    def test_headless_has_no_ranges(self, ctx):
        toggle_bookmark(ctx, P, 1)
        assert ctx.decorations.ranges_for_file(P) == {}

    @pytest.mark.asyncio
    async def test_unlabeled_bookmark_needs_no_own_handle(self, dctx, binder):
        bookmark = toggle_bookmark(dctx, P, 1)
        await dctx.decorations.refresh_bookmark(bookmark)
        assert binder.calls == []


class TestRanges:

    @pytest.mark.asyncio
    async def test_group_and_own_handles(self, dctx):
        toggle_bookmark(dctx, P, 1)
        toggle_bookmark(dctx, P, 4)
        labeled = toggle_labeled_bookmark(dctx, P, 2, 0, "x")
        await dctx.decorations.refresh_all()

        group = dctx.groups.get("default")
        own = dctx.decorations.handle_for(bookmark_key(group, labeled))
        assert dctx.decorations.ranges_for_file(P) == {
            group_handle(dctx, "default"): [1, 4],
            own: [2],
        }

    @pytest.mark.asyncio
    async def test_active_group_wins_the_line(self, dctx):
        toggle_bookmark(dctx, P, 3)
        add_group(dctx, "review")
        toggle_bookmark(dctx, P, 3)
        toggle_bookmark(dctx, P, 8, group="default")
        await dctx.decorations.refresh_all()

        assert dctx.decorations.ranges_for_file(P) == {
            group_handle(dctx, "review"): [3],
            group_handle(dctx, "default"): [8],
        }

    @pytest.mark.asyncio
    async def test_inactive_group_uses_group_handle_for_labels(self, dctx):
        toggle_labeled_bookmark(dctx, P, 5, 0, "x")
        add_group(dctx, "review")
        await dctx.decorations.refresh_all()
        assert dctx.decorations.ranges_for_file(P) == {group_handle(dctx, "default"): [5]}

    @pytest.mark.asyncio
    async def test_missing_own_handle_falls_back(self, dctx):
        dctx.groups.active
        await dctx.decorations.refresh_all()
        labeled = toggle_labeled_bookmark(dctx, P, 5, 0, "x")
        assert dctx.decorations.ranges_for_file(P) == {group_handle(dctx, "default"): [5]}

        await dctx.decorations.refresh_bookmark(labeled)
        own = dctx.decorations.handle_for(bookmark_key(dctx.groups.active, labeled))
        assert dctx.decorations.ranges_for_file(P) == {own: [5]}

    @pytest.mark.asyncio
    async def test_hidden_groups_are_not_drawn(self, dctx):
        toggle_bookmark(dctx, P, 5)
        add_group(dctx, "review")
        toggle_bookmark(dctx, P, 6)
        await dctx.decorations.refresh_all()

        set_hide_inactive(dctx, True)
        assert dctx.decorations.ranges_for_file(P) == {group_handle(dctx, "review"): [6]}
        set_hide_all(dctx, True)
        assert dctx.decorations.ranges_for_file(P) == {}

    @pytest.mark.asyncio
    async def test_writes_invalidate_cached_ranges(self, dctx):
        toggle_bookmark(dctx, P, 1)
        await dctx.decorations.refresh_all()
        first = dctx.decorations.ranges_for_file(P)
        assert dctx.decorations.ranges_for_file(P) is first

        toggle_bookmark(dctx, P, 7)
        assert dctx.decorations.ranges_for_file(P) == {group_handle(dctx, "default"): [1, 7]}


class TestApply:

    @pytest.mark.asyncio
    async def test_pushes_visible_editors(self, dctx, host):
        toggle_bookmark(dctx, P, 1)
        toggle_bookmark(dctx, "/w/hidden.py", 1)
        await dctx.decorations.refresh_all()

        assert dctx.decorations.apply(host) == 1
        assert host.decorations == {P: {group_handle(dctx, "default"): [1]}}

    @pytest.mark.asyncio
    async def test_style_change_clears_old_handle(self, dctx, host):
        toggle_bookmark(dctx, P, 1)
        await dctx.decorations.refresh_all()
        old = group_handle(dctx, "default")

        set_group_color(dctx, None, "blue")
        assert old in dctx.decorations.removed_handles
        await dctx.decorations.refresh_all()
        new = group_handle(dctx, "default")
        assert new != old

        dctx.decorations.apply(host)
        assert host.decorations[P] == {old: [], new: [1]}
        assert dctx.decorations.removed_handles == set()

    @pytest.mark.asyncio
    async def test_settings_style_change_recreates_everything(self, dctx, binder, workspace):
        toggle_labeled_bookmark(dctx, P, 1, 0, "x")
        await dctx.decorations.refresh_all()
        assert len(binder.calls) == 2

        reload_settings(dctx, LinemarkConfig(path=workspace, line_end_label_type="plain"))
        assert len(dctx.decorations.removed_handles) == 2
        assert dctx.decorations.ranges_for_file(P) == {}

        await dctx.decorations.refresh_all()
        assert len(binder.calls) == 4
