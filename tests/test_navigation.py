"""
Tests for next/previous/nearest navigation, selection expansion and jumps.
"""

import pytest

from linemark.errors import NavigationFailure, NoUsableBookmarksError
from linemark.navigation import Navigator
from linemark.protocol import TextDocument
from linemark.types import Selection

from conftest import FakeHost


@pytest.fixture
def nav(store, groups):
    return Navigator(store, group_name=groups.name_of)


@pytest.fixture
def gid(groups):
    return groups.active.id


class TestNextPrevious:

    def test_next_in_same_file(self, nav, add, gid):
        add("a.py", 2)
        target = add("a.py", 8)
        assert nav.next("a.py", 2, gid) is target

    def test_next_crosses_files(self, nav, add, gid):
        add("a.py", 2)
        target = add("b.py", 0)
        assert nav.next("a.py", 5, gid) is target

    def test_next_wraps_around(self, nav, add, gid):
        first = add("a.py", 2)
        add("b.py", 0)
        assert nav.next("c.py", 0, gid) is first

    def test_previous_wraps_around(self, nav, add, gid):
        add("a.py", 2)
        last = add("b.py", 0)
        assert nav.previous("a.py", 1, gid) is last

    def test_previous_in_same_file(self, nav, add, gid):
        target = add("a.py", 2)
        add("a.py", 8)
        assert nav.previous("a.py", 8, gid) is target

    def test_empty_group(self, nav, gid):
        assert nav.next("a.py", 0, gid) is None
        assert nav.previous("a.py", 0, gid) is None

    def test_other_groups_ignored(self, nav, add, gid):
        add("a.py", 5, group="other")
        mine = add("a.py", 9)
        assert nav.next("a.py", 0, gid) is mine


class TestFailedJumps:

    @pytest.fixture
    def three(self, add):
        return [add("a.py", 1), add("a.py", 5), add("b.py", 3)]

    @pytest.mark.parametrize("start", [("a.py", 0), ("a.py", 1), ("a.py", 6), ("z.py", 0)])
    def test_next_returns_the_only_usable(self, nav, gid, three, start):
        three[0].failed_jump = True
        three[2].failed_jump = True
        assert nav.next(start[0], start[1], gid) is three[1]
        assert nav.previous(start[0], start[1], gid) is three[1]

    def test_all_failed_reports_no_usable(self, nav, gid, three):
        for bookmark in three:
            bookmark.failed_jump = True
        with pytest.raises(NoUsableBookmarksError) as exc_info:
            nav.next("a.py", 0, gid)
        assert exc_info.value.group_name == "default"
        with pytest.raises(NoUsableBookmarksError):
            nav.previous("a.py", 0, gid)


class TestNearest:

    def test_closer_after_wins(self, nav, add):
        add("a.py", 2)
        after = add("a.py", 11)
        assert nav.nearest_in_file("a.py", 10) is after

    def test_closer_before_wins(self, nav, add):
        before = add("a.py", 9)
        add("a.py", 20)
        assert nav.nearest_in_file("a.py", 10) is before

    def test_tie_favors_before(self, nav, add):
        before = add("a.py", 8)
        add("a.py", 12)
        assert nav.nearest_in_file("a.py", 10) is before

    def test_exact_line(self, nav, add):
        exact = add("a.py", 10)
        assert nav.nearest_in_file("a.py", 10) is exact

    def test_group_filter(self, nav, add, groups):
        add("a.py", 10, group="other")
        mine = add("a.py", 15)
        assert nav.nearest_in_file("a.py", 10, groups.active.id) is mine
        assert nav.nearest_in_file("a.py", 10).line == 10

    def test_empty_file(self, nav):
        assert nav.nearest_in_file("a.py", 3) is None


class TestSelectionExpansion:

    @pytest.fixture
    def doc(self):
        return TextDocument("\n".join(f"text {n}" for n in range(12)))

    def test_forward_to_next_bookmark(self, nav, add, gid, doc):
        add("a.py", 7)
        result = nav.expand_selection_forward("a.py", Selection(2, 1, 3, 2), doc, gid)
        assert (result.start_line, result.start_column, result.end_line, result.end_column) == (2, 1, 7, 0)

    def test_forward_on_current_line_selects_to_line_end(self, nav, add, gid, doc):
        add("a.py", 3)
        result = nav.expand_selection_forward("a.py", Selection(3, 0, 3, 2), doc, gid)
        assert (result.end_line, result.end_column) == (3, len("text 3"))

    def test_forward_from_line_end_skips_current_line(self, nav, add, gid, doc):
        add("a.py", 3)
        target = add("a.py", 9)
        result = nav.expand_selection_forward("a.py", Selection(3, 0, 3, len("text 3")), doc, gid)
        assert result.end_line == target.line

    def test_forward_nothing_below(self, nav, add, gid, doc):
        add("a.py", 1)
        assert nav.expand_selection_forward("a.py", Selection(4, 0, 4, 1), doc, gid) is None

    def test_backward_to_previous_bookmark(self, nav, add, gid, doc):
        add("a.py", 2)
        result = nav.expand_selection_backward("a.py", Selection(6, 3, 8, 0), doc, gid)
        assert (result.start_line, result.start_column, result.end_line, result.end_column) == (2, len("text 2"), 8, 0)

    def test_backward_from_line_start_skips_current_line(self, nav, add, gid, doc):
        target = add("a.py", 1)
        add("a.py", 6)
        result = nav.expand_selection_backward("a.py", Selection(6, 0, 8, 0), doc, gid)
        assert result.start_line == target.line


class TestJump:

    def test_success_clears_flag(self, nav, add):
        bookmark = add("a.py", 4, column=2)
        bookmark.failed_jump = True
        host = FakeHost()
        nav.jump(bookmark, host)
        assert host.revealed == [("a.py", 4, 2, False)]
        assert bookmark.failed_jump is False

    def test_failure_sets_sticky_flag(self, nav, add):
        bookmark = add("gone.py", 4)
        host = FakeHost(broken={"gone.py"})
        with pytest.raises(NavigationFailure) as exc_info:
            nav.jump(bookmark, host)
        assert exc_info.value.bookmark is bookmark
        assert bookmark.failed_jump is True
