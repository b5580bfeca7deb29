"""
Tests for the linemark command line.

Each invocation opens the workspace, runs one command and saves, so
these also cover the load/save cycle end to end.
"""

import json

import pytest
from typer.testing import CliRunner

from linemark.cli import app


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_workspace(workspace, tmp_path, monkeypatch):
    """Workspace as the current directory, with an app.py to bookmark."""
    monkeypatch.setenv("LINEMARK_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("LINEMARK_ROOT", raising=False)
    monkeypatch.chdir(workspace)
    (workspace / "app.py").write_text("alpha\n  beta\ngamma\ndelta\n", encoding="utf-8")
    return workspace


@pytest.fixture
def invoke(runner, cli_workspace):
    def _invoke(*args, ok=True):
        result = runner.invoke(app, list(args))
        if ok:
            assert result.exit_code == 0, result.output
        return result
    return _invoke


class TestBookmarks:

    def test_toggle_and_list(self, invoke):
        result = invoke("toggle", "app.py", "2")
        assert result.stdout.strip() == "app.py:2 (default) beta"
        assert invoke("list").stdout.strip() == "app.py:2 (default) beta"

    def test_toggle_twice_removes_storage(self, invoke, cli_workspace):
        invoke("toggle", "app.py", "2")
        assert (cli_workspace / ".linemark" / "bookmarks.json").exists()
        assert "Bookmark removed" in invoke("toggle", "app.py", "2").stdout
        assert not (cli_workspace / ".linemark").exists()

    def test_label_switches_group(self, invoke):
        result = invoke("label", "app.py", "1", "todo@@review")
        assert result.stdout.strip() == "app.py:1 [todo] (review) alpha"
        assert invoke("status").stdout.splitlines()[0] == "review: 1"

    def test_relabel_and_delete(self, invoke):
        invoke("label", "app.py", "3", "x")
        assert "[y]" in invoke("relabel", "app.py", "3", "y").stdout
        assert "Deleted app.py:3 [y]" in invoke("delete", "app.py", "3").stdout
        assert invoke("list").stdout == ""

    def test_delete_missing_bookmark(self, invoke):
        result = invoke("delete", "app.py", "3", ok=False)
        assert result.exit_code == 1
        assert "No bookmark" in result.output

    def test_json_list(self, invoke):
        invoke("label", "app.py", "1", "todo")
        data = json.loads(invoke("--json", "list").stdout)
        assert data == [{
            "filePath": "app.py",
            "line": 0,
            "column": 0,
            "label": "todo",
            "lineText": "alpha",
            "groupName": "default",
        }]

    def test_clear_file(self, invoke):
        invoke("toggle", "app.py", "1")
        invoke("toggle", "app.py", "2")
        assert "Deleted 2 bookmark(s)" in invoke("clear-file", "app.py").stdout


class TestNavigation:

    def test_next_and_prev_wrap(self, invoke):
        invoke("toggle", "app.py", "1")
        invoke("toggle", "app.py", "3")
        assert invoke("next", "app.py", "3").stdout.startswith("app.py:1 ")
        assert invoke("prev", "app.py", "1").stdout.startswith("app.py:3 ")

    def test_next_in_empty_group(self, invoke):
        assert "No bookmarks in group default" in invoke("next", "app.py", "1").stdout

    def test_nearest(self, invoke):
        invoke("toggle", "app.py", "1")
        invoke("toggle", "app.py", "4")
        assert invoke("nearest", "app.py", "3").stdout.startswith("app.py:4 ")


class TestGroups:

    def test_fresh_workspace_lists_default(self, invoke):
        data = json.loads(invoke("--json", "groups").stdout)
        assert [(g["name"], g["active"]) for g in data] == [("default", True)]

    def test_group_lifecycle(self, invoke):
        invoke("toggle", "app.py", "1")
        assert "Active group: review" in invoke("group-add", "review").stdout
        invoke("move", "review", "--from", "default")
        data = json.loads(invoke("--json", "groups").stdout)
        assert {g["name"]: g["bookmarks"] for g in data} == {"default": 0, "review": 1}

        invoke("group-rename", "review", "later")
        assert "later" in invoke("list", "--all").stdout
        result = invoke("group-delete", "later")
        assert "active group: default" in result.stdout

    def test_unknown_group(self, invoke):
        result = invoke("list", "--group", "nope", ok=False)
        assert result.exit_code == 1
        assert "No such group" in result.output

    def test_move_needs_another_group(self, invoke):
        invoke("toggle", "app.py", "1")
        result = invoke("move", "default", ok=False)
        assert result.exit_code == 1

    def test_color_and_shape(self, invoke):
        invoke("toggle", "app.py", "1")
        assert invoke("group-color", "#00ff00").stdout.strip() == "default: #00ff00ff"
        assert invoke("group-shape", "star").stdout.strip() == "default: star default"

    def test_hide_flags(self, invoke):
        invoke("toggle", "app.py", "1")
        assert invoke("hide-inactive").stdout.strip() == "inactive groups hidden"
        assert invoke("hide-all").stdout.strip() == "all hidden"
        invoke("hide-all", "--off")
        data = json.loads(invoke("--json", "status").stdout)
        assert data["visibility"] == "inactive groups hidden"


class TestRoot:

    def test_root_option(self, runner, cli_workspace, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        target = str(cli_workspace / "app.py")
        result = runner.invoke(app, ["--root", str(cli_workspace), "toggle", target, "4"])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "app.py:4 (default) delta"
        assert (cli_workspace / ".linemark" / "bookmarks.json").exists()
