"""Tests for the notebook store and its tool handlers."""

import json
from types import SimpleNamespace

import pytest

from toyagent import fmt
from toyagent.errors import NotebookError
from toyagent.notebook import Note, Notebook, add_note, delete_note, update_note


@pytest.fixture(autouse=True)
def _quiet_console():
    fmt.init(no_color=True)


def _ctx(nb=None, verbose=False):
    return SimpleNamespace(notebook=nb if nb is not None else Notebook(), verbose=verbose)


class TestNotebookStore:
    def test_add_and_snapshot(self):
        nb = Notebook()
        nb.add(Note("a", "A", "first", ["TODO"]))
        nb.add(Note("b", "B", "second"))
        data = json.loads(nb.to_json())
        assert [n["key"] for n in data] == ["a", "b"]
        assert data[0] == {"key": "a", "title": "A", "content": "first", "tags": ["TODO"]}

    def test_duplicate_add(self):
        nb = Notebook()
        nb.add(Note("a", "A", "x"))
        with pytest.raises(NotebookError, match="already exists"):
            nb.add(Note("a", "A2", "y"))

    def test_update_keeps_position_and_untouched_fields(self):
        nb = Notebook()
        nb.add(Note("a", "A", "x", ["TODO"]))
        nb.add(Note("b", "B", "y"))
        nb.update("a", content="z")
        assert [n.key for n in nb.notes()] == ["a", "b"]
        assert nb.get("a") == Note("a", "A", "z", ["TODO"])

    def test_update_missing(self):
        with pytest.raises(NotebookError, match="not found"):
            Notebook().update("zz", title="t")

    def test_delete_and_clear(self):
        nb = Notebook()
        nb.add(Note("a", "A", "x"))
        nb.add(Note("b", "B", "y"))
        nb.delete("a")
        assert not nb.has("a")
        nb.clear()
        assert len(nb) == 0
        assert nb.to_json() == "[]"


class TestNoteTools:
    def test_add_note(self):
        ctx = _ctx()
        out = add_note(ctx, {"key": "plan", "title": "Plan", "content": "do it"})
        assert out == "Success: Note 'plan' added."
        assert ctx.notebook.get("plan").content == "do it"

    def test_add_note_requires_fields(self):
        assert add_note(_ctx(), {"key": "k", "title": "t"}) == "Error: 'content' is required"
        assert add_note(_ctx(), {"title": "t", "content": "c"}) == "Error: 'key' is required"

    def test_add_note_duplicate(self):
        ctx = _ctx()
        add_note(ctx, {"key": "k", "title": "t", "content": "c"})
        out = add_note(ctx, {"key": "k", "title": "t", "content": "c"})
        assert out == "Error: Key 'k' already exists. Use update_note to modify."

    def test_add_note_tags_filtered(self):
        ctx = _ctx()
        add_note(ctx, {"key": "k", "title": "t", "content": "c", "tags": ["A", 3, " ", "B "]})
        assert ctx.notebook.get("k").tags == ["A", "B"]

    def test_update_note(self):
        ctx = _ctx()
        add_note(ctx, {"key": "k", "title": "t", "content": "c"})
        out = update_note(ctx, {"key": "k", "tags": ["DONE"]})
        assert out == "Success: Note 'k' updated."
        assert ctx.notebook.get("k") == Note("k", "t", "c", ["DONE"])

    def test_update_note_missing(self):
        assert update_note(_ctx(), {"key": "x"}) == "Error: Note with key 'x' not found."

    def test_delete_note(self):
        ctx = _ctx()
        add_note(ctx, {"key": "k", "title": "t", "content": "c"})
        assert delete_note(ctx, {"key": "k"}) == "Success: Note 'k' deleted."
        assert delete_note(ctx, {"key": "k"}) == "Error: Note with key 'k' not found."

    def test_verbose_reports_change(self, capsys):
        ctx = _ctx(verbose=True)
        add_note(ctx, {"key": "k", "title": "t", "content": "c"})
        err = capsys.readouterr().err
        assert "[note +1]" in err
        assert "k (1 notes)" in err

    def test_missing_notebook_raises(self):
        with pytest.raises(NotebookError):
            add_note(SimpleNamespace(), {"key": "k", "title": "t", "content": "c"})
