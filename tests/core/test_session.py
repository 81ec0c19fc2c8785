"""Tests for aipipe.core.session — file-backed named sessions."""

import json

import pytest
import yaml

from aipipe.core.exceptions import SessionIOError
from aipipe.core.llm.types import Message
from aipipe.core.session import Session, SessionStore, Turn


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "history")


class TestSessionStore:
    def test_missing_session_loads_empty(self, store):
        session = store.load("new")
        assert session.name == "new"
        assert session.messages == []
        assert session.cumulative_cost == 0.0

    @pytest.mark.smoke
    def test_append_round_trip(self, store, tmp_path):
        store.append("work", [Turn("user", "hi"), Turn("assistant", "hello")], cost=0.01)
        store.append("work", [Turn("user", "again"), Turn("assistant", "sure")], cost=0.02)

        session = store.load("work")
        assert [t.content for t in session.messages] == ["hi", "hello", "again", "sure"]
        assert session.cumulative_cost == pytest.approx(0.03)
        assert (tmp_path / "history" / "work.json").is_file()

    def test_history_messages(self, store):
        store.append("s", [Turn("user", "q"), Turn("assistant", "a")])
        assert store.load("s").history() == (Message("user", "q"), Message("assistant", "a"))

    def test_timestamps_recorded(self, store):
        store.append("s", [Turn("user", "q")])
        assert store.load("s").messages[0].timestamp

    @pytest.mark.parametrize("name", ["../escape", ".hidden", "a/b", ""])
    def test_invalid_names(self, store, name):
        with pytest.raises(SessionIOError, match="Invalid session name"):
            store.load(name)

    def test_corrupt_file_raises(self, store, tmp_path):
        (tmp_path / "history").mkdir()
        (tmp_path / "history" / "bad.json").write_text("{oops")
        with pytest.raises(SessionIOError, match="Could not read session"):
            store.load("bad")

    def test_list_and_summaries(self, store):
        store.append("beta", [Turn("user", "x")], cost=0.5)
        store.append("alpha", [Turn("user", "x"), Turn("assistant", "y")])
        assert store.list_sessions() == ["alpha", "beta"]
        summaries = store.summaries()
        assert [(s.name, s.turns) for s in summaries] == [("alpha", 2), ("beta", 1)]
        assert summaries[1].cumulative_cost == 0.5

    def test_list_empty(self, store):
        assert store.list_sessions() == []

    def test_delete(self, store):
        store.save(Session("gone", [Turn("user", "x")]))
        store.delete("gone")
        assert not store.exists("gone")
        with pytest.raises(SessionIOError, match="not found"):
            store.delete("gone")


class TestExport:
    def test_json(self, store):
        store.append("s", [Turn("user", "hi", "2025-01-01T00:00:00+00:00")], cost=0.1)
        data = json.loads(store.export("s", "json"))
        assert data["name"] == "s"
        assert data["messages"][0] == {"role": "user", "content": "hi", "timestamp": "2025-01-01T00:00:00+00:00"}
        assert data["cumulative_cost"] == 0.1

    def test_yaml(self, store):
        store.append("s", [Turn("user", "hi")])
        assert yaml.safe_load(store.export("s", "yaml"))["messages"][0]["content"] == "hi"

    def test_markdown(self, store):
        store.append("s", [Turn("user", "hi"), Turn("assistant", "hello")])
        text = store.export("s", "markdown")
        assert text.startswith("# Session: s")
        assert "## User\n\nhi" in text
        assert "## Assistant\n\nhello" in text

    def test_missing(self, store):
        with pytest.raises(SessionIOError, match="not found"):
            store.export("nope")


class TestImport:
    def test_json_document(self, store):
        doc = {"messages": [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}], "cumulativeCost": 0.2}
        session = store.import_session("imported", json.dumps(doc))
        assert [t.role for t in session.messages] == ["user", "assistant"]
        assert store.load("imported").cumulative_cost == 0.2

    def test_bare_yaml_list(self, store):
        content = "- role: user\n  content: hello\n- role: assistant\n  content: hi there\n"
        session = store.import_session("y", content)
        assert [t.content for t in session.messages] == ["hello", "hi there"]

    def test_export_import_round_trip(self, store):
        store.append("orig", [Turn("user", "q"), Turn("assistant", "a")], cost=0.3)
        store.import_session("copy", store.export("orig", "yaml"))
        copy = store.load("copy")
        assert copy.history() == store.load("orig").history()
        assert copy.cumulative_cost == pytest.approx(0.3)

    @pytest.mark.parametrize(
        "content",
        [
            '{"messages": [{"role": "robot", "content": "x"}]}',
            '{"messages": [{"role": "user"}]}',
            '"just a string"',
            "{not: [valid",
        ],
    )
    def test_invalid_documents_write_nothing(self, store, content):
        with pytest.raises(SessionIOError, match="Invalid session document"):
            store.import_session("bad", content)
        assert not store.exists("bad")

    def test_invalid_name(self, store):
        with pytest.raises(SessionIOError):
            store.import_session("../x", "[]")
