"""Tests for ContextStore: commits, history cap, export and import."""

import gc
import json
from datetime import datetime

import pytest

from Site_Builder.context_store import ContextStore, SnapshotFormatError
from Site_Builder.state import GenerationMetadata, GenerationResult, WebsiteFiles


def make_result(action="create", html="<p>hi</p>", css="p {}", js="", metadata=None):
    return GenerationResult(
        action=action,
        files=WebsiteFiles(html=html, css=css, js=js),
        changes=[f"{action} done"],
        explanation="ok",
        success=True,
        metadata=metadata,
    )


@pytest.fixture
def store():
    return ContextStore(history_limit=10)


class TestCommit:
    def test_commit_replaces_files_and_appends_history(self, store):
        store.commit("s1", "first", make_result(html="<p>1</p>"))
        store.commit("s1", "second", make_result(action="modify", html="<p>2</p>"))

        context = store.get("s1")
        assert context.current_files.html == "<p>2</p>"
        assert [entry.prompt for entry in context.history] == ["first", "second"]
        assert context.history[1].action == "modify"
        assert context.history[1].changes == ["modify done"]

    def test_history_keeps_most_recent_entries(self, store):
        for index in range(12):
            store.commit("s1", f"prompt {index}", make_result())

        history = store.get("s1").history
        assert len(history) == 10
        assert history[0].prompt == "prompt 2"
        assert history[-1].prompt == "prompt 11"

    def test_committed_files_are_a_copy(self, store):
        result = make_result(html="<p>original</p>")
        store.commit("s1", "p", result)

        result.files.html = "<p>mutated</p>"

        assert store.get("s1").current_files.html == "<p>original</p>"

    def test_metadata_overwrites_site_description(self, store):
        store.commit("s1", "p", make_result(metadata=GenerationMetadata(
            website_type="bakery", features=["menu"], dependencies=["none"]
        )))
        store.commit("s1", "p", make_result(metadata=GenerationMetadata(features=["menu", "map"])))

        info = store.session_info("s1")
        assert info.website_type == "bakery"
        assert info.features == ["menu", "map"]
        assert info.dependencies == ["none"]
        assert info.total_history == 2
        assert info.last_modified == store.get("s1").history[-1].timestamp


class TestReset:
    def test_reset_clears_everything(self, store):
        store.commit("s1", "p", make_result())

        store.reset("s1")

        context = store.get("s1")
        assert context.current_files == WebsiteFiles()
        assert context.history == []
        assert store.session_info("s1").last_modified is None

    def test_unknown_session_info_is_empty(self, store):
        info = store.session_info("nobody")

        assert info.total_history == 0
        assert info.website_type == ""


class TestSnapshots:
    def test_export_uses_wire_names(self, store):
        store.commit("s1", "build", make_result(html="<h1>x</h1>"))

        snapshot = store.export_snapshot("s1")

        assert snapshot["sessionId"] == "s1"
        assert snapshot["files"]["html"] == "<h1>x</h1>"
        assert snapshot["sessionInfo"]["totalHistory"] == 1
        assert snapshot["history"][0]["prompt"] == "build"
        assert isinstance(snapshot["history"][0]["timestamp"], str)

    def test_export_then_import_restores_session(self, store):
        store.commit("s1", "build", make_result(metadata=GenerationMetadata(website_type="bakery")))
        exported = json.dumps(store.export_snapshot("s1"))

        other = ContextStore()
        other.import_snapshot("s2", exported)

        context = other.get("s2")
        assert context.current_files == store.get("s1").current_files
        assert context.website_type == "bakery"
        assert context.history[0].prompt == "build"
        assert isinstance(context.history[0].timestamp, datetime)

    def test_import_accepts_metadata_key(self, store):
        document = {
            "sessionId": "old",
            "files": {"html": "<p>a</p>", "css": "", "js": ""},
            "metadata": {"websiteType": "blog", "features": ["posts"], "dependencies": []},
            "history": [{"prompt": "make a blog", "action": "create", "timestamp": "2024-05-01T10:00:00"}],
        }

        store.import_snapshot("s1", document)

        context = store.get("s1")
        assert context.website_type == "blog"
        assert context.features == ["posts"]
        assert context.history[0].timestamp == datetime(2024, 5, 1, 10, 0, 0)

    def test_import_accepts_bytes(self, store):
        store.import_snapshot("s1", b'{"files": {"html": "<p>b</p>"}}')

        assert store.get("s1").current_files.html == "<p>b</p>"
        assert store.get("s1").current_files.js == ""

    @pytest.mark.parametrize("payload", [
        "not json at all",
        "[1, 2, 3]",
        '{"files": "index.html"}',
        '{"history": [{"prompt": "x", "action": "explode"}]}',
    ])
    def test_invalid_import_leaves_session_untouched(self, store, payload):
        store.commit("s1", "build", make_result(html="<p>keep</p>"))

        with pytest.raises(SnapshotFormatError):
            store.import_snapshot("s1", payload)

        assert store.get("s1").current_files.html == "<p>keep</p>"
        assert len(store.get("s1").history) == 1

    def test_snapshot_error_is_a_value_error(self):
        assert issubclass(SnapshotFormatError, ValueError)


class TestSeed:
    def test_seed_from_client_context(self, store):
        store.seed("s1", {
            "currentFiles": {"html": "<p>client</p>", "css": "", "js": ""},
            "history": [],
            "websiteType": "portfolio",
        })

        context = store.get("s1")
        assert context.has_code()
        assert context.website_type == "portfolio"

    def test_seed_rejects_bad_shape(self, store):
        with pytest.raises(SnapshotFormatError):
            store.seed("s1", {"currentFiles": "nope"})
        assert "s1" not in store


class TestLocks:
    @pytest.mark.asyncio
    async def test_one_lock_per_session_while_in_use(self, store):
        lock = store.lock("s1")

        async with lock:
            assert store.lock("s1") is lock
            assert store.lock("s1").locked()
            assert store.lock("s2") is not lock

    @pytest.mark.asyncio
    async def test_unused_locks_are_released(self, store):
        async with store.lock("s1"):
            pass
        gc.collect()

        assert "s1" not in store._locks
        assert not store.lock("s1").locked()

    def test_parse_context_does_not_touch_sessions(self, store):
        context = store.parse_context({"currentFiles": {"html": "<p>x</p>"}})

        assert context.current_files.html == "<p>x</p>"
        assert len(store) == 0
