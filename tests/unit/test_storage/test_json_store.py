"""Unit tests for the versioned JSON document store."""

import json

import pytest

from damp.storage.json_store import STORE_VERSION, JsonStore


@pytest.mark.unit
class TestJsonStore:

    async def test_initialize_creates_document(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonStore(path, root_key="projects")

        await store.initialize()

        document = json.loads(path.read_text())
        assert document["version"] == STORE_VERSION
        assert document["projects"] == {}
        assert "last_updated" in document

    async def test_initialize_keeps_valid_document(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": "1.0.0", "last_updated": 1, "projects": {"a": {"x": 1}}}))
        store = JsonStore(path, root_key="projects")

        await store.initialize()

        assert await store.load() == {"a": {"x": 1}}

    async def test_corrupt_file_is_recreated(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        store = JsonStore(path, root_key="projects")

        await store.initialize()

        assert await store.load() == {}
        assert json.loads(path.read_text())["projects"] == {}

    async def test_wrong_shape_is_recreated(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"projects": []}))
        store = JsonStore(path, root_key="projects")

        await store.initialize()

        assert await store.load() == {}

    async def test_update_returns_mutator_result(self, tmp_path):
        store = JsonStore(tmp_path / "state.json", root_key="items")

        def add(entries):
            entries["a"] = 1
            return "added"

        assert await store.update(add) == "added"
        assert await store.get("a") == 1

    async def test_failed_mutation_writes_nothing(self, tmp_path):
        store = JsonStore(tmp_path / "state.json", root_key="items")
        await store.replace({"a": 1})

        def broken(entries):
            entries["b"] = 2
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await store.update(broken)

        assert await store.load() == {"a": 1}

    async def test_no_temp_file_left_behind(self, tmp_path):
        store = JsonStore(tmp_path / "state.json", root_key="items")
        await store.replace({"a": 1})
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    async def test_clear(self, tmp_path):
        store = JsonStore(tmp_path / "state.json", root_key="items")
        await store.replace({"a": 1, "b": 2})
        await store.clear()
        assert await store.load() == {}
