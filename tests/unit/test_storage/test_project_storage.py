"""Unit tests for project persistence."""

import pytest

from conftest import make_project
from damp.errors import NotFoundError, ValidationError


@pytest.mark.unit
class TestProjectStorage:

    async def test_set_and_get(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)

        loaded = await project_storage.get_project(sample_project.id)

        assert loaded == sample_project

    async def test_get_unknown_returns_none(self, project_storage):
        assert await project_storage.get_project("missing") is None

    async def test_projects_sorted_by_order_then_created(self, project_storage):
        await project_storage.set_project(make_project(id="b", name="b", order=1, created_at=1))
        await project_storage.set_project(make_project(id="a", name="a", order=0, created_at=5))
        await project_storage.set_project(make_project(id="c", name="c", order=0, created_at=2))

        projects = await project_storage.get_projects()

        assert [p.id for p in projects] == ["c", "a", "b"]

    async def test_next_order(self, project_storage):
        assert await project_storage.get_next_order() == 0
        await project_storage.set_project(make_project(id="a", name="a", order=4))
        assert await project_storage.get_next_order() == 5

    async def test_find_by_name(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)
        assert (await project_storage.find_by_name("my-site")).id == sample_project.id
        assert await project_storage.find_by_name("other") is None

    async def test_update_merges_and_bumps_updated_at(self, project_storage, sample_project):
        original = sample_project.model_copy(update={"updated_at": 1})
        await project_storage.set_project(original)

        updated = await project_storage.update_project(original.id, {"php_version": "8.4"})

        assert updated.php_version == "8.4"
        assert updated.name == "my-site"
        assert updated.updated_at > 1

    async def test_update_cannot_change_id(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)
        with pytest.raises(ValidationError):
            await project_storage.update_project(sample_project.id, {"id": "other"})

    async def test_update_unknown_project(self, project_storage):
        with pytest.raises(NotFoundError):
            await project_storage.update_project("missing", {"php_version": "8.4"})

    async def test_delete(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)
        assert await project_storage.delete_project(sample_project.id) is True
        assert await project_storage.delete_project(sample_project.id) is False

    async def test_reorder(self, project_storage):
        for pid in ("a", "b", "c"):
            await project_storage.set_project(make_project(id=pid, name=pid, order=ord(pid)))

        await project_storage.reorder_projects(["c", "unknown", "a"])

        assert [p.id for p in await project_storage.get_projects()] == ["c", "a", "b"]

    async def test_unreadable_record_is_skipped(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)
        await project_storage.store.update(lambda entries: entries.update({"bad": {"name": "Not A Slug"}}))

        projects = await project_storage.get_projects()

        assert [p.id for p in projects] == [sample_project.id]

    async def test_export_import(self, project_storage, sample_project):
        await project_storage.set_project(sample_project)
        exported = await project_storage.export_projects()
        await project_storage.clear()

        assert await project_storage.import_projects(exported) == 1
        assert await project_storage.get_project(sample_project.id) == sample_project
