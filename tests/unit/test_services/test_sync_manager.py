"""Unit tests for the per-project sync table."""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import make_project
from damp.errors import DockerUnavailableError, TransferFailedError
from damp.services.sync_manager import SyncManager
from damp.services.volume_transfer import VolumeTransfer
from damp.utils import events


@pytest.fixture
def volume_transfer():
    return MagicMock(spec=VolumeTransfer)


@pytest.fixture
async def manager(mock_docker, volume_transfer, project_storage, event_bus, background, sample_project):
    event_bus.bind_loop(asyncio.get_running_loop())
    await project_storage.set_project(sample_project)
    return SyncManager(mock_docker, volume_transfer, project_storage, event_bus, background)


def drain_topics(queue) -> list:
    topics = []
    while not queue.empty():
        topics.append(queue.get_nowait()["topic"])
    return topics


@pytest.mark.unit
class TestSyncManager:

    async def test_sync_from_volume_completes(self, manager, volume_transfer, event_bus, background, sample_project):
        queue = event_bus.subscribe()

        result = await manager.sync_from_volume(sample_project.id)
        assert result.success
        assert result.data == {"message": "Sync from volume started"}
        assert manager.get_sync_status(sample_project.id) == {"direction": "from"}

        await background.drain()

        args = volume_transfer.sync_from_volume.await_args
        assert args.args == ("proj_my-site", "/tmp/sites/my-site")
        assert args.kwargs["project_id"] == sample_project.id
        assert drain_topics(queue) == [events.SYNC_STARTED, events.SYNC_COMPLETED]
        assert manager.get_sync_status(sample_project.id) is None

    async def test_second_sync_is_rejected(self, manager, volume_transfer, background, sample_project):
        release = asyncio.Event()

        async def slow_sync(*args, **kwargs):
            await release.wait()

        volume_transfer.sync_to_volume.side_effect = slow_sync

        first = await manager.sync_to_volume(sample_project.id)
        second = await manager.sync_from_volume(sample_project.id)

        assert first.success
        assert not second.success
        assert second.error == "A sync is already running for project my-site"

        release.set()
        await background.drain()
        assert not manager.has_active_sync(sample_project.id)

    async def test_failure_is_published(self, manager, volume_transfer, event_bus, background, sample_project):
        queue = event_bus.subscribe()
        volume_transfer.sync_to_volume.side_effect = TransferFailedError(23, "rsync error", "Sync to-volume")

        await manager.sync_to_volume(sample_project.id)
        await background.drain()

        published = []
        while not queue.empty():
            published.append(queue.get_nowait())
        assert published[-1]["topic"] == events.SYNC_FAILED
        assert "exit code 23" in published[-1]["payload"]["error"]
        assert not manager.has_active_sync(sample_project.id)

    async def test_unknown_project(self, manager):
        result = await manager.sync_to_volume("nope")

        assert not result.success
        assert result.error == "Project nope not found"

    async def test_docker_down(self, manager, mock_docker, sample_project):
        mock_docker.ensure_available.side_effect = DockerUnavailableError()

        result = await manager.sync_to_volume(sample_project.id)

        assert not result.success
        assert not manager.has_active_sync(sample_project.id)

    async def test_cancel_kills_helper(self, manager, mock_docker, volume_transfer, event_bus, sample_project):
        killed = asyncio.Event()
        started = asyncio.Event()

        async def running_sync(*args, on_container_created=None, **kwargs):
            on_container_created("helper1")
            started.set()
            await killed.wait()
            raise TransferFailedError(137, "", "Sync to-volume")

        async def kill(container_id):
            killed.set()

        volume_transfer.sync_to_volume.side_effect = running_sync
        mock_docker.kill_container.side_effect = kill
        queue = event_bus.subscribe()

        await manager.sync_to_volume(sample_project.id)
        await started.wait()
        result = await manager.cancel_sync(sample_project.id)

        assert result.success
        assert result.data == {"message": "Sync cancelled"}
        mock_docker.kill_container.assert_awaited_once_with("helper1")
        assert drain_topics(queue) == [events.SYNC_STARTED, events.SYNC_CANCELLED]
        assert not manager.has_active_sync(sample_project.id)

    async def test_cancel_before_helper_exists(self, manager, mock_docker, volume_transfer, sample_project):
        async def pending_sync(*args, **kwargs):
            await asyncio.sleep(10)

        volume_transfer.sync_from_volume.side_effect = pending_sync

        await manager.sync_from_volume(sample_project.id)
        await asyncio.sleep(0)
        result = await manager.cancel_sync(sample_project.id)

        assert result.success
        mock_docker.kill_container.assert_not_called()
        assert not manager.has_active_sync(sample_project.id)

    async def test_cancel_without_sync(self, manager, sample_project):
        result = await manager.cancel_sync(sample_project.id)

        assert not result.success
        assert result.error == f"No active sync for project {sample_project.id}"

    async def test_cancel_while_helper_is_created(self, mock_docker, project_storage, event_bus, background, settings, tmp_path):
        event_bus.bind_loop(asyncio.get_running_loop())
        project = make_project(path=str(tmp_path / "my-site"))
        await project_storage.set_project(project)
        creating = asyncio.Event()

        async def slow_create(*args, **kwargs):
            creating.set()
            await asyncio.sleep(0.05)
            return "helperX"

        mock_docker.create_container.side_effect = slow_create
        manager = SyncManager(mock_docker, VolumeTransfer(mock_docker, settings), project_storage, event_bus, background)

        await manager.sync_from_volume(project.id)
        await creating.wait()
        result = await manager.cancel_sync(project.id)

        assert result.success
        mock_docker.kill_container.assert_not_called()
        mock_docker.start_container.assert_not_called()
        mock_docker.remove_container.assert_awaited_once_with("helperX", force=True)
        assert not manager.has_active_sync(project.id)
