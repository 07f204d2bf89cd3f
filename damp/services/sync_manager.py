"""
Sync Manager

Runs at most one volume sync per project as a background task and tracks it
in a per-project table. Progress is published on the event bus keyed by
project id; callers get an immediate acknowledgement and follow the events.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

from damp.errors import DampError, NotFoundError, SyncInProgressError
from damp.models.project import Project
from damp.models.result import OperationResult
from damp.models.transfer import SyncDirection, SyncOptions, TransferProgress
from damp.services.docker_manager import DockerManager
from damp.services.volume_transfer import VolumeTransfer
from damp.storage.project_storage import ProjectStorage
from damp.utils import events
from damp.utils.concurrency import BackgroundTasks
from damp.utils.events import EventBus
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Sync")


@dataclass
class SyncHandle:
    """An in-flight sync for one project."""
    direction: SyncDirection
    task: Optional[asyncio.Task] = None
    container_id: Optional[str] = None
    cancelled: bool = False


class SyncManager:
    """Per-project sync task table."""

    def __init__(
        self,
        docker_manager: DockerManager,
        volume_transfer: VolumeTransfer,
        project_storage: ProjectStorage,
        event_bus: EventBus,
        background: Optional[BackgroundTasks] = None,
    ):
        self.docker = docker_manager
        self.volume_transfer = volume_transfer
        self.project_storage = project_storage
        self.event_bus = event_bus
        self.background = background if background is not None else BackgroundTasks()
        self._active: Dict[str, SyncHandle] = {}

    # =========================================================================
    # Commands
    # =========================================================================

    async def sync_from_volume(self, project_id: str, options: Optional[SyncOptions] = None) -> OperationResult:
        """Start copying the project volume down to its folder."""
        return await self._start(project_id, SyncDirection.FROM_VOLUME, options or SyncOptions())

    async def sync_to_volume(self, project_id: str, options: Optional[SyncOptions] = None) -> OperationResult:
        """Start copying the project folder up into its volume."""
        return await self._start(project_id, SyncDirection.TO_VOLUME, options or SyncOptions())

    async def cancel_sync(self, project_id: str) -> OperationResult:
        """Kill the helper container of an active sync and wait for the task to end."""
        handle = self._active.get(project_id)
        if handle is None:
            return OperationResult.fail(f"No active sync for project {project_id}")

        handle.cancelled = True
        try:
            if handle.container_id:
                await self.docker.kill_container(handle.container_id)
            elif handle.task:
                handle.task.cancel()
            if handle.task:
                await asyncio.gather(handle.task, return_exceptions=True)
        except Exception as e:
            logger.error(f"Failed to cancel sync for {project_id}: {e}")
            return OperationResult.fail(str(e))
        finally:
            self._release(project_id, handle)

        logger.info(f"Sync for project {project_id} cancelled")
        return OperationResult.ok({"message": "Sync cancelled"})

    def get_sync_status(self, project_id: str) -> Optional[Dict[str, str]]:
        handle = self._active.get(project_id)
        if handle is None:
            return None
        return {"direction": handle.direction.value}

    def has_active_sync(self, project_id: str) -> bool:
        return project_id in self._active

    # =========================================================================
    # Internals
    # =========================================================================

    async def _start(self, project_id: str, direction: SyncDirection, options: SyncOptions) -> OperationResult:
        try:
            project = await self.project_storage.get_project(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")

            await self.docker.ensure_available()

            if project_id in self._active:
                raise SyncInProgressError(f"A sync is already running for project {project.name}")
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to start sync for {project_id}: {e}")
            return OperationResult.fail(str(e))

        handle = SyncHandle(direction=direction)
        self._active[project_id] = handle
        handle.task = self.background.spawn(
            self._run(project, handle, options),
            name=f"sync-{direction.value}-{project_id}",
        )

        self._publish(events.SYNC_STARTED, project_id, {"direction": direction.value})
        return OperationResult.ok({"message": f"Sync {direction.value} volume started"})

    async def _run(self, project: Project, handle: SyncHandle, options: SyncOptions) -> None:
        def on_container_created(container_id: str) -> None:
            handle.container_id = container_id

        def on_progress(progress: TransferProgress) -> None:
            payload = progress.model_dump(mode="json")
            payload["direction"] = handle.direction.value
            self.event_bus.publish_threadsafe(events.SYNC_PROGRESS, project.id, payload)

        try:
            if handle.direction == SyncDirection.FROM_VOLUME:
                await self.volume_transfer.sync_from_volume(
                    project.volume_name,
                    project.path,
                    project_id=project.id,
                    options=options,
                    on_container_created=on_container_created,
                    on_progress=on_progress,
                )
            else:
                await self.volume_transfer.sync_to_volume(
                    project.path,
                    project.volume_name,
                    project_id=project.id,
                    options=options,
                    on_container_created=on_container_created,
                    on_progress=on_progress,
                )
        except asyncio.CancelledError:
            self._publish(events.SYNC_CANCELLED, project.id, {"direction": handle.direction.value})
            raise
        except Exception as e:
            if handle.cancelled:
                self._publish(events.SYNC_CANCELLED, project.id, {"direction": handle.direction.value})
            else:
                logger.error(f"Sync {handle.direction.value} volume failed for {project.name}: {e}")
                self._publish(events.SYNC_FAILED, project.id, {
                    "direction": handle.direction.value,
                    "error": str(e),
                })
        else:
            if handle.cancelled:
                self._publish(events.SYNC_CANCELLED, project.id, {"direction": handle.direction.value})
            else:
                logger.info(f"Sync {handle.direction.value} volume completed for {project.name}")
                self._publish(events.SYNC_COMPLETED, project.id, {"direction": handle.direction.value})
        finally:
            self._release(project.id, handle)

    def _release(self, project_id: str, handle: SyncHandle) -> None:
        if self._active.get(project_id) is handle:
            del self._active[project_id]

    def _publish(self, topic: str, project_id: str, payload: Dict[str, str]) -> None:
        self.event_bus.publish(topic, project_id, payload)
