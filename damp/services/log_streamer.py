"""
Container log streaming for projects and services.

Follows a container's output through DockerManager.stream_container_output
and bridges the worker-thread callback onto an asyncio queue, so routers can
relay lines as Server-Sent Events:

    {"log": "GET /index.php 200"}
    ...
    {"complete": True, "success": True}

Also reads files out of a project container, optionally keeping only the
last lines (Laravel's storage/logs/laravel.log and friends).
"""

import asyncio
import posixpath
from typing import Any, AsyncGenerator, Dict, Optional

from damp.errors import DampError, NotFoundError, NotInstalledError, PreconditionError, ValidationError
from damp.models.result import OperationResult
from damp.services.docker_manager import DockerManager
from damp.services.service_manager import ServiceManager
from damp.storage import ProjectStorage
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Logs")

DEFAULT_TAIL = 500

_DONE = object()


class LogStreamer:
    """Resolve project and service containers and follow their output."""

    def __init__(self, docker_manager: DockerManager, project_storage: ProjectStorage, service_manager: ServiceManager):
        self.docker = docker_manager
        self.project_storage = project_storage
        self.service_manager = service_manager

    # =========================================================================
    # Container lookup
    # =========================================================================

    async def project_container(self, project_id: str) -> str:
        project = await self.project_storage.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        state = await self.docker.get_container_state(project.container_name)
        if not state.exists:
            raise PreconditionError(f"Container for project {project.name} not found")
        return project.container_name

    async def service_container(self, service_id: str) -> str:
        state = await self.service_manager.get_container_state(service_id)
        if not state.exists or not state.container_id:
            raise NotInstalledError(f"Service {service_id} is not installed")
        return state.container_id

    # =========================================================================
    # Streaming
    # =========================================================================

    async def follow(self, container: str, tail: int = DEFAULT_TAIL) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Yield {"log": line} events until the container's output ends.

        The last event is always a completion event. Closing the generator
        early cancels the follower, which closes the Docker log stream.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_line(line: str) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, {"log": line})

        follower = asyncio.ensure_future(self.docker.stream_container_output(container, on_line, tail=tail))
        follower.add_done_callback(lambda _task: queue.put_nowait(_DONE))
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                yield event

            # Lines scheduled from the worker thread can trail the done callback.
            await asyncio.sleep(0)
            while not queue.empty():
                event = queue.get_nowait()
                if event is not _DONE:
                    yield event

            if follower.cancelled():
                yield {"complete": True, "success": False, "error": "Log stream cancelled"}
            elif follower.exception() is not None:
                logger.warning(f"Log stream for {container} failed: {follower.exception()}")
                yield {"complete": True, "success": False, "error": str(follower.exception())}
            else:
                yield {"complete": True, "success": True}
        finally:
            if not follower.done():
                follower.cancel()
                try:
                    await follower
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.debug(f"Log follower for {container} ended with {e}")

    # =========================================================================
    # Files
    # =========================================================================

    async def read_project_file(self, project_id: str, path: str, lines: Optional[int] = None) -> OperationResult:
        """Read a file from a project container, keeping only the last `lines` lines when given."""
        try:
            if not posixpath.isabs(path):
                raise ValidationError(f"Path must be absolute: {path}")
            if lines is not None and lines < 1:
                raise ValidationError("lines must be a positive integer")
            container = await self.project_container(project_id)

            data = await self.docker.get_file_from_container(container, posixpath.normpath(path))
            if data is None:
                raise NotFoundError(f"File {path} not found in container")
            content = data.decode("utf-8", errors="replace")
            if lines is not None:
                content = "\n".join(content.splitlines()[-lines:])
            return OperationResult.ok({"path": path, "content": content})
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to read {path} from project {project_id}: {e}")
            return OperationResult.fail(str(e))
