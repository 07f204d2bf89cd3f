"""Docker runtime gateway for DAMP.

Thin async wrapper over the Docker SDK. Every method is a coroutine; the
blocking SDK calls run in worker threads via asyncio.to_thread so the event
loop never stalls on the Docker socket.

Container state is never cached here: every query inspects Docker, which is
the single source of truth for what is installed and running.
"""

import asyncio
import io
import re
import tarfile
from typing import Any, Callable, Dict, List, Optional, Tuple

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from damp.config.settings import Settings
from damp.errors import DampError, DockerUnavailableError
from damp.models.service import ContainerState
from damp.utils import labels as label_keys
from damp.utils.docker_helpers import container_state_from_attrs
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Docker")

ProgressCallback = Callable[[Dict[str, Any]], None]
LineCallback = Callable[[str], None]

_LINE_SPLIT = re.compile(r"[\r\n]+")


class DockerManager:
    """
    Async gateway to the Docker daemon.

    The client is created lazily so the application can start (and report
    "Docker is not running") when the daemon is down.
    """

    def __init__(self, settings: Settings, client: Optional[docker.DockerClient] = None):
        self.settings = settings
        self._client = client

    # =========================================================================
    # Connection
    # =========================================================================

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                logger.warning(f"Docker not available: {e}")
                raise DockerUnavailableError() from e
        return self._client

    async def ping(self) -> bool:
        """Return True if the Docker daemon answers."""
        try:
            return bool(await asyncio.to_thread(self.client.ping))
        except DockerUnavailableError:
            return False
        except Exception as e:
            logger.debug(f"Docker ping failed: {e}")
            return False

    async def ensure_available(self) -> None:
        if not await self.ping():
            raise DockerUnavailableError()

    async def ensure_network_exists(self) -> bool:
        """Ensure the shared bridge network for projects and services exists."""
        network_name = self.settings.NETWORK_NAME

        def _ensure() -> bool:
            try:
                self.client.networks.get(network_name)
                return False
            except NotFound:
                self.client.networks.create(
                    network_name,
                    driver="bridge",
                    check_duplicate=True,
                    labels={
                        label_keys.MANAGED: "true",
                        label_keys.TYPE: label_keys.TYPE_NETWORK,
                        label_keys.DESCRIPTION: "Shared network for DAMP services and projects",
                    },
                )
                return True

        created = await asyncio.to_thread(_ensure)
        if created:
            logger.info(f"Created Docker network: {network_name}")
        return created

    # =========================================================================
    # Images
    # =========================================================================

    async def image_exists(self, image: str) -> bool:
        def _exists() -> bool:
            try:
                self.client.images.get(image)
                return True
            except ImageNotFound:
                return False

        return await asyncio.to_thread(_exists)

    async def pull_image(self, image: str, on_progress: Optional[ProgressCallback] = None) -> None:
        """
        Pull an image, streaming progress events.

        Skipped when the image is already present locally. on_progress is
        called from a worker thread with {status, progress, id} dicts.
        """
        if await self.image_exists(image):
            logger.info(f"Image {image} already exists locally, skipping pull")
            return

        repository, tag = parse_repository_tag(image)
        logger.info(f"Pulling image {image}")

        def _pull() -> None:
            for event in self.client.api.pull(repository, tag=tag or "latest", stream=True, decode=True):
                if "error" in event:
                    raise DampError(f"Failed to pull {image}: {event['error']}")
                if on_progress:
                    on_progress({
                        "status": event.get("status"),
                        "progress": event.get("progress"),
                        "id": event.get("id"),
                    })

        await asyncio.to_thread(_pull)
        logger.info(f"Pulled image {image}")

    async def ensure_image_built(self, tag: str, dockerfile: str) -> bool:
        """Build a small local image from Dockerfile text unless it already exists."""
        if await self.image_exists(tag):
            return False

        logger.info(f"Building image {tag}")

        def _build() -> None:
            self.client.images.build(
                fileobj=io.BytesIO(dockerfile.encode("utf-8")),
                tag=tag,
                rm=True,
                labels={label_keys.MANAGED: "true", label_keys.TYPE: label_keys.TYPE_HELPER},
            )

        await asyncio.to_thread(_build)
        logger.info(f"Built image {tag}")
        return True

    # =========================================================================
    # Containers
    # =========================================================================

    async def create_container(self, image: str, **kwargs: Any) -> str:
        """Create (not start) a container. kwargs are docker-py create() arguments."""
        container = await asyncio.to_thread(self.client.containers.create, image, **kwargs)
        logger.info(f"Created container {kwargs.get('name') or container.short_id} from {image}")
        return container.id

    async def create_service_container(
        self,
        image: str,
        name: str,
        ports: Dict[str, Any],
        environment: List[str],
        volumes: List[str],
        labels: Dict[str, str],
        healthcheck: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a long-running service container on the shared network."""
        kwargs: Dict[str, Any] = {
            "name": name,
            "ports": ports,
            "environment": environment,
            "volumes": volumes,
            "labels": labels,
            "network": self.settings.NETWORK_NAME,
            "restart_policy": {"Name": "unless-stopped"},
        }
        if healthcheck:
            kwargs["healthcheck"] = healthcheck
        return await self.create_container(image, **kwargs)

    async def _get(self, name_or_id: str):
        return await asyncio.to_thread(self.client.containers.get, name_or_id)

    async def start_container(self, name_or_id: str) -> None:
        container = await self._get(name_or_id)
        await asyncio.to_thread(container.start)
        logger.info(f"Started container {container.name}")

    async def stop_container(self, name_or_id: str, timeout: Optional[int] = None) -> None:
        container = await self._get(name_or_id)
        await asyncio.to_thread(container.stop, timeout=timeout or self.settings.CONTAINER_STOP_TIMEOUT)
        logger.info(f"Stopped container {container.name}")

    async def restart_container(self, name_or_id: str, timeout: Optional[int] = None) -> None:
        container = await self._get(name_or_id)
        await asyncio.to_thread(container.restart, timeout=timeout or self.settings.CONTAINER_STOP_TIMEOUT)
        logger.info(f"Restarted container {container.name}")

    async def kill_container(self, name_or_id: str) -> None:
        """Kill a running container. Missing or already stopped containers are ignored."""
        try:
            container = await self._get(name_or_id)
            await asyncio.to_thread(container.kill)
            logger.info(f"Killed container {container.name}")
        except NotFound:
            logger.debug(f"Container {name_or_id} already gone")
        except APIError as e:
            if e.status_code == 409:
                logger.debug(f"Container {name_or_id} is not running")
                return
            raise

    async def remove_container(self, name_or_id: str, force: bool = True, remove_volumes: bool = False) -> None:
        """
        Remove a container, stopping it first when running.

        Anonymous volumes are only removed when remove_volumes is set; named
        volumes are never touched here.
        """
        try:
            container = await self._get(name_or_id)
        except NotFound:
            logger.debug(f"Container {name_or_id} already removed")
            return

        if container.status == "running" and not force:
            await asyncio.to_thread(container.stop, timeout=self.settings.CONTAINER_STOP_TIMEOUT)

        try:
            await asyncio.to_thread(container.remove, force=force, v=remove_volumes)
            logger.info(f"Removed container {container.name}")
        except NotFound:
            logger.debug(f"Container {name_or_id} removed concurrently")

    async def wait_container(self, name_or_id: str) -> int:
        """Block until the container exits and return its status code."""
        container = await self._get(name_or_id)
        result = await asyncio.to_thread(container.wait)
        return int(result.get("StatusCode", -1))

    async def container_logs(self, name_or_id: str, tail: Optional[int] = None) -> str:
        container = await self._get(name_or_id)
        kwargs: Dict[str, Any] = {"stdout": True, "stderr": True}
        if tail:
            kwargs["tail"] = tail
        raw = await asyncio.to_thread(container.logs, **kwargs)
        return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)

    async def stream_container_output(
        self,
        name_or_id: str,
        on_line: LineCallback,
        tail: Optional[int] = None,
    ) -> None:
        """
        Follow container output until it exits, calling on_line per line.

        Lines are split on both \\n and \\r so progress meters that redraw a
        single line are reported as they update. on_line runs in a worker thread.
        Cancelling the caller closes the log stream, which ends the worker.
        """
        container = await self._get(name_or_id)
        kwargs: Dict[str, Any] = {"stream": True, "follow": True, "stdout": True, "stderr": True}
        if tail is not None:
            kwargs["tail"] = tail
        stream = await asyncio.to_thread(container.logs, **kwargs)

        def _follow() -> None:
            buffer = ""
            for chunk in stream:
                buffer += chunk.decode("utf-8", errors="replace")
                parts = _LINE_SPLIT.split(buffer)
                buffer = parts.pop()
                for line in parts:
                    if line.strip():
                        on_line(line)
            if buffer.strip():
                on_line(buffer)

        try:
            await asyncio.to_thread(_follow)
        except NotFound:
            logger.debug(f"Container {name_or_id} disappeared while streaming")
        except asyncio.CancelledError:
            stream.close()
            raise

    async def get_container_state(self, name_or_id: str) -> ContainerState:
        """Inspect a container. Returns a not-exists state when missing or on error."""
        try:
            container = await self._get(name_or_id)
            return container_state_from_attrs(container.attrs)
        except NotFound:
            return ContainerState.missing()
        except DockerUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Failed to inspect container {name_or_id}: {e}")
            return ContainerState.missing()

    async def get_all_container_state(self, names: List[str]) -> Dict[str, ContainerState]:
        """State of several containers by name, in one list call. Missing names map to a not-exists state."""
        containers = await asyncio.to_thread(self.client.containers.list, all=True)
        by_name = {container.name: container_state_from_attrs(container.attrs) for container in containers}
        return {name: by_name.get(name, ContainerState.missing()) for name in names}

    async def list_containers(self, filters: Optional[Dict[str, Any]] = None) -> List[ContainerState]:
        containers = await asyncio.to_thread(self.client.containers.list, all=True, filters=filters or {})
        return [container_state_from_attrs(c.attrs) for c in containers]

    async def find_container_by_label(self, labels: Dict[str, str]) -> Optional[ContainerState]:
        """Return the first container carrying all the given labels."""
        matches = await self.list_containers(label_keys.to_filters(labels))
        return matches[0] if matches else None

    async def get_containers_by_label_value(self, label: str, base_labels: Dict[str, str]) -> Dict[str, ContainerState]:
        """Map each value of `label` to its container, in one list call."""
        containers = await asyncio.to_thread(
            self.client.containers.list, all=True, filters=label_keys.to_filters(base_labels)
        )
        states: Dict[str, ContainerState] = {}
        for container in containers:
            value = (container.labels or {}).get(label)
            if value and value not in states:
                states[value] = container_state_from_attrs(container.attrs)
        return states

    async def remove_containers_by_label(self, labels: Dict[str, str]) -> int:
        """Force-remove every container carrying the labels. Returns how many were removed."""
        matches = await self.list_containers(label_keys.to_filters(labels))
        removed = 0
        for state in matches:
            try:
                await self.remove_container(state.container_id, force=True)
                removed += 1
            except Exception as e:
                logger.warning(f"Failed to remove container {state.container_name}: {e}")
        return removed

    async def exec_in_container(self, name_or_id: str, argv: List[str]) -> Tuple[int, str, str]:
        """
        Run a command in a running container.

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        exit_code, stdout, stderr = await self.exec_in_container_raw(name_or_id, argv)
        return (
            exit_code,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def exec_in_container_raw(self, name_or_id: str, argv: List[str]) -> Tuple[int, bytes, bytes]:
        """Run a command in a running container, returning undecoded output (binary dumps)."""
        container = await self._get(name_or_id)
        result = await asyncio.to_thread(container.exec_run, argv, demux=True)
        stdout, stderr = result.output if result.output else (None, None)
        return (
            result.exit_code if result.exit_code is not None else -1,
            stdout or b"",
            stderr or b"",
        )

    async def put_file_in_container(self, name_or_id: str, path: str, data: bytes) -> None:
        """Write a single file into a container at an absolute path."""
        container = await self._get(name_or_id)
        directory, _, filename = path.rpartition("/")

        def _put() -> None:
            archive = io.BytesIO()
            with tarfile.open(fileobj=archive, mode="w") as tar:
                info = tarfile.TarInfo(name=filename)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
            if not container.put_archive(directory or "/", archive.getvalue()):
                raise DampError(f"Failed to write {path} into {name_or_id}")

        await asyncio.to_thread(_put)

    async def get_file_from_container(self, name_or_id: str, path: str) -> Optional[bytes]:
        """Read a single file out of a container, or None if it does not exist."""
        try:
            container = await self._get(name_or_id)
        except NotFound:
            return None

        def _read() -> Optional[bytes]:
            try:
                stream, _stat = container.get_archive(path)
            except NotFound:
                return None
            archive = io.BytesIO(b"".join(stream))
            with tarfile.open(fileobj=archive) as tar:
                for member in tar.getmembers():
                    if member.isfile():
                        extracted = tar.extractfile(member)
                        return extracted.read() if extracted else None
            return None

        return await asyncio.to_thread(_read)

    # =========================================================================
    # Volumes
    # =========================================================================

    async def volume_exists(self, name: str) -> bool:
        def _exists() -> bool:
            try:
                self.client.volumes.get(name)
                return True
            except NotFound:
                return False

        return await asyncio.to_thread(_exists)

    async def create_volume(self, name: str, labels: Optional[Dict[str, str]] = None) -> bool:
        """Create a named volume. Returns False if it already existed."""
        if await self.volume_exists(name):
            logger.info(f"Volume {name} already exists")
            return False
        await asyncio.to_thread(self.client.volumes.create, name=name, labels=labels or {})
        logger.info(f"Created volume {name}")
        return True

    async def remove_volume(self, name: str) -> None:
        """
        Remove a named volume.

        A missing volume is treated as already removed. A volume still
        attached to a container raises.
        """
        def _remove() -> None:
            volume = self.client.volumes.get(name)
            volume.remove()

        try:
            await asyncio.to_thread(_remove)
            logger.info(f"Removed volume {name}")
        except NotFound:
            logger.debug(f"Volume {name} does not exist")
        except APIError as e:
            if e.status_code == 409:
                raise DampError(f"Volume {name} is in use by a container") from e
            raise

    async def remove_volumes(self, names: List[str]) -> List[str]:
        """Remove several volumes, logging each failure. Returns the names removed."""
        removed = []
        for name in names:
            try:
                await self.remove_volume(name)
                removed.append(name)
            except Exception as e:
                logger.warning(f"Failed to remove volume {name}: {e}")
        return removed

    async def list_volumes(self, filters: Optional[Dict[str, Any]] = None) -> List[str]:
        volumes = await asyncio.to_thread(self.client.volumes.list, filters=filters or {})
        return [v.name for v in volumes]
