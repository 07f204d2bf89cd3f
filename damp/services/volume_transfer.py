"""
Volume Transfer Engine

Moves file trees between the host and named Docker volumes using throwaway
helper containers:

- copy_to_volume: one-shot bulk copy at project creation (tar pipe, then an
  ownership fix-up). Reports three coarse stages.
- sync_from_volume / sync_to_volume: repeatable rsync in either direction,
  with byte-accurate progress parsed from `--info=progress2` output. The
  helper's container id is handed to the caller as soon as it exists so a
  cancel request can kill it out-of-band.

Every helper is removed in a finally block, whether the transfer succeeded,
failed, timed out or was cancelled.
"""

import asyncio
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional

from damp.config.settings import Settings
from damp.errors import NotFoundError, TransferFailedError, TransferTimeoutError, ValidationError
from damp.models.transfer import SyncOptions, TransferProgress, TransferStage
from damp.services.docker_manager import DockerManager
from damp.utils import labels as label_keys
from damp.utils.docker_helpers import get_host_uid_gid, normalize_host_path
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Transfer")

ProgressCallback = Callable[[TransferProgress], None]
ContainerCallback = Callable[[str], None]
LineCallback = Callable[[str], None]

# `rsync --info=progress2` lines look like "  1,234,567  42%  1.23MB/s  0:00:12"
RSYNC_PROGRESS = re.compile(r"^\s*([\d,]+)\s+(\d+)%")

RSYNC_DOCKERFILE = "FROM {base}\nRUN apk add --no-cache rsync\n"

COPY_EXCLUDES = ("node_modules", "vendor")


def parse_rsync_progress(line: str) -> Optional[TransferProgress]:
    """Parse one rsync progress2 line into a progress record, or None."""
    match = RSYNC_PROGRESS.match(line)
    if not match:
        return None
    transferred = int(match.group(1).replace(",", ""))
    percentage = min(int(match.group(2)), 100)
    return TransferProgress(
        stage=TransferStage.COPYING,
        percentage=percentage,
        bytes=transferred,
        message=f"{percentage}% ({transferred} bytes)",
    )


def build_sync_exclusions(options: SyncOptions) -> List[str]:
    exclusions = []
    if not options.include_node_modules:
        exclusions.append("--exclude=node_modules")
    if not options.include_vendor:
        exclusions.append("--exclude=vendor")
    return exclusions


class VolumeTransfer:
    """Runs helper containers that copy or sync files into and out of volumes."""

    def __init__(self, docker_manager: DockerManager, settings: Settings):
        self.docker = docker_manager
        self.settings = settings

    # =========================================================================
    # Volumes
    # =========================================================================

    async def create_project_volume(self, volume_name: str, project_id: str) -> bool:
        """Create a project volume. Returns False if it already existed."""
        return await self.docker.create_volume(
            volume_name, labels=label_keys.project_volume_labels(project_id, volume_name)
        )

    async def remove_volume(self, volume_name: str) -> None:
        await self.docker.remove_volume(volume_name)

    # =========================================================================
    # Bulk copy
    # =========================================================================

    async def copy_to_volume(
        self,
        source_path: str,
        volume_name: str,
        project_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Copy a host folder into a volume, excluding node_modules and vendor.

        Raises:
            ValidationError: source folder missing
            TransferFailedError: helper exited non-zero
            TransferTimeoutError: helper did not finish within COPY_TIMEOUT
        """
        if not Path(source_path).is_dir():
            raise ValidationError(f"Source folder does not exist: {source_path}")

        await self.create_project_volume(volume_name, project_id or "")
        await self.docker.pull_image(self.settings.COPY_HELPER_IMAGE)

        excludes = " ".join(f"--exclude='{name}'" for name in COPY_EXCLUDES)
        uid_gid = get_host_uid_gid()
        command = (
            f"cd /source && tar {excludes} -cf - . | tar -xf - -C /volume "
            f"&& chown -R {uid_gid} /volume"
        )

        self._report(on_progress, TransferStage.STARTING, 0, 1, "Preparing to copy files...")
        logger.info(f"Copying {source_path} -> {volume_name}")

        def on_started(_container_id: str) -> None:
            self._report(on_progress, TransferStage.COPYING, 50, 2, "Copying files to volume...")

        try:
            await self._run_helper(
                image=self.settings.COPY_HELPER_IMAGE,
                command=command,
                binds=[
                    f"{normalize_host_path(source_path)}:/source:ro",
                    f"{volume_name}:/volume",
                ],
                labels=label_keys.helper_labels("copy-to-volume", volume_name, project_id),
                timeout=self.settings.COPY_TIMEOUT,
                operation="Copy to volume",
                on_container_created=on_started,
            )
        except Exception as e:
            self._report(on_progress, TransferStage.FAILED, 0, 2, str(e))
            raise

        self._report(on_progress, TransferStage.COMPLETED, 100, 3, "Files copied successfully")
        logger.info(f"Copied {source_path} -> {volume_name}")

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_from_volume(
        self,
        volume_name: str,
        target_path: str,
        project_id: Optional[str] = None,
        options: Optional[SyncOptions] = None,
        on_container_created: Optional[ContainerCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Sync a volume's contents down to a host folder."""
        options = options or SyncOptions()
        if not await self.docker.volume_exists(volume_name):
            raise NotFoundError(f"Volume {volume_name} does not exist")

        Path(target_path).mkdir(parents=True, exist_ok=True)
        await self._ensure_rsync_image()

        exclusions = " ".join(build_sync_exclusions(options))
        command = (
            "rsync -az --info=progress2 --no-perms --no-owner --no-group --chmod=ugo=rwX "
            f"{exclusions} /volume/ /target/"
        )
        await self._run_sync(
            direction="from-volume",
            command=command,
            binds=[
                f"{volume_name}:/volume:ro",
                f"{normalize_host_path(target_path)}:/target",
            ],
            volume_name=volume_name,
            project_id=project_id,
            on_container_created=on_container_created,
            on_progress=on_progress,
        )

    async def sync_to_volume(
        self,
        source_path: str,
        volume_name: str,
        project_id: Optional[str] = None,
        options: Optional[SyncOptions] = None,
        on_container_created: Optional[ContainerCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Sync a host folder up into a volume, fixing ownership afterwards."""
        options = options or SyncOptions()
        if not Path(source_path).is_dir():
            raise ValidationError(f"Source folder does not exist: {source_path}")

        await self.create_project_volume(volume_name, project_id or "")
        await self._ensure_rsync_image()

        exclusions = " ".join(build_sync_exclusions(options))
        command = (
            f"rsync -az --info=progress2 {exclusions} /source/ /volume/ "
            f"&& chown -R {get_host_uid_gid()} /volume"
        )
        await self._run_sync(
            direction="to-volume",
            command=command,
            binds=[
                f"{normalize_host_path(source_path)}:/source:ro",
                f"{volume_name}:/volume",
            ],
            volume_name=volume_name,
            project_id=project_id,
            on_container_created=on_container_created,
            on_progress=on_progress,
        )

    async def _run_sync(
        self,
        direction: str,
        command: str,
        binds: List[str],
        volume_name: str,
        project_id: Optional[str],
        on_container_created: Optional[ContainerCallback],
        on_progress: Optional[ProgressCallback],
    ) -> None:
        def on_line(line: str) -> None:
            progress = parse_rsync_progress(line)
            if progress and on_progress:
                on_progress(progress)

        logger.info(f"Sync {direction} for volume {volume_name} started")
        self._report(on_progress, TransferStage.STARTING, 0, None, f"Starting sync {direction}")
        await self._run_helper(
            image=self.settings.SYNC_HELPER_IMAGE,
            command=command,
            binds=binds,
            labels=label_keys.helper_labels(f"sync-{direction}", volume_name, project_id),
            timeout=self.settings.SYNC_TIMEOUT,
            operation=f"Sync {direction}",
            on_container_created=on_container_created,
            on_line=on_line,
        )
        self._report(on_progress, TransferStage.COMPLETED, 100, None, f"Sync {direction} completed")
        logger.info(f"Sync {direction} for volume {volume_name} completed")

    async def _ensure_rsync_image(self) -> None:
        await self.docker.ensure_image_built(
            self.settings.SYNC_HELPER_IMAGE,
            RSYNC_DOCKERFILE.format(base=self.settings.SYNC_HELPER_BASE_IMAGE),
        )

    # =========================================================================
    # Generic one-shot jobs
    # =========================================================================

    async def run_in_volume(
        self,
        image: str,
        command: str,
        volume_name: str,
        operation: str,
        project_id: Optional[str] = None,
        timeout: Optional[float] = None,
        environment: Optional[Dict[str, str]] = None,
        on_line: Optional[LineCallback] = None,
    ) -> None:
        """Run a shell command in a helper with the volume mounted at /volume."""
        await self.docker.pull_image(image)
        await self._run_helper(
            image=image,
            command=command,
            binds=[f"{volume_name}:/volume"],
            labels=label_keys.helper_labels(operation, volume_name, project_id),
            timeout=timeout or self.settings.INSTALLER_TIMEOUT,
            operation=operation,
            environment=environment,
            on_line=on_line,
        )

    async def cleanup_orphaned_helpers(self) -> int:
        """Remove helper containers left behind by a previous crashed process."""
        removed = await self.docker.remove_containers_by_label(
            {label_keys.MANAGED: "true", label_keys.TYPE: label_keys.TYPE_HELPER}
        )
        if removed:
            logger.info(f"Removed {removed} orphaned helper container(s)")
        return removed

    # =========================================================================
    # Helper container lifecycle
    # =========================================================================

    async def _run_helper(
        self,
        image: str,
        command: str,
        binds: List[str],
        labels: Dict[str, str],
        timeout: float,
        operation: str,
        on_container_created: Optional[ContainerCallback] = None,
        on_line: Optional[LineCallback] = None,
        environment: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Create, start and wait for a helper container, then remove it.

        A killed helper (cancellation) exits non-zero and surfaces as
        TransferFailedError like any other failure.
        """
        creation = asyncio.ensure_future(
            self.docker.create_container(
                image,
                command=["sh", "-c", command],
                volumes=binds,
                labels=labels,
                environment=environment or {},
                user="0:0",
            )
        )
        try:
            container_id = await asyncio.shield(creation)
        except asyncio.CancelledError:
            # The daemon finishes creating the container regardless.
            await asyncio.wait({creation})
            if not creation.cancelled() and creation.exception() is None:
                await self._remove_helper(creation.result())
            raise
        stream_task: Optional[asyncio.Task] = None
        try:
            if on_container_created:
                on_container_created(container_id)

            await self.docker.start_container(container_id)
            if on_line:
                stream_task = asyncio.create_task(
                    self.docker.stream_container_output(container_id, on_line)
                )

            try:
                exit_code = await asyncio.wait_for(self.docker.wait_container(container_id), timeout)
            except asyncio.TimeoutError:
                logger.error(f"{operation} timed out after {timeout}s")
                raise TransferTimeoutError(timeout, operation)

            if stream_task:
                await asyncio.wait({stream_task}, timeout=5)

            if exit_code != 0:
                logs = await self.docker.container_logs(container_id, tail=50)
                logger.error(f"{operation} failed with exit code {exit_code}")
                raise TransferFailedError(exit_code, logs, operation)
        finally:
            await asyncio.shield(self._remove_helper(container_id))
            if stream_task and not stream_task.done():
                stream_task.cancel()

    async def _remove_helper(self, container_id: str) -> None:
        try:
            await self.docker.remove_container(container_id, force=True)
        except Exception as e:
            logger.error(f"Failed to remove helper container {container_id[:12]}: {e}")

    @staticmethod
    def _report(
        on_progress: Optional[ProgressCallback],
        stage: TransferStage,
        percentage: int,
        step: Optional[int],
        message: str,
    ) -> None:
        if not on_progress:
            return
        on_progress(TransferProgress(
            stage=stage,
            percentage=percentage,
            current_step=step,
            total_steps=3 if step is not None else None,
            message=message,
        ))
