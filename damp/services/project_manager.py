"""
Project Lifecycle Orchestrator

Creates, updates and deletes projects. Creation is a multi-step saga:

    resolve folder -> detect type -> validate -> create volume
    -> (scaffold Laravel) -> generate files -> copy files into the volume
    -> hosts entries (advisory) -> persist -> proxy sync (background, advisory)

Every step that creates something registers its compensation on an
UndoStack; any failure unwinds the stack in reverse and the original error
is returned. Hosts-file edits and proxy syncs are best-effort and never fail
the operation.
"""

import asyncio
import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from damp.config.settings import Settings
from damp.errors import DampError, NotFoundError, NotInitializedError, ValidationError
from damp.models.project import (
    CreateProjectInput,
    ImportMethod,
    Project,
    ProjectProgress,
    ProjectType,
    UpdateProjectInput,
)
from damp.models.result import OperationResult
from damp.models.service import ContainerState
from damp.models.transfer import TransferProgress
from damp.services.caddy_sync import CaddySync
from damp.services.docker_manager import DockerManager
from damp.services.framework_detector import detect_laravel, devcontainer_exists
from damp.services.hosts_manager import HostsManager
from damp.services.laravel_installer import LaravelInstaller
from damp.services.project_templates import POST_CREATE_COMMAND, POST_START_COMMAND, ProjectTemplates
from damp.services.service_registry import ServiceRegistry
from damp.services.volume_transfer import VolumeTransfer
from damp.storage.project_storage import ProjectStorage
from damp.utils import events
from damp.utils import labels as label_keys
from damp.utils.advisory import run_advisory
from damp.utils.concurrency import AsyncOnce, BackgroundTasks
from damp.utils.events import EventBus
from damp.utils.logging import get_logger
from damp.utils.naming import (
    bundled_container_name,
    container_name_for,
    domain_for,
    sanitize_name,
    volume_name_for,
)
from damp.utils.saga import UndoStack

logger = get_logger(__name__, prefix="Projects")

LARAVEL_MIN_PHP_VERSION = "8.2"

ProgressCallback = Callable[[ProjectProgress], None]


def parse_version(version: str) -> Tuple[int, ...]:
    """'8.2' -> (8, 2, 0). Missing components count as zero."""
    parts = [int(part) for part in version.strip().split(".") if part.isdigit()]
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def validate_php_version(project_type: ProjectType, php_version: str) -> None:
    if project_type != ProjectType.LARAVEL:
        return
    if parse_version(php_version) < parse_version(LARAVEL_MIN_PHP_VERSION):
        raise ValidationError(
            f"Laravel requires PHP {LARAVEL_MIN_PHP_VERSION} or higher. Selected version: {php_version}"
        )


# =============================================================================
# Folder selection
# =============================================================================

class FolderSelector(Protocol):
    """Asks the user for a folder when a create request carries no path."""

    async def select_folder(self) -> Optional[str]:
        ...


class NoFolderSelector:
    """Headless default: there is nobody to ask."""

    async def select_folder(self) -> Optional[str]:
        return None


# =============================================================================
# Orchestrator
# =============================================================================

class ProjectManager:
    """Owns project records and the resources bound to them."""

    def __init__(
        self,
        settings: Settings,
        storage: ProjectStorage,
        docker_manager: DockerManager,
        volume_transfer: VolumeTransfer,
        templates: ProjectTemplates,
        hosts_manager: HostsManager,
        registry: ServiceRegistry,
        laravel_installer: Optional[LaravelInstaller] = None,
        caddy_sync: Optional[CaddySync] = None,
        folder_selector: Optional[FolderSelector] = None,
        event_bus: Optional[EventBus] = None,
        background: Optional[BackgroundTasks] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.docker = docker_manager
        self.volume_transfer = volume_transfer
        self.templates = templates
        self.hosts = hosts_manager
        self.registry = registry
        self.laravel_installer = laravel_installer
        self.caddy_sync = caddy_sync
        self.folder_selector = folder_selector or NoFolderSelector()
        self.event_bus = event_bus
        self.background = background if background is not None else BackgroundTasks()
        self._pending: Set[str] = set()
        self.initialize = AsyncOnce(self._initialize)

    async def _initialize(self) -> None:
        await self.storage.initialize()
        logger.info("Project manager initialized")

    def _ensure_initialized(self) -> None:
        if not self.initialize.done:
            raise NotInitializedError("ProjectManager used before initialize()")

    def is_pending_project(self, project_id: str) -> bool:
        """True while a project is mid-creation and not yet persisted."""
        return project_id in self._pending

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_projects(self) -> OperationResult:
        self._ensure_initialized()
        try:
            projects = await self.storage.get_projects()
            return OperationResult.ok([p.model_dump(mode="json") for p in projects])
        except Exception as e:
            logger.error(f"Failed to list projects: {e}")
            return OperationResult.fail(str(e))

    async def get_project(self, project_id: str) -> OperationResult:
        self._ensure_initialized()
        try:
            project = await self._require_project(project_id)
            return OperationResult.ok(project.model_dump(mode="json"))
        except DampError as e:
            return OperationResult.fail(str(e))

    async def get_project_container_state(self, project_id: str) -> OperationResult:
        """Live state of the project's devcontainer, found by label."""
        self._ensure_initialized()
        try:
            await self._require_project(project_id)
            state = await self.docker.find_container_by_label({
                label_keys.MANAGED: "true",
                label_keys.TYPE: label_keys.TYPE_PROJECT,
                label_keys.PROJECT_ID: project_id,
            })
            return OperationResult.ok((state or ContainerState.missing()).model_dump(mode="json"))
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to get container state for {project_id}: {e}")
            return OperationResult.fail(str(e))

    async def _require_project(self, project_id: str) -> Project:
        project = await self.storage.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")
        return project

    # =========================================================================
    # Create
    # =========================================================================

    async def create_project(
        self,
        data: CreateProjectInput,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OperationResult:
        """
        Create a project and every resource bound to it.

        Args:
            data: Creation input; a missing path triggers folder selection
            on_progress: Called with a ProjectProgress at each step

        Returns:
            OperationResult with the persisted project, or the first error
            after all completed steps have been rolled back
        """
        self._ensure_initialized()
        undo = UndoStack(f"create project {data.name or data.path}")
        project: Optional[Project] = None

        try:
            project_path, name, folder_created = await self._resolve_project_path(data)
            if folder_created:
                undo.push("remove project folder", lambda: asyncio.to_thread(shutil.rmtree, project_path, True))

            if not name:
                raise ValidationError("Project name is required")
            if await self.storage.find_by_name(name):
                raise ValidationError(f"A project named '{name}' already exists")

            project_type = self._detect_project_type(project_path, data)
            validate_php_version(project_type, data.php_version)
            if devcontainer_exists(project_path) and not data.overwrite_existing:
                raise ValidationError(
                    "Devcontainer folder already exists in this project. "
                    "Set overwrite_existing=true to replace it."
                )

            project = await self._build_project(data, name, project_path, project_type)
            self._pending.add(project.id)

            # Volume
            self._progress(on_progress, project, "Creating Docker volume...", 1, 10, "creating-volume", percentage=10)
            created = await self.volume_transfer.create_project_volume(project.volume_name, project.id)
            if created:
                volume_name = project.volume_name
                undo.push("remove volume", lambda: self.volume_transfer.remove_volume(volume_name))

            # Scaffolding
            if data.laravel_options and project_type == ProjectType.LARAVEL and data.import_method == ImportMethod.CREATE:
                if self.laravel_installer is None:
                    raise ValidationError("Laravel installation is not available")
                self._progress(on_progress, project, "Installing Laravel...", 3, 10, "installing-laravel", percentage=30)
                await self.laravel_installer.install(
                    project.volume_name, project.name, project.id, data.laravel_options
                )

            # Files
            self._progress(on_progress, project, "Creating devcontainer configuration...", 5, 10, "creating-devcontainer", percentage=60)
            await asyncio.to_thread(
                self.templates.write_project_files, project, data.overwrite_existing
            )
            project.files_generated = True

            # Copy
            self._progress(on_progress, project, "Copying files to volume...", 7, 10, "copying-files", percentage=80)
            await self.volume_transfer.copy_to_volume(
                project.path,
                project.volume_name,
                project.id,
                on_progress=self._copy_progress(project),
            )
            project.volume_copied = True

            # Hosts
            self._progress(on_progress, project, "Updating hosts file...", 9, 10, "updating-hosts", percentage=90)
            for domain in self._project_domains(project):
                added = await self._add_host(domain)
                if added:
                    undo.push(f"remove hosts entry {domain}", self._remover(domain))

            # Persist
            self._progress(on_progress, project, "Saving project...", 10, 10, "saving-project", percentage=95)
            await self.storage.set_project(project)
            undo.commit()
        except Exception as e:
            logger.error(f"Failed to create project: {e}")
            await undo.unwind()
            return OperationResult.fail(str(e))
        finally:
            if project is not None:
                self._pending.discard(project.id)

        self.schedule_proxy_sync()
        self._progress(on_progress, project, "Project created successfully!", 10, 10, "complete", percentage=100)
        logger.info(f"Project {project.name} created at {project.path}")
        return OperationResult.ok(project.model_dump(mode="json"))

    async def _resolve_project_path(self, data: CreateProjectInput) -> Tuple[str, str, bool]:
        """
        Returns:
            (project path, sanitized name, whether the folder was created here)
        """
        base_path = data.path
        if not base_path:
            base_path = await self.folder_selector.select_folder()
            if not base_path:
                raise ValidationError("No folder selected")

        if data.import_method == ImportMethod.IMPORT:
            folder = Path(base_path)
            if not folder.is_dir():
                raise ValidationError(f"Folder does not exist: {base_path}")
            return str(folder), sanitize_name(folder.name), False

        name = sanitize_name(data.name)
        if not name:
            return str(Path(base_path)), name, False

        project_path = Path(base_path) / name
        folder_created = False
        if not project_path.exists():
            await asyncio.to_thread(project_path.mkdir, parents=True, exist_ok=True)
            folder_created = True
        return str(project_path), name, folder_created

    @staticmethod
    def _detect_project_type(project_path: str, data: CreateProjectInput) -> ProjectType:
        if data.import_method == ImportMethod.IMPORT:
            detection = detect_laravel(project_path)
            if detection.is_laravel:
                logger.info(f"Detected Laravel project: {detection.version or 'unknown version'}")
                return ProjectType.LARAVEL
            logger.info("No Laravel detected, using basic PHP configuration")
            return ProjectType.BASIC_PHP
        return data.type

    async def _build_project(
        self,
        data: CreateProjectInput,
        name: str,
        project_path: str,
        project_type: ProjectType,
    ) -> Project:
        bundled = [
            service.model_copy(update={
                "container_name": service.container_name or bundled_container_name(
                    name, self._service_name(service.service_id)
                )
            })
            for service in data.bundled_services
        ]
        return Project(
            id=str(uuid.uuid4()),
            name=name,
            type=project_type,
            import_method=data.import_method,
            path=project_path,
            volume_name=volume_name_for(name, self.settings),
            container_name=container_name_for(name, self.settings),
            domain=domain_for(name, self.settings),
            php_version=data.php_version,
            php_variant=data.php_variant,
            node_version=data.node_version,
            php_extensions=list(data.php_extensions),
            enable_claude_ai=data.enable_claude_ai,
            forwarded_port=self.settings.FORWARDED_PORT,
            network_name=self.settings.NETWORK_NAME,
            post_start_command=POST_START_COMMAND,
            post_create_command=POST_CREATE_COMMAND,
            laravel_options=data.laravel_options,
            bundled_services=bundled,
            order=await self.storage.get_next_order(),
        )

    def _service_name(self, service_id: str) -> str:
        definition = self.registry.get_service(service_id)
        return definition.name if definition else service_id

    # =========================================================================
    # Update
    # =========================================================================

    async def update_project(self, project_id: str, data: UpdateProjectInput) -> OperationResult:
        """
        Apply a partial update.

        regenerate_files rewrites the generated files (overwriting
        .devcontainer). Hosts entries follow the domain and the proxied
        bundled services.
        """
        self._ensure_initialized()
        try:
            project = await self._require_project(project_id)
            changes = data.changes()
            updated = Project(**{**project.model_dump(), **changes})

            if data.regenerate_files:
                validate_php_version(updated.type, updated.php_version)
                await asyncio.to_thread(self.templates.write_project_files, updated, True)
                updated.files_generated = True
                changes["files_generated"] = True
                logger.info(f"Regenerated files for project {project.name}")

            old_domains = self._project_domains(project)
            new_domains = self._project_domains(updated)
            for domain in old_domains:
                if domain not in new_domains:
                    await run_advisory(f"Remove hosts entry {domain}", self._remover(domain), logger)
            for domain in new_domains:
                if domain not in old_domains:
                    await self._add_host(domain)

            stored_changes = {
                key: value for key, value in updated.model_dump(mode="json").items() if key in changes
            }
            saved = await self.storage.update_project(project_id, stored_changes)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to update project {project_id}: {e}")
            return OperationResult.fail(str(e))

        if {"domain", "forwarded_port", "bundled_services"} & set(changes):
            self.schedule_proxy_sync()
        return OperationResult.ok(saved.model_dump(mode="json"))

    # =========================================================================
    # Delete / Reorder
    # =========================================================================

    async def delete_project(
        self,
        project_id: str,
        remove_volume: bool = False,
        remove_folder: bool = False,
    ) -> OperationResult:
        """Delete a project record. The volume and folder are kept unless asked."""
        self._ensure_initialized()
        try:
            project = await self._require_project(project_id)

            for domain in self._project_domains(project):
                await run_advisory(f"Remove hosts entry {domain}", self._remover(domain), logger)

            if remove_volume:
                logger.info(f"Removing volume {project.volume_name}")
                await self.volume_transfer.remove_volume(project.volume_name)

            if remove_folder:
                logger.info(f"Removing project folder {project.path}")
                await asyncio.to_thread(shutil.rmtree, project.path, True)

            await self.storage.delete_project(project_id)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to delete project {project_id}: {e}")
            return OperationResult.fail(str(e))

        self.schedule_proxy_sync()
        logger.info(f"Project {project.name} deleted")
        return OperationResult.ok({"message": f"Project {project.name} deleted"})

    async def reorder_projects(self, project_ids: List[str]) -> OperationResult:
        self._ensure_initialized()
        try:
            await self.storage.reorder_projects(project_ids)
            return OperationResult.ok()
        except Exception as e:
            logger.error(f"Failed to reorder projects: {e}")
            return OperationResult.fail(str(e))

    # =========================================================================
    # Side effects
    # =========================================================================

    def _project_domains(self, project: Project) -> List[str]:
        """The project domain plus one subdomain per proxied bundled service."""
        domains = [project.domain]
        for bundled in project.bundled_services:
            definition = self.registry.get_service(bundled.service_id)
            if definition and definition.proxy_subdomain:
                domains.append(f"{definition.proxy_subdomain}.{project.domain}")
        return domains

    async def _add_host(self, domain: str) -> bool:
        """Best-effort hosts entry. True only if a new line was written."""
        added = False

        async def _add() -> OperationResult:
            nonlocal added
            result = await self.hosts.add_entry(domain)
            added = bool(result.success and result.data and result.data.get("added"))
            return result

        await run_advisory(f"Add hosts entry {domain}", _add, logger)
        return added

    def _remover(self, domain: str):
        return lambda: self.hosts.remove_entry(domain)

    def schedule_proxy_sync(self) -> None:
        if self.caddy_sync is None:
            return
        self.background.spawn(
            run_advisory("Proxy sync", self.caddy_sync.sync_projects, logger),
            name="proxy-sync",
        )

    # =========================================================================
    # Progress
    # =========================================================================

    def _progress(
        self,
        on_progress: Optional[ProgressCallback],
        project: Project,
        message: str,
        step: int,
        total: int,
        stage: str,
        percentage: int,
    ) -> None:
        progress = ProjectProgress(
            message=message,
            current_step=step,
            total_steps=total,
            percentage=percentage,
            stage=stage,
        )
        if on_progress:
            on_progress(progress)
        if self.event_bus:
            self.event_bus.publish(events.PROJECT_CREATE, project.id, progress.model_dump(mode="json"))

    def _copy_progress(self, project: Project) -> Callable[[TransferProgress], None]:
        def on_progress(progress: TransferProgress) -> None:
            if self.event_bus:
                payload: Dict[str, Any] = progress.model_dump(mode="json")
                self.event_bus.publish(events.VOLUME_COPY, project.id, payload)

        return on_progress
