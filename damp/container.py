"""
Application wiring.

Every manager is constructed explicitly here and handed its collaborators;
nothing is looked up through module-level singletons.
"""

from dataclasses import dataclass
from typing import Optional

from damp.config.settings import Settings
from damp.services.caddy_sync import CaddySync
from damp.services.database_operations import DatabaseOperations
from damp.services.docker_manager import DockerManager
from damp.services.hosts_manager import HostsManager
from damp.services.log_streamer import LogStreamer
from damp.services.laravel_installer import LaravelInstaller
from damp.services.port_resolver import PortResolver
from damp.services.project_manager import FolderSelector, ProjectManager
from damp.services.project_templates import ProjectTemplates
from damp.services.service_manager import ServiceManager
from damp.services.service_registry import ServiceRegistry
from damp.services.sync_manager import SyncManager
from damp.services.volume_transfer import VolumeTransfer
from damp.storage import ProjectStorage, ServiceStorage
from damp.utils.concurrency import BackgroundTasks
from damp.utils.events import EventBus


@dataclass
class AppContainer:
    settings: Settings
    event_bus: EventBus
    background: BackgroundTasks
    docker: DockerManager
    registry: ServiceRegistry
    volume_transfer: VolumeTransfer
    project_storage: ProjectStorage
    service_storage: ServiceStorage
    caddy_sync: CaddySync
    service_manager: ServiceManager
    project_manager: ProjectManager
    sync_manager: SyncManager
    database_operations: DatabaseOperations
    log_streamer: LogStreamer


def build_container(settings: Settings, folder_selector: Optional[FolderSelector] = None) -> AppContainer:
    """Construct the full object graph for one process."""
    data_path = settings.data_path
    event_bus = EventBus()
    background = BackgroundTasks()

    docker = DockerManager(settings)
    registry = ServiceRegistry(user_services_dir=settings.USER_SERVICES_DIR or None)
    volume_transfer = VolumeTransfer(docker, settings)
    project_storage = ProjectStorage(data_path / settings.PROJECTS_FILE)
    service_storage = ServiceStorage(data_path / settings.SERVICES_FILE)
    caddy_sync = CaddySync(docker, project_storage, registry, settings)

    service_manager = ServiceManager(
        settings,
        docker,
        registry,
        service_storage,
        PortResolver(max_attempts=settings.PORT_SCAN_ATTEMPTS),
        event_bus=event_bus,
        caddy_sync=caddy_sync,
        background=background,
    )
    project_manager = ProjectManager(
        settings,
        project_storage,
        docker,
        volume_transfer,
        ProjectTemplates(registry),
        HostsManager(settings),
        registry,
        laravel_installer=LaravelInstaller(volume_transfer, settings),
        caddy_sync=caddy_sync,
        folder_selector=folder_selector,
        event_bus=event_bus,
        background=background,
    )
    sync_manager = SyncManager(docker, volume_transfer, project_storage, event_bus, background=background)

    return AppContainer(
        settings=settings,
        event_bus=event_bus,
        background=background,
        docker=docker,
        registry=registry,
        volume_transfer=volume_transfer,
        project_storage=project_storage,
        service_storage=service_storage,
        caddy_sync=caddy_sync,
        service_manager=service_manager,
        project_manager=project_manager,
        sync_manager=sync_manager,
        database_operations=DatabaseOperations(service_manager, docker),
        log_streamer=LogStreamer(docker, project_storage, service_manager),
    )
