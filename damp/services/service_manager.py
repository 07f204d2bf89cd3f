"""
Service Lifecycle Manager

Installs, starts, stops, restarts and uninstalls auxiliary service
containers (databases, caches, mail catcher, search, storage, queue and the
Caddy proxy) defined in the service registry.

Docker is the single source of truth for whether a service is installed or
running: containers are found by their com.damp.service-id label and
inspected fresh on every call. Only the per-service custom configuration
(ports actually bound, overrides, hook metadata) is persisted.

Every public operation returns an OperationResult and never raises, except
for programming errors.
"""

from typing import Any, Dict, List, Optional

from damp.config.settings import Settings
from damp.errors import (
    DampError,
    NotFoundError,
    NotInstalledError,
    ValidationError,
)
from damp.models.result import OperationResult
from damp.models.service import (
    ContainerState,
    CustomConfig,
    InstallOptions,
    PortPair,
    ServiceDefinition,
    ServiceInfo,
)
from damp.services.caddy_sync import CaddySync
from damp.services.docker_manager import DockerManager
from damp.services.port_resolver import PortResolver
from damp.services.service_hooks import get_post_install_hook
from damp.services.service_registry import ServiceRegistry
from damp.storage.service_storage import ServiceStorage
from damp.utils import events
from damp.utils import labels as label_keys
from damp.utils.advisory import run_advisory
from damp.utils.concurrency import AsyncOnce, BackgroundTasks
from damp.utils.docker_helpers import (
    build_port_config,
    get_volume_names_from_bindings,
    merge_env_vars,
)
from damp.utils.events import EventBus
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Services")


class ServiceManager:
    """
    Lifecycle of shared service containers.

    State machine per service id:
        uninstalled -> installed(stopped) <-> installed(running) -> uninstalled
    """

    def __init__(
        self,
        settings: Settings,
        docker_manager: DockerManager,
        registry: ServiceRegistry,
        storage: ServiceStorage,
        port_resolver: PortResolver,
        event_bus: Optional[EventBus] = None,
        caddy_sync: Optional[CaddySync] = None,
        background: Optional[BackgroundTasks] = None,
    ):
        self.settings = settings
        self.docker = docker_manager
        self.registry = registry
        self.storage = storage
        self.port_resolver = port_resolver
        self.event_bus = event_bus
        self.caddy_sync = caddy_sync
        self.background = background if background is not None else BackgroundTasks()
        self.initialize = AsyncOnce(self._initialize)

    async def _initialize(self) -> None:
        await self.storage.initialize(self.registry.get_all_services().keys())
        logger.info("Service manager initialized")

    # =========================================================================
    # Lookup helpers
    # =========================================================================

    def _require_definition(self, service_id: str) -> ServiceDefinition:
        definition = self.registry.get_service(service_id)
        if definition is None:
            raise NotFoundError(f"Service {service_id} not found")
        return definition

    @staticmethod
    def _service_labels(service_id: str) -> Dict[str, str]:
        return {
            label_keys.MANAGED: "true",
            label_keys.TYPE: label_keys.TYPE_SERVICE,
            label_keys.SERVICE_ID: service_id,
        }

    async def get_container_state(self, service_id: str) -> ContainerState:
        """Live state of a service container, found by label."""
        state = await self.docker.find_container_by_label(self._service_labels(service_id))
        return state or ContainerState.missing()

    async def _require_installed(self, service_id: str) -> ContainerState:
        state = await self.get_container_state(service_id)
        if not state.exists or not state.container_id:
            raise NotInstalledError(f"Service {service_id} is not installed")
        return state

    def _publish(self, topic: str, service_id: str, payload: Dict[str, Any]) -> None:
        if self.event_bus:
            self.event_bus.publish(topic, service_id, payload)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_all_services(self) -> OperationResult:
        """All definitions merged with stored config and live container state."""
        await self.initialize()
        try:
            states = await self._bulk_container_states()
            stored = await self.storage.get_all_states()
            services = []
            for service_id, definition in self.registry.get_all_services().items():
                state = stored.get(service_id)
                info = ServiceInfo(
                    definition=definition,
                    custom_config=state.custom_config if state else None,
                    container=states.get(service_id, ContainerState.missing()),
                )
                services.append(info.to_dict())
            return OperationResult.ok(services)
        except Exception as e:
            logger.error(f"Failed to list services: {e}")
            return OperationResult.fail(str(e))

    async def get_service(self, service_id: str) -> OperationResult:
        await self.initialize()
        try:
            definition = self._require_definition(service_id)
            custom_config = await self.storage.get_custom_config(service_id)
            container = await self.get_container_state(service_id)
            info = ServiceInfo(definition=definition, custom_config=custom_config, container=container)
            return OperationResult.ok(info.to_dict())
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to get service {service_id}: {e}")
            return OperationResult.fail(str(e))

    async def get_services_state(self) -> OperationResult:
        """Container state of every service, using a single list call."""
        await self.initialize()
        try:
            states = await self._bulk_container_states()
            data = {
                service_id: states.get(service_id, ContainerState.missing()).model_dump(mode="json")
                for service_id in self.registry.get_all_services()
            }
            return OperationResult.ok(data)
        except Exception as e:
            logger.error(f"Failed to get services state: {e}")
            return OperationResult.fail(str(e))

    async def _bulk_container_states(self) -> Dict[str, ContainerState]:
        return await self.docker.get_containers_by_label_value(
            label_keys.SERVICE_ID,
            {label_keys.MANAGED: "true", label_keys.TYPE: label_keys.TYPE_SERVICE},
        )

    # =========================================================================
    # Install / Uninstall
    # =========================================================================

    async def install_service(
        self,
        service_id: str,
        options: Optional[InstallOptions] = None,
    ) -> OperationResult:
        """
        Install a service container.

        Steps: runtime check, image pull, port resolution, container
        creation, optional start, re-inspect, persist config, post-install
        hook (advisory).
        """
        await self.initialize()
        options = options or InstallOptions()
        claimed: List[int] = []

        try:
            definition = self._require_definition(service_id)
            if not definition.installable:
                raise ValidationError(f"Service {service_id} can only be bundled with a project")

            await self.docker.ensure_available()

            existing = await self.get_container_state(service_id)
            if existing.exists:
                raise ValidationError(f"Service {service_id} is already installed")

            image = definition.default_config.image
            logger.info(f"Pulling image {image}...")
            self._publish(events.SERVICE_INSTALL, service_id, {"stage": "pulling", "image": image})
            await self.docker.pull_image(image, on_progress=self._pull_progress(service_id))

            custom = options.custom_config or CustomConfig()
            desired_ports = custom.ports if custom.ports is not None else definition.default_config.ports
            resolved = self.port_resolver.resolve(host for host, _ in desired_ports)
            claimed = list(resolved.values())
            ports: List[PortPair] = [(resolved[host], container) for host, container in desired_ports]

            container_name = custom.container_name or definition.container_name
            bindings = (
                custom.volume_bindings
                if custom.volume_bindings is not None
                else definition.default_config.volume_bindings
            )
            environment = merge_env_vars(definition.default_config.environment_vars, custom.environment_vars)

            await self.docker.ensure_network_exists()
            for volume_name in get_volume_names_from_bindings(bindings):
                await self.docker.create_volume(
                    volume_name, labels=label_keys.service_volume_labels(service_id, volume_name)
                )

            logger.info(f"Creating container {container_name} for {service_id}...")
            healthcheck = definition.default_config.healthcheck
            container_id = await self.docker.create_service_container(
                image,
                name=container_name,
                ports=build_port_config(ports),
                environment=environment,
                volumes=list(bindings),
                labels=label_keys.service_container_labels(service_id, definition.service_type.value),
                healthcheck=healthcheck.to_docker() if healthcheck else None,
            )

            if options.start_immediately:
                await self.docker.start_container(container_id)

            state = await self.docker.get_container_state(container_id)
            actual_ports = state.ports or ports
            stored = custom.model_copy(update={"container_name": container_name, "ports": actual_ports})
            await self.storage.set_custom_config(service_id, stored)
        except Exception as e:
            self.port_resolver.release(claimed)
            logger.error(f"Failed to install service {service_id}: {e}")
            return OperationResult.fail(str(e))

        hook = get_post_install_hook(service_id)
        if hook and not state.running:
            logger.warning(
                f"Post-install hook for {service_id} skipped: container is not running"
            )
        elif hook:
            advisory = await run_advisory(
                f"Post-install hook for {service_id}",
                lambda: self._run_hook(service_id, container_name, stored),
                logger,
            )
            if not advisory.success:
                logger.warning(f"Service {service_id} installed without completing its hook")

        self._publish(events.SERVICE_INSTALL, service_id, {"stage": "completed"})
        logger.info(f"Service {service_id} installed successfully")
        return OperationResult.ok({
            "message": definition.post_install_message,
            "container_id": container_id,
            "ports": [list(p) for p in actual_ports],
        })

    async def _run_hook(self, service_id: str, container_name: str, stored: CustomConfig) -> None:
        hook = get_post_install_hook(service_id)
        metadata = await hook(self.docker, self.settings, container_name)
        merged = stored.model_copy(update={"metadata": {**stored.metadata, **(metadata or {})}})
        await self.storage.set_custom_config(service_id, merged)

    def _pull_progress(self, service_id: str):
        def on_progress(event: Dict[str, Any]) -> None:
            if self.event_bus:
                self.event_bus.publish_threadsafe(events.SERVICE_PULL, service_id, event)

        return on_progress

    async def uninstall_service(self, service_id: str, remove_volumes: bool = False) -> OperationResult:
        """
        Remove a service container. Named volumes are only removed when
        remove_volumes is set.
        """
        await self.initialize()
        try:
            definition = self._require_definition(service_id)
            state = await self._require_installed(service_id)
            custom = await self.storage.get_custom_config(service_id)

            await self.docker.remove_container(state.container_id, force=True, remove_volumes=False)

            removed_volumes: List[str] = []
            if remove_volumes:
                bindings = (
                    custom.volume_bindings
                    if custom and custom.volume_bindings is not None
                    else definition.default_config.volume_bindings
                )
                volume_names = get_volume_names_from_bindings(bindings)
                if volume_names:
                    logger.info(f"Removing volumes for {service_id}: {', '.join(volume_names)}")
                    removed_volumes = await self.docker.remove_volumes(volume_names)

            released = [host for host, _ in state.ports]
            if custom and custom.ports:
                released.extend(host for host, _ in custom.ports)
            self.port_resolver.release(released)

            await self.storage.set_custom_config(service_id, None)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to uninstall service {service_id}: {e}")
            return OperationResult.fail(str(e))

        logger.info(f"Service {service_id} uninstalled successfully")
        return OperationResult.ok({
            "message": f"Service {service_id} uninstalled successfully",
            "removed_volumes": removed_volumes,
        })

    # =========================================================================
    # Start / Stop / Restart
    # =========================================================================

    async def start_service(self, service_id: str) -> OperationResult:
        """Start a service. Starting a running service is a no-op."""
        await self.initialize()
        try:
            self._require_definition(service_id)
            state = await self._require_installed(service_id)
            if state.running:
                return OperationResult.ok({"message": f"Service {service_id} is already running"})

            await self.docker.start_container(state.container_id)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to start service {service_id}: {e}")
            return OperationResult.fail(str(e))

        if service_id == self.settings.PROXY_SERVICE_ID:
            self.schedule_proxy_sync()

        logger.info(f"Service {service_id} started successfully")
        return OperationResult.ok({"message": f"Service {service_id} started successfully"})

    async def stop_service(self, service_id: str) -> OperationResult:
        """Stop a service. Stopping a stopped service is a no-op."""
        await self.initialize()
        try:
            self._require_definition(service_id)
            state = await self._require_installed(service_id)
            if not state.running:
                return OperationResult.ok({"message": f"Service {service_id} is already stopped"})

            await self.docker.stop_container(state.container_id)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to stop service {service_id}: {e}")
            return OperationResult.fail(str(e))

        logger.info(f"Service {service_id} stopped successfully")
        return OperationResult.ok({"message": f"Service {service_id} stopped successfully"})

    async def restart_service(self, service_id: str) -> OperationResult:
        await self.initialize()
        try:
            self._require_definition(service_id)
            state = await self._require_installed(service_id)
            await self.docker.restart_container(state.container_id)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to restart service {service_id}: {e}")
            return OperationResult.fail(str(e))

        if service_id == self.settings.PROXY_SERVICE_ID:
            self.schedule_proxy_sync()

        logger.info(f"Service {service_id} restarted successfully")
        return OperationResult.ok({"message": f"Service {service_id} restarted successfully"})

    # =========================================================================
    # Configuration
    # =========================================================================

    async def update_service_config(self, service_id: str, custom_config: CustomConfig) -> OperationResult:
        """
        Store a new custom config for an installed service.

        The running container is not recreated; the new values apply the
        next time the service is installed.
        """
        await self.initialize()
        try:
            self._require_definition(service_id)
            state = await self._require_installed(service_id)
            if state.running:
                logger.warning(
                    f"Service {service_id} is running; configuration changes "
                    "take effect after the container is recreated"
                )
            await self.storage.set_custom_config(service_id, custom_config)
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to update config for {service_id}: {e}")
            return OperationResult.fail(str(e))

        return OperationResult.ok({
            "message": f"Configuration for {service_id} updated",
            "requires_recreate": state.running,
        })

    # =========================================================================
    # Proxy
    # =========================================================================

    def schedule_proxy_sync(self) -> None:
        """Sync the proxy in the background. The outcome is logged only."""
        if self.caddy_sync is None:
            return
        self.background.spawn(
            run_advisory("Proxy sync", self.caddy_sync.sync_projects, logger),
            name="proxy-sync",
        )
