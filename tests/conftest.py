"""
Pytest configuration and shared fixtures.

This file provides common test fixtures used across unit and integration tests:
- Settings pointing at a temporary data directory and hosts file
- A mocked Docker gateway (no daemon required)
- Real registry, storage and event bus instances
- Sample projects
"""

from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from damp.config.settings import Settings
from damp.models.project import BundledService, Project, ProjectType
from damp.models.service import ContainerState
from damp.services.docker_manager import DockerManager
from damp.services.port_resolver import PortResolver
from damp.services.service_registry import ServiceRegistry
from damp.storage import ProjectStorage, ServiceStorage
from damp.utils.concurrency import BackgroundTasks
from damp.utils.events import EventBus


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def hosts_file(tmp_path: Path) -> Path:
    path = tmp_path / "hosts"
    path.write_text("127.0.0.1\tlocalhost\n", encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path, hosts_file: Path) -> Settings:
    """Settings isolated to a temporary directory."""
    return Settings(
        DATA_DIR=str(tmp_path / "data"),
        HOSTS_FILE=str(hosts_file),
        PROXY_CERT_WAIT_TIMEOUT=0.05,
        PROXY_CERT_POLL_INTERVAL=0.01,
    )


# =============================================================================
# Docker
# =============================================================================

def running_state(name: str = "damp-redis", container_id: str = "cid123", ports=None) -> ContainerState:
    return ContainerState(
        exists=True,
        running=True,
        container_id=container_id,
        container_name=name,
        state="running",
        ports=ports or [],
    )


def stopped_state(name: str = "damp-redis", container_id: str = "cid123") -> ContainerState:
    return ContainerState(
        exists=True,
        running=False,
        container_id=container_id,
        container_name=name,
        state="exited",
    )


@pytest.fixture
def mock_docker() -> MagicMock:
    """
    Mock Docker gateway.

    Async methods of DockerManager become AsyncMocks.
    Defaults describe a healthy daemon with nothing installed.
    """
    docker = MagicMock(spec=DockerManager)
    docker.ping.return_value = True
    docker.ensure_available.return_value = None
    docker.ensure_network_exists.return_value = True
    docker.find_container_by_label.return_value = None
    docker.get_containers_by_label_value.return_value = {}
    docker.create_volume.return_value = True
    docker.volume_exists.return_value = True
    docker.create_container.return_value = "cid123"
    docker.create_service_container.return_value = "cid123"
    docker.get_container_state.return_value = running_state()
    docker.exec_in_container.return_value = (0, "", "")
    docker.wait_container.return_value = 0
    docker.container_logs.return_value = ""
    docker.remove_volumes.return_value = []
    docker.remove_containers_by_label.return_value = 0
    return docker


# =============================================================================
# Real collaborators
# =============================================================================

@pytest.fixture
def registry() -> ServiceRegistry:
    return ServiceRegistry()


@pytest.fixture
def port_resolver() -> PortResolver:
    """Resolver that treats every port as free."""
    return PortResolver(max_attempts=10, probe=lambda port: True)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
async def project_storage(settings: Settings) -> ProjectStorage:
    storage = ProjectStorage(settings.data_path / settings.PROJECTS_FILE)
    await storage.initialize()
    return storage


@pytest.fixture
async def service_storage(settings: Settings) -> ServiceStorage:
    return ServiceStorage(settings.data_path / settings.SERVICES_FILE)


# =============================================================================
# Test Data Fixtures
# =============================================================================

def make_project(**overrides) -> Project:
    data = dict(
        id="11111111-1111-1111-1111-111111111111",
        name="my-site",
        type=ProjectType.BASIC_PHP,
        path="/tmp/sites/my-site",
        volume_name="proj_my-site",
        container_name="my-site_devcontainer",
        domain="my-site.local",
    )
    data.update(overrides)
    return Project(**data)


@pytest.fixture
def sample_project() -> Project:
    return make_project()


@pytest.fixture
def bundled_project() -> Project:
    return make_project(
        bundled_services=[
            BundledService(service_id="mysql", container_name="my-site-mysql"),
            BundledService(service_id="mailpit", container_name="my-site-mailpit"),
            BundledService(service_id="phpmyadmin", container_name="my-site-phpmyadmin"),
        ]
    )


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def mock_container(settings: Settings, event_bus: EventBus) -> MagicMock:
    """AppContainer whose managers are all mocks."""
    container = MagicMock()
    container.settings = settings
    container.event_bus = event_bus
    return container


@pytest.fixture
def app(mock_container: MagicMock):
    from damp.main import create_app
    return create_app(mock_container)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Asynchronous test client. The lifespan is not run."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
