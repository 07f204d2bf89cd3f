"""FastAPI dependencies resolving managers from the application container."""

from fastapi import Request

from damp.container import AppContainer
from damp.services.caddy_sync import CaddySync
from damp.services.database_operations import DatabaseOperations
from damp.services.docker_manager import DockerManager
from damp.services.log_streamer import LogStreamer
from damp.services.project_manager import ProjectManager
from damp.services.service_manager import ServiceManager
from damp.services.sync_manager import SyncManager
from damp.utils.events import EventBus


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_project_manager(request: Request) -> ProjectManager:
    return get_container(request).project_manager


def get_service_manager(request: Request) -> ServiceManager:
    return get_container(request).service_manager


def get_sync_manager(request: Request) -> SyncManager:
    return get_container(request).sync_manager


def get_caddy_sync(request: Request) -> CaddySync:
    return get_container(request).caddy_sync


def get_docker_manager(request: Request) -> DockerManager:
    return get_container(request).docker


def get_event_bus(request: Request) -> EventBus:
    return get_container(request).event_bus


def get_database_operations(request: Request) -> DatabaseOperations:
    return get_container(request).database_operations


def get_log_streamer(request: Request) -> LogStreamer:
    return get_container(request).log_streamer
