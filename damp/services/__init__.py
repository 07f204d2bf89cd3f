"""
Services Layer - Public API

Quick Reference:
    from damp.services import DockerManager, ProjectManager
"""

# =============================================================================
# Resource Managers (External Systems)
# =============================================================================

from damp.services.docker_manager import DockerManager
from damp.services.hosts_manager import HostsManager
from damp.services.port_resolver import PortResolver
from damp.services.volume_transfer import VolumeTransfer

# =============================================================================
# Registries
# =============================================================================

from damp.services.service_registry import ServiceRegistry

# =============================================================================
# Business Services (Orchestration)
# =============================================================================

from damp.services.caddy_sync import CaddySync
from damp.services.database_operations import DatabaseOperations
from damp.services.laravel_installer import LaravelInstaller
from damp.services.log_streamer import LogStreamer
from damp.services.project_manager import ProjectManager
from damp.services.project_templates import ProjectTemplates
from damp.services.service_manager import ServiceManager
from damp.services.sync_manager import SyncManager

__all__ = [
    # Resource Managers
    "DockerManager",
    "HostsManager",
    "PortResolver",
    "VolumeTransfer",
    # Registries
    "ServiceRegistry",
    # Business Services
    "CaddySync",
    "DatabaseOperations",
    "LaravelInstaller",
    "LogStreamer",
    "ProjectManager",
    "ProjectTemplates",
    "ServiceManager",
    "SyncManager",
]
