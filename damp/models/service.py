"""
Service Models

Defines the schema for auxiliary service definitions loaded from
damp/config/services/*.yaml, the persisted per-service state, and the
live container read model.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class ServiceType(str, Enum):
    """Service category."""
    WEB = "web"
    DATABASE = "database"
    EMAIL = "email"
    CACHE = "cache"
    STORAGE = "storage"
    SEARCH = "search"
    QUEUE = "queue"


class HealthStatus(str, Enum):
    """Container health as reported by Docker."""
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    NONE = "none"


# =============================================================================
# Definition (static, from the YAML registry)
# =============================================================================

PortPair = Tuple[int, int]  # (host, container)


class HealthCheck(BaseModel):
    """Container health check. Durations are nanoseconds, as Docker expects."""
    model_config = ConfigDict(frozen=True)

    test: List[str] = Field(..., description="Healthcheck command, e.g. ['CMD', 'redis-cli', 'ping']")
    retries: int = Field(3, description="Retries before unhealthy")
    timeout: int = Field(5_000_000_000, description="Check timeout (ns)")
    interval: Optional[int] = Field(None, description="Check interval (ns)")
    start_period: Optional[int] = Field(None, description="Initial grace period (ns)")

    def to_docker(self) -> Dict[str, Any]:
        """Build the healthcheck dict for the Docker API."""
        healthcheck: Dict[str, Any] = {
            "test": list(self.test),
            "retries": self.retries,
            "timeout": self.timeout,
        }
        if self.interval:
            healthcheck["interval"] = self.interval
        if self.start_period:
            healthcheck["start_period"] = self.start_period
        return healthcheck


class ServiceDefaultConfig(BaseModel):
    """Default container configuration for a service."""
    model_config = ConfigDict(frozen=True)

    image: str = Field(..., description="Docker image reference")
    container_name: Optional[str] = Field(None, description="Container name (defaults to damp-<name>)")
    ports: List[PortPair] = Field(default_factory=list, description="[host, container] port pairs")
    volumes: List[str] = Field(default_factory=list, description="Named volumes owned by the service")
    environment_vars: List[str] = Field(default_factory=list, description="KEY=value entries")
    data_volume: Optional[str] = Field(None, description="Primary data volume")
    volume_bindings: List[str] = Field(default_factory=list, description="name:/path bind specs")
    healthcheck: Optional[HealthCheck] = None


class ServiceDefinition(BaseModel):
    """Immutable service definition loaded once from the registry."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique service identifier")
    name: str = Field(..., description="Short name, used for container and host names")
    display_name: str
    description: str = ""
    service_type: ServiceType
    required: bool = Field(False, description="Must be installed for DAMP to work")
    bundleable: bool = Field(False, description="Can be embedded in a project's compose stack")
    installable: bool = Field(True, description="Can be installed as a shared service")
    proxy_subdomain: Optional[str] = Field(None, description="Subdomain routed by the proxy for bundled use")
    proxy_port: Optional[int] = Field(None, description="Internal port the proxy routes to")
    linked_database_service: Optional[str] = Field(None, description="Database an admin tool connects to")
    default_config: ServiceDefaultConfig
    post_install_message: Optional[str] = None

    @property
    def container_name(self) -> str:
        return self.default_config.container_name or f"damp-{self.name}"


# =============================================================================
# Persisted state
# =============================================================================

class CustomConfig(BaseModel):
    """Per-service configuration override, persisted after install."""
    container_name: Optional[str] = None
    ports: Optional[List[PortPair]] = None
    environment_vars: Optional[List[str]] = None
    volume_bindings: Optional[List[str]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Values returned by post-install hooks")


class ServiceState(BaseModel):
    """Persisted state for one service id. Installed/running come from Docker."""
    id: str
    custom_config: Optional[CustomConfig] = None


class InstallOptions(BaseModel):
    """Options accepted by install."""
    custom_config: Optional[CustomConfig] = None
    start_immediately: bool = True


# =============================================================================
# Runtime read model
# =============================================================================

class ContainerState(BaseModel):
    """Live container state, always fetched fresh from Docker."""
    exists: bool = False
    running: bool = False
    container_id: Optional[str] = None
    container_name: Optional[str] = None
    state: Optional[str] = None
    ports: List[PortPair] = Field(default_factory=list, description="[host, container] bindings")
    health_status: HealthStatus = HealthStatus.NONE

    @classmethod
    def missing(cls) -> "ContainerState":
        return cls()


class ServiceInfo(BaseModel):
    """Definition plus persisted and live state, as returned to callers."""
    definition: ServiceDefinition
    custom_config: Optional[CustomConfig] = None
    container: ContainerState = Field(default_factory=ContainerState)

    @property
    def installed(self) -> bool:
        return self.container.exists

    @property
    def enabled(self) -> bool:
        return self.container.running

    def to_dict(self) -> Dict[str, Any]:
        data = self.definition.model_dump(mode="json")
        data["custom_config"] = self.custom_config.model_dump(mode="json") if self.custom_config else None
        data["status"] = self.container.model_dump(mode="json")
        data["installed"] = self.installed
        data["enabled"] = self.enabled
        return data
