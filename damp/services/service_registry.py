"""
Service Registry

Discovers and loads auxiliary service definitions from YAML files.

Directory structure:
  damp/config/services/       # Built-in definitions, shipped with the package
    caddy.yaml
    mysql.yaml
    redis.yaml
    ...
  $DAMP_USER_SERVICES_DIR/    # Optional user definitions
    redis.yaml                # Partial override, merged over the built-in one
    my-custom-db.yaml         # New service

A user file whose id matches a built-in service is merged over it with
OmegaConf, so it only needs the keys it changes. Lists (ports, environment
variables, bindings) are replaced rather than concatenated.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from omegaconf import OmegaConf
from pydantic import ValidationError as PydanticValidationError

from damp.models.service import ServiceDefinition
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Registry")

BUILTIN_SERVICES_DIR = Path(__file__).parent.parent / "config" / "services"


class ServiceRegistry:
    """
    Central registry for all service definitions.

    Definitions are immutable once loaded; reload() re-reads the files.
    """

    def __init__(
        self,
        services_dir: Optional[Path] = None,
        user_services_dir: Optional[Path] = None,
    ):
        self.services_dir = Path(services_dir) if services_dir else BUILTIN_SERVICES_DIR
        self.user_services_dir = Path(user_services_dir) if user_services_dir else None

        self._services_cache: Optional[Dict[str, ServiceDefinition]] = None

    def reload(self) -> None:
        """Clear the cache so the next lookup re-reads the YAML files."""
        self._services_cache = None
        logger.info("Service registry cache cleared")

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_all_services(self, reload: bool = False) -> Dict[str, ServiceDefinition]:
        """
        Get all discovered services.

        Returns:
            Dict mapping service_id -> ServiceDefinition
        """
        if reload:
            self._services_cache = None

        if self._services_cache is None:
            self._services_cache = self._discover_services()

        return self._services_cache

    def get_service(self, service_id: str) -> Optional[ServiceDefinition]:
        """Get a specific service by ID."""
        return self.get_all_services().get(service_id)

    def get_required_services(self) -> List[ServiceDefinition]:
        return [s for s in self.get_all_services().values() if s.required]

    def get_optional_services(self) -> List[ServiceDefinition]:
        return [s for s in self.get_all_services().values() if not s.required]

    def get_bundleable_services(self) -> List[ServiceDefinition]:
        """Services that can be embedded in a project's compose stack."""
        return [s for s in self.get_all_services().values() if s.bundleable]

    def get_installable_services(self) -> List[ServiceDefinition]:
        """Services that can be installed as shared containers."""
        return [s for s in self.get_all_services().values() if s.installable]

    # =========================================================================
    # Private Methods
    # =========================================================================

    def _discover_services(self) -> Dict[str, ServiceDefinition]:
        """Load built-in definitions, then apply user definitions on top."""
        raw: Dict[str, Dict[str, Any]] = {}

        if self.services_dir.exists():
            for yaml_file in sorted(self.services_dir.glob("*.yaml")):
                data = self._load_yaml(yaml_file)
                if data:
                    raw[data["id"]] = data
        else:
            logger.warning(f"Services directory not found: {self.services_dir}")

        if self.user_services_dir and self.user_services_dir.exists():
            for yaml_file in sorted(self.user_services_dir.glob("*.yaml")):
                data = self._load_yaml(yaml_file)
                if not data:
                    continue
                service_id = data["id"]
                if service_id in raw:
                    logger.warning(f"User service '{service_id}' overrides built-in service")
                    merged = OmegaConf.merge(OmegaConf.create(raw[service_id]), OmegaConf.create(data))
                    data = OmegaConf.to_container(merged, resolve=True)
                raw[service_id] = data

        services: Dict[str, ServiceDefinition] = {}
        for service_id, data in raw.items():
            try:
                services[service_id] = ServiceDefinition(**data)
            except PydanticValidationError as e:
                logger.error(f"Invalid service definition '{service_id}': {e}")

        logger.info(f"Discovered {len(services)} services")
        return services

    def _load_yaml(self, path: Path) -> Optional[Dict[str, Any]]:
        """Read one YAML file. Returns None (and logs) if it is unusable."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parse error in {path}: {e}")
            return None

        if not data:
            logger.warning(f"Empty service file: {path}")
            return None
        if not isinstance(data, dict) or "id" not in data:
            logger.error(f"Service file {path} has no 'id'")
            return None

        logger.debug(f"Loaded service: {data['id']} from {path.name}")
        return data
