"""
Docker-specific utility functions.

Port binding construction, container state parsing, volume binding parsing
and host path translation shared by the gateway and the transfer engine.
"""

import os
import platform
import re
from typing import Any, Dict, List, Optional, Tuple

from damp.models.service import ContainerState, HealthStatus
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Docker")

_DRIVE_PATH = re.compile(r"^([A-Za-z]):[\\/]*(.*)$")
_WINDOWS_BIND = re.compile(r"^[A-Za-z]:\\")


def build_port_config(ports: List[Tuple[int, int]]) -> Dict[str, Any]:
    """
    Build the docker-py `ports` argument from [host, container] pairs.

    Every binding is published on 0.0.0.0. A container port bound to several
    host ports gets a list of bindings.

    Examples:
        >>> build_port_config([(3307, 3306)])
        {'3306/tcp': ('0.0.0.0', 3307)}
    """
    port_config: Dict[str, Any] = {}

    for host_port, container_port in ports:
        port_key = f"{int(container_port)}/tcp"
        binding = ("0.0.0.0", int(host_port))
        existing = port_config.get(port_key)
        if existing is None:
            port_config[port_key] = binding
        elif isinstance(existing, list):
            existing.append(binding)
        else:
            port_config[port_key] = [existing, binding]

    return port_config


def parse_port_bindings(port_data: Optional[Dict[str, Any]]) -> List[Tuple[int, int]]:
    """
    Parse NetworkSettings.Ports from a container inspect into [host, container] pairs.

    Unbound exposed ports and duplicate IPv6 bindings are skipped.
    """
    pairs: List[Tuple[int, int]] = []
    if not port_data:
        return pairs

    for port_key, bindings in port_data.items():
        if not bindings:
            continue
        container_port = int(port_key.split("/")[0])
        for binding in bindings:
            host_port = binding.get("HostPort")
            if not host_port:
                continue
            pair = (int(host_port), container_port)
            if pair not in pairs:
                pairs.append(pair)

    return pairs


def map_health_status(attrs: Dict[str, Any]) -> HealthStatus:
    """Read State.Health.Status from inspect data."""
    state = attrs.get("State")
    if not isinstance(state, dict):
        return HealthStatus.NONE
    health = state.get("Health") or {}
    status = health.get("Status")
    try:
        return HealthStatus(status) if status else HealthStatus.NONE
    except ValueError:
        return HealthStatus.NONE


def container_state_from_attrs(attrs: Dict[str, Any]) -> ContainerState:
    """Build a ContainerState from `docker inspect` / list attributes."""
    state = attrs.get("State") or {}
    if isinstance(state, str):
        # containers.list(sparse=True) reports State as a bare string
        status = state
        running = state == "running"
    else:
        status = state.get("Status")
        running = bool(state.get("Running"))

    name = attrs.get("Name") or ""
    if not name and attrs.get("Names"):
        name = attrs["Names"][0]

    network_settings = attrs.get("NetworkSettings") or {}
    return ContainerState(
        exists=True,
        running=running,
        container_id=attrs.get("Id"),
        container_name=name.lstrip("/") or None,
        state=status,
        ports=parse_port_bindings(network_settings.get("Ports")),
        health_status=map_health_status(attrs),
    )


def get_volume_names_from_bindings(volume_bindings: List[str]) -> List[str]:
    """
    Extract named volumes from bind specs, skipping host paths.

    Examples:
        >>> get_volume_names_from_bindings(["damp-redis:/data", "/host/dir:/app"])
        ['damp-redis']
    """
    names = []
    for binding in volume_bindings:
        source = binding.split(":", 1)[0]
        if not source or source.startswith("/") or source.startswith("."):
            continue
        if _WINDOWS_BIND.match(binding):
            continue
        names.append(source)
    return names


def normalize_host_path(host_path: str, system: Optional[str] = None) -> str:
    """
    Translate a host path into Docker's bind-mount convention.

    On Windows, `C:\\Users\\me\\site` becomes `/c/Users/me/site`.
    POSIX paths are returned unchanged.
    """
    system = system or platform.system()
    if system != "Windows":
        return host_path

    match = _DRIVE_PATH.match(host_path)
    if not match:
        return host_path.replace("\\", "/")

    drive, rest = match.groups()
    rest = rest.replace("\\", "/").strip("/")
    return f"/{drive.lower()}/{rest}" if rest else f"/{drive.lower()}"


def get_host_uid_gid(system: Optional[str] = None) -> str:
    """UID:GID that files copied into a volume should belong to."""
    system = system or platform.system()
    if system == "Windows":
        return "1000:1000"
    try:
        return f"{os.getuid()}:{os.getgid()}"
    except AttributeError:
        logger.warning("Could not detect host uid/gid, falling back to 1000:1000")
        return "1000:1000"


def merge_env_vars(defaults: List[str], overrides: Optional[List[str]]) -> List[str]:
    """Merge KEY=value lists; overrides replace matching keys and append new ones."""
    merged = list(defaults)
    for entry in overrides or []:
        key = entry.split("=", 1)[0]
        for index, existing in enumerate(merged):
            if existing.split("=", 1)[0] == key:
                merged[index] = entry
                break
        else:
            merged.append(entry)
    return merged
