"""
Reverse Proxy Synchronizer

Regenerates the Caddyfile from the current project list and hot-reloads the
running Caddy container:

  1. write /etc/caddy/Caddyfile via exec
  2. caddy fmt --overwrite
  3. caddy reload

Every project gets a TLS-internal site block proxying to its devcontainer
over HTTPS; bundled services with a proxy subdomain get their own block.
The operation is idempotent and never raises: when Caddy is not running it
is skipped and reported as success.
"""

from typing import List, Optional

from damp.config.settings import Settings
from damp.errors import DampError
from damp.models.project import Project
from damp.models.result import OperationResult
from damp.services.docker_manager import DockerManager
from damp.services.service_registry import ServiceRegistry
from damp.storage.project_storage import ProjectStorage
from damp.utils import labels as label_keys
from damp.utils.logging import get_logger
from damp.utils.naming import bundled_container_name

logger = get_logger(__name__, prefix="Caddy Sync")

HEREDOC_MARKER = "DAMP_CADDYFILE"


# =============================================================================
# Caddyfile generation
# =============================================================================

def bootstrap_block(domain: str) -> List[str]:
    return [
        "# Bootstrap",
        f"https://{domain} {{",
        "    tls internal",
        '    respond "DAMP - All systems ready!"',
        "}",
        "",
    ]


def project_block(project: Project) -> List[str]:
    return [
        f"{project.domain} {{",
        "    tls internal",
        f"    reverse_proxy https://{project.container_name}:{project.forwarded_port} {{",
        "        transport http {",
        "            tls_insecure_skip_verify",
        "        }",
        "    }",
        "}",
        "",
    ]


def bundled_service_blocks(project: Project, registry: ServiceRegistry) -> List[str]:
    lines: List[str] = []
    for bundled in project.bundled_services:
        definition = registry.get_service(bundled.service_id)
        if not definition or not definition.proxy_subdomain or not definition.proxy_port:
            continue
        upstream = bundled.container_name or bundled_container_name(project.name, definition.name)
        lines.extend([
            f"{definition.proxy_subdomain}.{project.domain} {{",
            "    tls internal",
            f"    reverse_proxy http://{upstream}:{definition.proxy_port}",
            "}",
            "",
        ])
    return lines


def generate_caddyfile(
    projects: List[Project],
    registry: Optional[ServiceRegistry] = None,
    bootstrap_domain: str = "damp.local",
) -> str:
    """Build the full Caddyfile for a list of projects."""
    lines = [
        "# DAMP Reverse Proxy Configuration",
        "# Auto-generated - Do not edit manually",
        "",
    ]
    lines.extend(bootstrap_block(bootstrap_domain))

    for project in projects:
        lines.extend(project_block(project))
        if registry is not None:
            lines.extend(bundled_service_blocks(project, registry))

    return "\n".join(lines)


async def apply_caddyfile(docker: DockerManager, container: str, path: str, content: str) -> None:
    """
    Write, format and reload a Caddyfile inside a running Caddy container.

    Raises:
        DampError: content would end the heredoc early, or any of the three
            exec steps exited non-zero
    """
    if HEREDOC_MARKER in content.splitlines():
        raise DampError("Refusing to write a Caddyfile containing the heredoc terminator")
    write_cmd = ["sh", "-c", f"cat > {path} <<'{HEREDOC_MARKER}'\n{content}\n{HEREDOC_MARKER}\n"]
    steps = [
        ("write Caddyfile", write_cmd),
        ("format Caddyfile", ["caddy", "fmt", "--overwrite", path]),
        ("reload Caddy", ["caddy", "reload", "--config", path]),
    ]
    for description, argv in steps:
        exit_code, stdout, stderr = await docker.exec_in_container(container, argv)
        if exit_code != 0:
            raise DampError(f"Failed to {description}: {(stderr or stdout).strip()}")


# =============================================================================
# Synchronizer
# =============================================================================

class CaddySync:
    """Keeps the proxy's routing table in step with the persisted projects."""

    def __init__(
        self,
        docker_manager: DockerManager,
        project_storage: ProjectStorage,
        registry: ServiceRegistry,
        settings: Settings,
    ):
        self.docker = docker_manager
        self.project_storage = project_storage
        self.registry = registry
        self.settings = settings

    async def _find_proxy_container(self) -> Optional[str]:
        """Name of the running proxy container, or None."""
        state = await self.docker.find_container_by_label({
            label_keys.MANAGED: "true",
            label_keys.SERVICE_ID: self.settings.PROXY_SERVICE_ID,
        })
        if state is None:
            definition = self.registry.get_service(self.settings.PROXY_SERVICE_ID)
            if definition is None:
                return None
            state = await self.docker.get_container_state(definition.container_name)

        if not state.exists or not state.running:
            return None
        return state.container_name or state.container_id

    async def is_ready(self) -> bool:
        try:
            return await self._find_proxy_container() is not None
        except Exception:
            return False

    async def sync_projects(self) -> OperationResult:
        """
        Regenerate and reload the Caddyfile. Never raises.

        Returns:
            OperationResult(success=True) when synced or skipped,
            OperationResult(success=False, error=...) on failure
        """
        try:
            container = await self._find_proxy_container()
            if container is None:
                logger.info("Skipping - Caddy container not running")
                return OperationResult.ok()

            projects = await self.project_storage.get_projects()
            logger.info(f"Syncing {len(projects)} project(s) to Caddy")

            content = generate_caddyfile(projects, self.registry, self.settings.PROXY_BOOTSTRAP_DOMAIN)
            await apply_caddyfile(self.docker, container, self.settings.PROXY_CONFIG_PATH, content)

            logger.info("Successfully synchronized projects to Caddy")
            return OperationResult.ok({"projects": len(projects)})
        except Exception as e:
            logger.warning(f"Failed to sync projects to Caddy: {e}")
            return OperationResult.fail(str(e))
