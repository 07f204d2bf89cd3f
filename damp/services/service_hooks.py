"""
Post-install hooks.

A hook runs once after a service container has been created and started.
It returns metadata that is merged into the service's stored custom config.
Hooks are best-effort: the service manager runs them through run_advisory(),
so a failing hook never fails the install.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from damp.config.settings import Settings
from damp.services.caddy_sync import apply_caddyfile, generate_caddyfile
from damp.services.docker_manager import DockerManager
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Hooks")

PostInstallHook = Callable[[DockerManager, Settings, str], Awaitable[Dict[str, Any]]]


async def wait_for_file(
    docker: DockerManager,
    container: str,
    path: str,
    timeout: float,
    poll_interval: float,
) -> bool:
    """Poll `test -f path` inside a container until it succeeds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while True:
        exit_code, _stdout, _stderr = await docker.exec_in_container(container, ["test", "-f", path])
        if exit_code == 0:
            return True
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(poll_interval)


async def caddy_post_install(docker: DockerManager, settings: Settings, container: str) -> Dict[str, Any]:
    """
    Bootstrap Caddy's local certificate authority.

    Writes a minimal Caddyfile with a single TLS-internal site, which makes
    Caddy generate its root certificate, then waits for the certificate to
    appear. Installing it into the host trust store is left to the user.
    """
    content = generate_caddyfile([], bootstrap_domain=settings.PROXY_BOOTSTRAP_DOMAIN)
    await apply_caddyfile(docker, container, settings.PROXY_CONFIG_PATH, content)
    logger.info("Bootstrap Caddyfile applied, waiting for root certificate")

    available = await wait_for_file(
        docker,
        container,
        settings.PROXY_ROOT_CERT_PATH,
        timeout=settings.PROXY_CERT_WAIT_TIMEOUT,
        poll_interval=settings.PROXY_CERT_POLL_INTERVAL,
    )
    if available:
        logger.info("Caddy root certificate generated")
    else:
        logger.warning(
            f"Caddy root certificate not found after {settings.PROXY_CERT_WAIT_TIMEOUT}s"
        )

    return {
        "cert_available": available,
        "root_cert_path": settings.PROXY_ROOT_CERT_PATH,
    }


POST_INSTALL_HOOKS: Dict[str, PostInstallHook] = {
    "caddy": caddy_post_install,
}


def get_post_install_hook(service_id: str) -> Optional[PostInstallHook]:
    return POST_INSTALL_HOOKS.get(service_id)
