"""
Health check endpoint.

Always returns 200 so a client can tell the API is up even when Docker is
not; the docker field reports the daemon separately.
"""

from fastapi import APIRouter, Depends

from damp import __version__
from damp.dependencies import get_docker_manager
from damp.services.docker_manager import DockerManager

router = APIRouter()


@router.get("/health")
async def health(docker: DockerManager = Depends(get_docker_manager)):
    docker_running = await docker.ping()
    return {
        "status": "healthy" if docker_running else "degraded",
        "version": __version__,
        "docker": docker_running,
    }
