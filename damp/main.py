"""
DAMP Orchestrator - local PHP development environments on Docker
FastAPI application entry point
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from damp import __version__
from damp.config.settings import get_settings
from damp.container import AppContainer, build_container
from damp.middleware import setup_middleware
from damp.routers import databases, events, health, logs, projects, proxy, services, sync
from damp.utils.advisory import run_advisory
from damp.utils.logging import configure_logging, get_logger

logger = get_logger(__name__, prefix="App")

__all__ = ["build_container", "create_app", "run"]


async def startup(container: AppContainer) -> None:
    """Initialize storage and clean up after a previous run. Docker may be down."""
    container.event_bus.bind_loop(asyncio.get_running_loop())
    await container.project_manager.initialize()
    await container.service_manager.initialize()

    if await container.docker.ping():
        await run_advisory("Ensure network", container.docker.ensure_network_exists, logger)
        await run_advisory(
            "Clean up orphaned helpers", container.volume_transfer.cleanup_orphaned_helpers, logger
        )
    else:
        logger.warning("Docker is not running; service and project operations will fail until it starts")


async def shutdown(container: AppContainer) -> None:
    await container.background.cancel_all()


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    settings = container.settings if container else get_settings()
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info("DAMP starting up...")
        logger.info(f"Data directory: {settings.data_path}")
        await startup(container)
        yield
        logger.info("DAMP shutting down...")
        await shutdown(container)

    app = FastAPI(
        title="DAMP API",
        description="Local PHP development environment orchestrator",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    setup_middleware(app, settings)

    app.include_router(health.router, tags=["health"])
    app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
    app.include_router(services.router, prefix="/api/services", tags=["services"])
    app.include_router(sync.router, prefix="/api/sync", tags=["sync"])
    app.include_router(proxy.router, prefix="/api/proxy", tags=["proxy"])
    app.include_router(events.router, prefix="/api/events", tags=["events"])
    app.include_router(logs.router, prefix="/api/logs", tags=["logs"])
    app.include_router(databases.router, prefix="/api/databases", tags=["databases"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"name": "DAMP API", "version": __version__, "status": "running"}

    return app


def run() -> None:
    """Console entry point: `damp`."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
