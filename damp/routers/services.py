"""
Services API Endpoints

Install and manage the shared service containers defined in
damp/config/services/*.yaml.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from damp.dependencies import get_service_manager
from damp.models.result import OperationResult
from damp.models.service import CustomConfig, InstallOptions
from damp.services.service_manager import ServiceManager

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class UninstallRequest(BaseModel):
    """Request body for uninstalling a service."""
    remove_volumes: bool = False


# =============================================================================
# Queries
# =============================================================================

@router.get("", response_model=OperationResult)
async def list_services(manager: ServiceManager = Depends(get_service_manager)):
    """Every service definition with its stored config and live container state."""
    return await manager.get_all_services()


@router.get("/state", response_model=OperationResult)
async def services_state(manager: ServiceManager = Depends(get_service_manager)):
    """Container state of every service, keyed by service id."""
    return await manager.get_services_state()


@router.get("/{service_id}", response_model=OperationResult)
async def get_service(service_id: str, manager: ServiceManager = Depends(get_service_manager)):
    return await manager.get_service(service_id)


# =============================================================================
# Lifecycle
# =============================================================================

@router.post("/{service_id}/install", response_model=OperationResult)
async def install_service(
    service_id: str,
    options: Optional[InstallOptions] = Body(None),
    manager: ServiceManager = Depends(get_service_manager),
):
    """Pull, create and (by default) start the service container."""
    return await manager.install_service(service_id, options)


@router.post("/{service_id}/uninstall", response_model=OperationResult)
async def uninstall_service(
    service_id: str,
    request: Optional[UninstallRequest] = Body(None),
    manager: ServiceManager = Depends(get_service_manager),
):
    """Remove the service container. Volumes are kept unless remove_volumes is set."""
    remove_volumes = request.remove_volumes if request else False
    return await manager.uninstall_service(service_id, remove_volumes=remove_volumes)


@router.post("/{service_id}/start", response_model=OperationResult)
async def start_service(service_id: str, manager: ServiceManager = Depends(get_service_manager)):
    return await manager.start_service(service_id)


@router.post("/{service_id}/stop", response_model=OperationResult)
async def stop_service(service_id: str, manager: ServiceManager = Depends(get_service_manager)):
    return await manager.stop_service(service_id)


@router.post("/{service_id}/restart", response_model=OperationResult)
async def restart_service(service_id: str, manager: ServiceManager = Depends(get_service_manager)):
    return await manager.restart_service(service_id)


@router.put("/{service_id}/config", response_model=OperationResult)
async def update_service_config(
    service_id: str,
    custom_config: CustomConfig,
    manager: ServiceManager = Depends(get_service_manager),
):
    """Store a new custom config. A running container is not recreated."""
    return await manager.update_service_config(service_id, custom_config)
