"""
Projects API Endpoints

Create, import, update, reorder and delete projects. Creation progress is
published on the event bus under the project.create topic; follow it through
GET /api/events.
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from damp.dependencies import get_project_manager
from damp.models.project import CreateProjectInput, UpdateProjectInput
from damp.models.result import OperationResult
from damp.services.project_manager import ProjectManager

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class ReorderRequest(BaseModel):
    """New display order, first id first."""
    project_ids: List[str] = Field(..., description="Project ids in display order")


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=OperationResult)
async def list_projects(manager: ProjectManager = Depends(get_project_manager)):
    """All projects in display order."""
    return await manager.get_projects()


@router.post("", response_model=OperationResult)
async def create_project(
    data: CreateProjectInput,
    manager: ProjectManager = Depends(get_project_manager),
):
    """Create a new project, or import an existing folder when type is 'existing'."""
    return await manager.create_project(data)


@router.post("/reorder", response_model=OperationResult)
async def reorder_projects(
    data: ReorderRequest,
    manager: ProjectManager = Depends(get_project_manager),
):
    return await manager.reorder_projects(data.project_ids)


@router.get("/{project_id}", response_model=OperationResult)
async def get_project(project_id: str, manager: ProjectManager = Depends(get_project_manager)):
    return await manager.get_project(project_id)


@router.patch("/{project_id}", response_model=OperationResult)
async def update_project(
    project_id: str,
    data: UpdateProjectInput,
    manager: ProjectManager = Depends(get_project_manager),
):
    return await manager.update_project(project_id, data)


@router.delete("/{project_id}", response_model=OperationResult)
async def delete_project(
    project_id: str,
    remove_volume: bool = False,
    remove_folder: bool = False,
    manager: ProjectManager = Depends(get_project_manager),
):
    """Delete a project. The volume and folder are kept unless explicitly requested."""
    return await manager.delete_project(project_id, remove_volume=remove_volume, remove_folder=remove_folder)


@router.get("/{project_id}/container", response_model=OperationResult)
async def get_project_container(project_id: str, manager: ProjectManager = Depends(get_project_manager)):
    """Live state of the project's devcontainer."""
    return await manager.get_project_container_state(project_id)
