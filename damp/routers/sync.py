"""
Sync API Endpoints

Start, cancel and inspect volume syncs. Syncs run in the background; their
progress arrives on GET /api/events under the sync.* topics.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends

from damp.dependencies import get_sync_manager
from damp.models.result import OperationResult
from damp.models.transfer import SyncOptions
from damp.services.sync_manager import SyncManager

router = APIRouter()


@router.post("/{project_id}/from-volume", response_model=OperationResult)
async def sync_from_volume(
    project_id: str,
    options: Optional[SyncOptions] = Body(None),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Copy the project volume down to the project folder."""
    return await manager.sync_from_volume(project_id, options)


@router.post("/{project_id}/to-volume", response_model=OperationResult)
async def sync_to_volume(
    project_id: str,
    options: Optional[SyncOptions] = Body(None),
    manager: SyncManager = Depends(get_sync_manager),
):
    """Copy the project folder up into the project volume."""
    return await manager.sync_to_volume(project_id, options)


@router.post("/{project_id}/cancel", response_model=OperationResult)
async def cancel_sync(project_id: str, manager: SyncManager = Depends(get_sync_manager)):
    return await manager.cancel_sync(project_id)


@router.get("/{project_id}", response_model=OperationResult)
async def get_sync_status(project_id: str, manager: SyncManager = Depends(get_sync_manager)):
    """Active sync for the project, or null data when idle."""
    return OperationResult.ok(manager.get_sync_status(project_id))
