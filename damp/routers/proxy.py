"""
Proxy API Endpoints

Manual trigger for regenerating the Caddy routing table.
"""

from fastapi import APIRouter, Depends

from damp.dependencies import get_caddy_sync
from damp.models.result import OperationResult
from damp.services.caddy_sync import CaddySync

router = APIRouter()


@router.post("/sync", response_model=OperationResult)
async def sync_proxy(caddy_sync: CaddySync = Depends(get_caddy_sync)):
    """Regenerate and reload the Caddyfile. A stopped proxy is skipped, not an error."""
    return await caddy_sync.sync_projects()


@router.get("/status", response_model=OperationResult)
async def proxy_status(caddy_sync: CaddySync = Depends(get_caddy_sync)):
    return OperationResult.ok({"running": await caddy_sync.is_ready()})
