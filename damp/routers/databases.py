"""
Databases API Endpoints

List, dump and restore databases inside the installed MySQL, MariaDB,
PostgreSQL and MongoDB services. Dumps download as files; restores take the
dump as the raw request body.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from damp.dependencies import get_database_operations
from damp.models.result import OperationResult
from damp.services.database_operations import DatabaseOperations

router = APIRouter()


@router.get("/{service_id}", response_model=OperationResult)
async def list_databases(service_id: str, operations: DatabaseOperations = Depends(get_database_operations)):
    """User databases of a service, system databases excluded."""
    return await operations.list_databases(service_id)


@router.get("/{service_id}/{database}/dump")
async def dump_database(
    service_id: str,
    database: str,
    operations: DatabaseOperations = Depends(get_database_operations),
):
    data, filename = await operations.dump_database(service_id, database)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{service_id}/{database}/restore", response_model=OperationResult)
async def restore_database(
    service_id: str,
    database: str,
    request: Request,
    operations: DatabaseOperations = Depends(get_database_operations),
):
    """Restore a dump sent as the request body (application/octet-stream)."""
    return await operations.restore_database(service_id, database, await request.body())
