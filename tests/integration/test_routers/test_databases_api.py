"""API tests for /api/databases."""

from unittest.mock import AsyncMock

import pytest

from damp.errors import ValidationError
from damp.models.result import OperationResult


@pytest.mark.integration
class TestDatabasesAPI:

    async def test_list(self, async_client, mock_container):
        operations = mock_container.database_operations
        operations.list_databases = AsyncMock(return_value=OperationResult.ok(["shop", "blog"]))

        response = await async_client.get("/api/databases/mysql")

        assert response.json()["data"] == ["shop", "blog"]
        operations.list_databases.assert_awaited_once_with("mysql")

    async def test_dump_downloads_file(self, async_client, mock_container):
        operations = mock_container.database_operations
        operations.dump_database = AsyncMock(return_value=(b"-- MySQL dump", "shop.sql"))

        response = await async_client.get("/api/databases/mysql/shop/dump")

        assert response.status_code == 200
        assert response.content == b"-- MySQL dump"
        assert response.headers["content-type"] == "application/octet-stream"
        assert response.headers["content-disposition"] == 'attachment; filename="shop.sql"'

    async def test_dump_error_is_400(self, async_client, mock_container):
        operations = mock_container.database_operations
        operations.dump_database = AsyncMock(side_effect=ValidationError('Invalid database name: "a.b"'))

        response = await async_client.get("/api/databases/mysql/a.b/dump")

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid database name")

    async def test_restore_takes_raw_body(self, async_client, mock_container):
        operations = mock_container.database_operations
        operations.restore_database = AsyncMock(return_value=OperationResult.ok({"message": "Database shop restored"}))

        response = await async_client.post(
            "/api/databases/mysql/shop/restore",
            content=b"INSERT INTO t VALUES (1);",
            headers={"Content-Type": "application/octet-stream"},
        )

        assert response.json()["success"] is True
        operations.restore_database.assert_awaited_once_with("mysql", "shop", b"INSERT INTO t VALUES (1);")
