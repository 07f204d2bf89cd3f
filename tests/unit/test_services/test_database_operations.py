"""Unit tests for database list, dump and restore."""

from unittest.mock import AsyncMock, MagicMock, call

import pytest

from conftest import running_state, stopped_state
from damp.errors import DampError, ValidationError
from damp.models.service import ContainerState
from damp.services.database_operations import (
    RESTORE_PATH,
    DatabaseOperations,
    parse_database_list,
    validate_database_name,
)


@pytest.fixture
def service_manager():
    manager = MagicMock()
    manager.get_container_state = AsyncMock(return_value=running_state("damp-mysql", container_id="db1"))
    return manager


@pytest.fixture
def operations(service_manager, mock_docker):
    return DatabaseOperations(service_manager, mock_docker)


@pytest.mark.unit
class TestDatabaseNames:

    @pytest.mark.parametrize("name", ["shop", "shop_db", "shop-2", "A1"])
    def test_accepts_safe_names(self, name):
        assert validate_database_name(name) == name

    @pytest.mark.parametrize("name", ["", "shop db", "shop;rm -rf /", "$(id)", "shop\n", "a.b"])
    def test_rejects_anything_else(self, name):
        with pytest.raises(ValidationError, match="Invalid database name"):
            validate_database_name(name)

    def test_system_databases_are_filtered(self):
        output = "information_schema\nshop\nmysql\n\nperformance_schema\nblog\nsys\n"

        assert parse_database_list(output, frozenset({"information_schema", "mysql", "performance_schema", "sys"})) == [
            "shop",
            "blog",
        ]


@pytest.mark.unit
class TestListDatabases:

    async def test_mysql(self, operations, mock_docker):
        mock_docker.exec_in_container.return_value = (0, "information_schema\nshop\nmysql\nsys\n", "")

        result = await operations.list_databases("mysql")

        assert result.success
        assert result.data == ["shop"]
        container_id, argv = mock_docker.exec_in_container.await_args.args
        assert container_id == "db1"
        assert argv[:2] == ["sh", "-c"]
        assert '"$MYSQL_ROOT_PASSWORD"' in argv[2]

    async def test_postgres_hides_default_database(self, operations, mock_docker):
        mock_docker.exec_in_container.return_value = (0, "postgres\napp\n", "")

        result = await operations.list_databases("postgresql")

        assert result.data == ["app"]
        assert "psql" in mock_docker.exec_in_container.await_args.args[1][2]

    async def test_unsupported_service(self, operations, mock_docker):
        result = await operations.list_databases("redis")

        assert not result.success
        assert "does not support database operations" in result.error
        mock_docker.exec_in_container.assert_not_called()

    async def test_not_installed(self, operations, service_manager):
        service_manager.get_container_state.return_value = ContainerState.missing()

        result = await operations.list_databases("mysql")

        assert result.error == "Service mysql is not installed"

    async def test_not_running(self, operations, service_manager):
        service_manager.get_container_state.return_value = stopped_state("damp-mysql")

        result = await operations.list_databases("mysql")

        assert result.error == "Service mysql is not running"

    async def test_client_failure(self, operations, mock_docker):
        mock_docker.exec_in_container.return_value = (1, "", "Access denied\n")

        result = await operations.list_databases("mariadb")

        assert result.error == "Failed to list databases: Access denied"


@pytest.mark.unit
class TestDump:

    async def test_dump_returns_bytes_and_filename(self, operations, mock_docker):
        mock_docker.exec_in_container_raw.return_value = (0, b"\x1f\x8b archive", b"")

        data, filename = await operations.dump_database("mongodb", "shop")

        assert data == b"\x1f\x8b archive"
        assert filename == "shop.archive"
        command = mock_docker.exec_in_container_raw.await_args.args[1][2]
        assert command.startswith("exec mongodump")
        assert "--db shop --archive --gzip" in command

    async def test_postgres_uses_custom_format(self, operations, mock_docker):
        mock_docker.exec_in_container_raw.return_value = (0, b"PGDMP", b"")

        _data, filename = await operations.dump_database("postgresql", "app")

        assert filename == "app.dump"
        assert "pg_dump" in mock_docker.exec_in_container_raw.await_args.args[1][2]

    async def test_bad_name_never_reaches_container(self, operations, mock_docker):
        with pytest.raises(ValidationError):
            await operations.dump_database("mysql", "shop; drop")

        mock_docker.exec_in_container_raw.assert_not_called()

    async def test_dump_failure_raises(self, operations, mock_docker):
        mock_docker.exec_in_container_raw.return_value = (2, b"", b"Unknown database 'nope'\n")

        with pytest.raises(DampError, match="Failed to dump database: Unknown database 'nope'"):
            await operations.dump_database("mysql", "nope")


@pytest.mark.unit
class TestRestore:

    async def test_restore_uploads_runs_and_cleans_up(self, operations, mock_docker):
        result = await operations.restore_database("mysql", "shop", b"CREATE TABLE t (id int);")

        assert result.success
        mock_docker.put_file_in_container.assert_awaited_once_with("db1", RESTORE_PATH, b"CREATE TABLE t (id int);")
        restore_call, cleanup_call = mock_docker.exec_in_container.await_args_list
        assert restore_call.args[1][2].endswith(f"shop < {RESTORE_PATH}")
        assert cleanup_call == call("db1", ["rm", "-f", RESTORE_PATH])

    async def test_failed_restore_still_removes_upload(self, operations, mock_docker):
        mock_docker.exec_in_container.side_effect = [(1, "", "pg_restore: error: bad archive"), (0, "", "")]

        result = await operations.restore_database("postgresql", "app", b"garbage")

        assert result.error == "Failed to restore database: pg_restore: error: bad archive"
        assert mock_docker.exec_in_container.await_args_list[-1] == call("db1", ["rm", "-f", RESTORE_PATH])

    async def test_empty_upload_is_rejected(self, operations, mock_docker):
        result = await operations.restore_database("mysql", "shop", b"")

        assert result.error == "Dump file is empty"
        mock_docker.put_file_in_container.assert_not_called()
