"""
Database operations for installed database services.

List, dump and restore databases of the shared MySQL, MariaDB, PostgreSQL and
MongoDB containers by exec-ing the engine's own client tools inside the
running container. Credentials come from the container's environment, so
custom passwords set at install time are honored.

Database names are interpolated into shell commands and must match
[A-Za-z0-9_-]+; anything else is rejected, never stripped.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

from damp.errors import DampError, NotInstalledError, PreconditionError, ValidationError
from damp.models.result import OperationResult
from damp.services.docker_manager import DockerManager
from damp.services.service_manager import ServiceManager
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Databases")

DATABASE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

RESTORE_PATH = "/tmp/damp_restore.dump"

_MYSQL_SYSTEM = frozenset({"information_schema", "performance_schema", "mysql", "sys"})
_MONGO_AUTH = (
    '--username "$MONGO_INITDB_ROOT_USERNAME" --password "$MONGO_INITDB_ROOT_PASSWORD" '
    "--authenticationDatabase admin"
)


@dataclass(frozen=True)
class DatabaseEngine:
    """Shell command templates for one database engine."""
    list_command: str
    dump_command: str
    restore_command: str
    extension: str
    system_databases: FrozenSet[str] = field(default_factory=frozenset)


ENGINES: Dict[str, DatabaseEngine] = {
    "mysql": DatabaseEngine(
        list_command='exec mysql -uroot -p"$MYSQL_ROOT_PASSWORD" -N -e "SHOW DATABASES"',
        dump_command=(
            'exec mysqldump -uroot -p"$MYSQL_ROOT_PASSWORD" '
            "--single-transaction --routines --triggers --databases {database}"
        ),
        restore_command='exec mysql -uroot -p"$MYSQL_ROOT_PASSWORD" {database} < {path}',
        extension="sql",
        system_databases=_MYSQL_SYSTEM,
    ),
    "mariadb": DatabaseEngine(
        list_command='exec mariadb -uroot -p"$MARIADB_ROOT_PASSWORD" -N -e "SHOW DATABASES"',
        dump_command=(
            'exec mariadb-dump -uroot -p"$MARIADB_ROOT_PASSWORD" '
            "--single-transaction --routines --triggers --databases {database}"
        ),
        restore_command='exec mariadb -uroot -p"$MARIADB_ROOT_PASSWORD" {database} < {path}',
        extension="sql",
        system_databases=_MYSQL_SYSTEM,
    ),
    "postgresql": DatabaseEngine(
        list_command=(
            'exec psql -U "$POSTGRES_USER" -d postgres -At '
            '-c "SELECT datname FROM pg_database WHERE datistemplate = false"'
        ),
        dump_command='exec pg_dump -U "$POSTGRES_USER" -Fc {database}',
        restore_command='exec pg_restore -U "$POSTGRES_USER" -d {database} --clean --if-exists {path}',
        extension="dump",
        system_databases=frozenset({"postgres"}),
    ),
    "mongodb": DatabaseEngine(
        list_command=(
            f"exec mongosh {_MONGO_AUTH} --quiet "
            '--eval "db.adminCommand({listDatabases: 1}).databases.forEach(d => print(d.name))"'
        ),
        dump_command=f"exec mongodump {_MONGO_AUTH} --db {{database}} --archive --gzip",
        restore_command=f"exec mongorestore {_MONGO_AUTH} --db {{database}} --archive={{path}} --gzip --drop",
        extension="archive",
        system_databases=frozenset({"admin", "config", "local"}),
    ),
}


def validate_database_name(name: str) -> str:
    if not DATABASE_NAME_PATTERN.fullmatch(name or ""):
        raise ValidationError(
            f'Invalid database name: "{name}". '
            "Only alphanumeric characters, underscores, and hyphens are allowed."
        )
    return name


def parse_database_list(output: str, system_databases: FrozenSet[str]) -> List[str]:
    names = [line.strip() for line in output.splitlines()]
    return [name for name in names if name and name not in system_databases]


class DatabaseOperations:
    """Dump, restore and list databases inside installed service containers."""

    def __init__(self, service_manager: ServiceManager, docker_manager: DockerManager):
        self.service_manager = service_manager
        self.docker = docker_manager

    @staticmethod
    def supports(service_id: str) -> bool:
        return service_id in ENGINES

    def _engine(self, service_id: str) -> DatabaseEngine:
        engine = ENGINES.get(service_id)
        if engine is None:
            raise ValidationError(f"Service {service_id} does not support database operations")
        return engine

    async def _require_running(self, service_id: str) -> str:
        state = await self.service_manager.get_container_state(service_id)
        if not state.exists or not state.container_id:
            raise NotInstalledError(f"Service {service_id} is not installed")
        if not state.running:
            raise PreconditionError(f"Service {service_id} is not running")
        return state.container_id

    async def list_databases(self, service_id: str) -> OperationResult:
        try:
            engine = self._engine(service_id)
            container_id = await self._require_running(service_id)
            exit_code, stdout, stderr = await self.docker.exec_in_container(
                container_id, ["sh", "-c", engine.list_command]
            )
            if exit_code != 0:
                raise DampError(f"Failed to list databases: {(stderr or stdout).strip()}")
            return OperationResult.ok(parse_database_list(stdout, engine.system_databases))
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to list databases for {service_id}: {e}")
            return OperationResult.fail(str(e))

    async def dump_database(self, service_id: str, database: str) -> Tuple[bytes, str]:
        """
        Dump one database.

        Returns:
            Tuple of (dump bytes, suggested file name)

        Raises:
            DampError: unsupported service, bad name, stopped container or a
                non-zero exit of the dump tool
        """
        engine = self._engine(service_id)
        database = validate_database_name(database)
        container_id = await self._require_running(service_id)

        logger.info(f"Dumping {service_id} database {database}")
        exit_code, stdout, stderr = await self.docker.exec_in_container_raw(
            container_id, ["sh", "-c", engine.dump_command.format(database=database)]
        )
        if exit_code != 0:
            message = stderr.decode("utf-8", errors="replace").strip() or "Unknown error"
            raise DampError(f"Failed to dump database: {message}")
        return stdout, f"{database}.{engine.extension}"

    async def restore_database(self, service_id: str, database: str, data: bytes) -> OperationResult:
        """Upload a dump into the container and restore it. The uploaded file is always removed."""
        try:
            engine = self._engine(service_id)
            database = validate_database_name(database)
            if not data:
                raise ValidationError("Dump file is empty")
            container_id = await self._require_running(service_id)

            logger.info(f"Restoring {service_id} database {database} ({len(data)} bytes)")
            await self.docker.put_file_in_container(container_id, RESTORE_PATH, data)
            try:
                command = engine.restore_command.format(database=database, path=RESTORE_PATH)
                exit_code, stdout, stderr = await self.docker.exec_in_container(container_id, ["sh", "-c", command])
            finally:
                await self.docker.exec_in_container(container_id, ["rm", "-f", RESTORE_PATH])

            if exit_code != 0:
                raise DampError(f"Failed to restore database: {(stderr or stdout).strip() or 'Unknown error'}")
        except DampError as e:
            return OperationResult.fail(str(e))
        except Exception as e:
            logger.error(f"Failed to restore {service_id} database {database}: {e}")
            return OperationResult.fail(str(e))

        logger.info(f"Restored {service_id} database {database}")
        return OperationResult.ok({"message": f"Database {database} restored"})
