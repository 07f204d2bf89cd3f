"""Unit tests for the project lifecycle orchestrator."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import make_project, running_state
from damp.errors import NotInitializedError, TransferFailedError, ValidationError
from damp.models.project import (
    BundledService,
    CreateProjectInput,
    LaravelOptions,
    ProjectType,
    UpdateProjectInput,
)
from damp.services.hosts_manager import HostsManager
from damp.services.laravel_installer import LaravelInstaller
from damp.services.project_manager import ProjectManager, parse_version, validate_php_version
from damp.services.project_templates import ProjectTemplates
from damp.services.volume_transfer import VolumeTransfer


@pytest.fixture
def volume_transfer():
    transfer = MagicMock(spec=VolumeTransfer)
    transfer.create_project_volume.return_value = True
    return transfer


@pytest.fixture
def laravel_installer():
    return MagicMock(spec=LaravelInstaller)


@pytest.fixture
def caddy_sync():
    sync = MagicMock()
    sync.sync_projects = AsyncMock()
    return sync


@pytest.fixture
def hosts(settings, hosts_file):
    return HostsManager(settings, hosts_path=hosts_file)


@pytest.fixture
def uninitialized_manager(
    settings, project_storage, mock_docker, volume_transfer, registry, hosts,
    laravel_installer, caddy_sync, event_bus, background,
):
    return ProjectManager(
        settings,
        project_storage,
        mock_docker,
        volume_transfer,
        ProjectTemplates(registry),
        hosts,
        registry,
        laravel_installer=laravel_installer,
        caddy_sync=caddy_sync,
        event_bus=event_bus,
        background=background,
    )


@pytest.fixture
async def manager(uninitialized_manager):
    await uninitialized_manager.initialize()
    return uninitialized_manager


@pytest.fixture
def sites(tmp_path):
    path = tmp_path / "sites"
    path.mkdir()
    return path


def make_laravel_app(folder):
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "composer.json").write_text(json.dumps({"require": {"laravel/framework": "^11.0"}}))
    (folder / "artisan").write_text("#!/usr/bin/env php")


@pytest.mark.unit
class TestPhpVersion:

    def test_parse_version(self):
        assert parse_version("8.2") == (8, 2, 0)
        assert parse_version("8.10.1") == (8, 10, 1)
        assert parse_version("8.10") > parse_version("8.2")

    def test_laravel_minimum(self):
        validate_php_version(ProjectType.LARAVEL, "8.2")
        validate_php_version(ProjectType.BASIC_PHP, "7.4")
        with pytest.raises(ValidationError, match="Laravel requires PHP 8.2 or higher. Selected version: 8.1"):
            validate_php_version(ProjectType.LARAVEL, "8.1")


@pytest.mark.unit
class TestCreateProject:

    async def test_create_basic_project(self, manager, sites, volume_transfer, hosts_file, project_storage):
        stages = []

        result = await manager.create_project(
            CreateProjectInput(name="My Site!!", path=str(sites)),
            on_progress=lambda p: stages.append(p.stage),
        )

        assert result.success, result.error
        project = result.data
        assert project["name"] == "my-site"
        assert project["volume_name"] == "proj_my-site"
        assert project["container_name"] == "my-site_devcontainer"
        assert project["domain"] == "my-site.local"
        assert project["path"] == str(sites / "my-site")
        assert project["files_generated"] and project["volume_copied"]

        assert (sites / "my-site" / ".devcontainer" / "devcontainer.json").is_file()
        assert (sites / "my-site" / "public" / "index.php").is_file()
        volume_transfer.create_project_volume.assert_awaited_once_with("proj_my-site", project["id"])
        volume_transfer.copy_to_volume.assert_awaited_once()
        assert "my-site.local" in hosts_file.read_text()
        assert await project_storage.get_project(project["id"]) is not None
        assert stages == [
            "creating-volume",
            "creating-devcontainer",
            "copying-files",
            "updating-hosts",
            "saving-project",
            "complete",
        ]
        assert not manager.is_pending_project(project["id"])

    async def test_create_schedules_proxy_sync(self, manager, sites, caddy_sync, background):
        await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))
        await background.drain()

        caddy_sync.sync_projects.assert_awaited_once()

    async def test_pending_during_creation(self, manager, sites, volume_transfer):
        seen = []

        async def copy(path, volume, project_id, on_progress=None):
            seen.append(manager.is_pending_project(project_id))

        volume_transfer.copy_to_volume.side_effect = copy

        await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        assert seen == [True]

    async def test_bundled_services_get_container_names_and_subdomains(self, manager, sites, hosts_file):
        result = await manager.create_project(CreateProjectInput(
            name="shop",
            path=str(sites),
            bundled_services=[BundledService(service_id="mysql"), BundledService(service_id="mailpit")],
        ))

        names = [s["container_name"] for s in result.data["bundled_services"]]
        assert names == ["shop-mysql", "shop-mailpit"]
        assert "mailpit.shop.local" in hosts_file.read_text()
        assert (sites / "shop" / ".env.damp").is_file()

    async def test_missing_name(self, manager, sites, volume_transfer):
        result = await manager.create_project(CreateProjectInput(name="!!!", path=str(sites)))

        assert not result.success
        assert result.error == "Project name is required"
        volume_transfer.create_project_volume.assert_not_called()

    async def test_no_folder_selected(self, manager):
        result = await manager.create_project(CreateProjectInput(name="shop"))

        assert not result.success
        assert result.error == "No folder selected"

    async def test_folder_selector_supplies_path(self, manager, sites):
        selector = MagicMock()
        selector.select_folder = AsyncMock(return_value=str(sites))
        manager.folder_selector = selector

        result = await manager.create_project(CreateProjectInput(name="shop"))

        assert result.success
        assert result.data["path"] == str(sites / "shop")

    async def test_duplicate_name(self, manager, sites, project_storage, volume_transfer):
        await project_storage.set_project(make_project(name="shop"))

        result = await manager.create_project(CreateProjectInput(name="Shop", path=str(sites)))

        assert not result.success
        assert "already exists" in result.error
        assert not (sites / "shop").exists()
        volume_transfer.create_project_volume.assert_not_called()

    async def test_laravel_requires_php_82(self, manager, sites, volume_transfer):
        result = await manager.create_project(
            CreateProjectInput(name="app", path=str(sites), type=ProjectType.LARAVEL, php_version="8.1")
        )

        assert not result.success
        assert result.error == "Laravel requires PHP 8.2 or higher. Selected version: 8.1"
        assert not (sites / "app").exists()
        volume_transfer.create_project_volume.assert_not_called()

    async def test_laravel_is_scaffolded(self, manager, sites, laravel_installer):
        options = LaravelOptions(starter_kit="vue")

        result = await manager.create_project(CreateProjectInput(
            name="app", path=str(sites), type=ProjectType.LARAVEL, laravel_options=options
        ))

        assert result.success
        laravel_installer.install.assert_awaited_once_with("proj_app", "app", result.data["id"], options)
        assert not (sites / "app" / "public" / "index.php").exists()

    async def test_scaffolding_failure_rolls_back(self, manager, sites, volume_transfer, laravel_installer, project_storage):
        laravel_installer.install.side_effect = TransferFailedError(1, "composer: error", "laravel-install")

        result = await manager.create_project(CreateProjectInput(
            name="app", path=str(sites), type=ProjectType.LARAVEL, laravel_options=LaravelOptions()
        ))

        assert not result.success
        volume_transfer.remove_volume.assert_awaited_once_with("proj_app")
        volume_transfer.copy_to_volume.assert_not_called()
        assert not (sites / "app").exists()
        assert await project_storage.get_projects() == []

    async def test_file_generation_failure_rolls_back(self, manager, sites, volume_transfer, project_storage):
        manager.templates = MagicMock(spec=ProjectTemplates)
        manager.templates.write_project_files.side_effect = OSError("disk full")

        result = await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        assert not result.success
        assert result.error == "disk full"
        volume_transfer.remove_volume.assert_awaited_once_with("proj_shop")
        assert not (sites / "shop").exists()
        assert await project_storage.get_projects() == []

    async def test_copy_failure_rolls_back(self, manager, sites, volume_transfer):
        volume_transfer.copy_to_volume.side_effect = TransferFailedError(1, "tar: error", "Copy to volume")

        result = await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        assert not result.success
        assert result.error.startswith("Copy to volume failed with exit code 1")
        volume_transfer.remove_volume.assert_awaited_once_with("proj_shop")
        assert not (sites / "shop").exists()

    async def test_existing_volume_is_not_removed_on_rollback(self, manager, sites, volume_transfer):
        volume_transfer.create_project_volume.return_value = False
        volume_transfer.copy_to_volume.side_effect = RuntimeError("boom")

        await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        volume_transfer.remove_volume.assert_not_called()

    async def test_persist_failure_removes_hosts_entries(self, manager, sites, project_storage, hosts_file):
        project_storage.set_project = AsyncMock(side_effect=OSError("read-only"))

        result = await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        assert not result.success
        assert "shop.local" not in hosts_file.read_text()

    async def test_hosts_failure_does_not_fail_creation(self, manager, sites, tmp_path):
        manager.hosts = HostsManager(manager.settings, hosts_path=tmp_path / "missing" / "hosts")

        result = await manager.create_project(CreateProjectInput(name="shop", path=str(sites)))

        assert result.success

    async def test_import_detects_laravel(self, manager, sites):
        folder = sites / "Legacy App"
        make_laravel_app(folder)

        result = await manager.create_project(
            CreateProjectInput(type=ProjectType.EXISTING, path=str(folder), php_version="8.3")
        )

        assert result.success
        assert result.data["name"] == "legacy-app"
        assert result.data["type"] == "laravel"
        assert result.data["import_method"] == "import"
        assert result.data["path"] == str(folder)

    async def test_import_failure_keeps_folder(self, manager, sites, volume_transfer):
        folder = sites / "legacy"
        folder.mkdir()
        volume_transfer.copy_to_volume.side_effect = RuntimeError("boom")

        await manager.create_project(CreateProjectInput(type=ProjectType.EXISTING, path=str(folder)))

        assert folder.is_dir()

    async def test_import_missing_folder(self, manager, sites):
        result = await manager.create_project(
            CreateProjectInput(type=ProjectType.EXISTING, path=str(sites / "nope"))
        )

        assert not result.success
        assert "does not exist" in result.error

    async def test_existing_devcontainer_requires_overwrite(self, manager, sites):
        folder = sites / "legacy"
        (folder / ".devcontainer").mkdir(parents=True)

        refused = await manager.create_project(CreateProjectInput(type=ProjectType.EXISTING, path=str(folder)))
        accepted = await manager.create_project(
            CreateProjectInput(type=ProjectType.EXISTING, path=str(folder), overwrite_existing=True)
        )

        assert not refused.success
        assert "overwrite_existing=true" in refused.error
        assert accepted.success


@pytest.mark.unit
class TestQueries:

    async def test_requires_initialize(self, uninitialized_manager):
        with pytest.raises(NotInitializedError):
            await uninitialized_manager.get_projects()

    async def test_get_missing_project(self, manager):
        result = await manager.get_project("nope")

        assert not result.success
        assert result.error == "Project nope not found"

    async def test_container_state(self, manager, project_storage, mock_docker, sample_project):
        await project_storage.set_project(sample_project)
        mock_docker.find_container_by_label.return_value = running_state("my-site_devcontainer")

        result = await manager.get_project_container_state(sample_project.id)

        assert result.data["running"] is True


@pytest.mark.unit
class TestUpdateAndDelete:

    async def test_domain_change_moves_hosts_entry(self, manager, project_storage, hosts, hosts_file, sample_project):
        await project_storage.set_project(sample_project)
        await hosts.add_entry("my-site.local")

        result = await manager.update_project(sample_project.id, UpdateProjectInput(domain="shop.local"))

        assert result.success
        assert result.data["domain"] == "shop.local"
        content = hosts_file.read_text()
        assert "shop.local" in content
        assert "my-site.local" not in content

    async def test_domain_change_moves_bundled_subdomains(
        self, manager, project_storage, hosts, hosts_file, bundled_project
    ):
        await project_storage.set_project(bundled_project)
        for domain in ("my-site.local", "mailpit.my-site.local", "phpmyadmin.my-site.local"):
            await hosts.add_entry(domain)

        result = await manager.update_project(bundled_project.id, UpdateProjectInput(domain="shop.local"))

        assert result.success
        content = hosts_file.read_text()
        assert "my-site.local" not in content
        for domain in ("shop.local", "mailpit.shop.local", "phpmyadmin.shop.local"):
            assert f"\t{domain}\t" in content

        await manager.delete_project(bundled_project.id)
        assert "shop.local" not in hosts_file.read_text()

    def test_domain_with_newline_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            UpdateProjectInput(domain="x.local\n6.6.6.6 bank.example.com")

    @pytest.mark.parametrize("domain", ["x.local\n", "a b.local", "shop.local;touch", "-bad.local", "Shop.local"])
    def test_invalid_domains_are_rejected(self, domain):
        with pytest.raises(PydanticValidationError):
            UpdateProjectInput(domain=domain)

    def test_invalid_extension_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            UpdateProjectInput(php_extensions=["gd && curl evil"])

    async def test_regenerate_files(self, manager, project_storage, tmp_path):
        project = make_project(path=str(tmp_path))
        await project_storage.set_project(project)

        result = await manager.update_project(
            project.id, UpdateProjectInput(php_version="8.4", regenerate_files=True)
        )

        assert result.success
        assert result.data["files_generated"] is True
        assert "ARG PHP_VERSION=8.4" in (tmp_path / "Dockerfile").read_text()

    async def test_delete_keeps_volume_by_default(self, manager, project_storage, volume_transfer, sample_project):
        await project_storage.set_project(sample_project)

        result = await manager.delete_project(sample_project.id)

        assert result.success
        assert result.data == {"message": "Project my-site deleted"}
        volume_transfer.remove_volume.assert_not_called()
        assert await project_storage.get_project(sample_project.id) is None

    async def test_delete_with_volume_and_folder(self, manager, project_storage, volume_transfer, tmp_path):
        folder = tmp_path / "my-site"
        folder.mkdir()
        project = make_project(path=str(folder))
        await project_storage.set_project(project)

        await manager.delete_project(project.id, remove_volume=True, remove_folder=True)

        volume_transfer.remove_volume.assert_awaited_once_with("proj_my-site")
        assert not folder.exists()

    async def test_delete_missing(self, manager):
        result = await manager.delete_project("nope")
        assert not result.success
