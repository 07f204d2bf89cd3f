"""Unit tests for generated project files."""

import json

import pytest
import yaml

from conftest import make_project
from damp.errors import ValidationError
from damp.models.project import BundledService, BundledServiceCredentials, ProjectType
from damp.services.project_templates import CLAUDE_CODE_FEATURE, ProjectTemplates, render


@pytest.fixture
def templates(registry):
    return ProjectTemplates(registry)


def parse_compose(content: str) -> dict:
    return yaml.safe_load(content)


@pytest.mark.unit
class TestRender:

    def test_replaces_placeholders(self):
        assert render("PHP {{V}} / {{V}} {{OTHER}}", {"V": "8.3"}) == "PHP 8.3 / 8.3 {{OTHER}}"


@pytest.mark.unit
class TestDevcontainerJson:

    def test_build_mode_without_bundled_services(self, templates, sample_project):
        config = json.loads(templates.devcontainer_json(templates.build_context(sample_project)))

        assert config["name"] == "my-site"
        assert config["workspaceMount"] == "source=proj_my-site,target=/var/www/html,type=volume"
        assert config["build"]["target"] == "development"
        assert "--network=damp-network" in config["runArgs"]
        assert f"--label=com.damp.project-id={sample_project.id}" in config["runArgs"]
        assert config["forwardPorts"] == [8443]
        assert config["features"] == {}
        assert "dockerComposeFile" not in config

    def test_compose_mode_with_bundled_services(self, templates, bundled_project):
        config = json.loads(templates.devcontainer_json(templates.build_context(bundled_project)))

        assert config["dockerComposeFile"] == "docker-compose.yml"
        assert config["service"] == "app"
        assert "build" not in config
        assert "runArgs" not in config
        assert "workspaceMount" not in config

    def test_claude_feature(self, templates):
        project = make_project(enable_claude_ai=True)
        config = json.loads(templates.devcontainer_json(templates.build_context(project)))
        assert CLAUDE_CODE_FEATURE in config["features"]


@pytest.mark.unit
class TestLaunchJson:

    def test_basic_php_points_at_root_index(self, templates, sample_project):
        config = json.loads(templates.launch_json(templates.build_context(sample_project)))
        assert config["configurations"][1]["program"] == "${workspaceFolder}/index.php"

    def test_laravel_points_at_public_index(self, templates):
        project = make_project(type=ProjectType.LARAVEL)
        config = json.loads(templates.launch_json(templates.build_context(project)))
        assert config["configurations"][1]["program"] == "${workspaceFolder}/public/index.php"


@pytest.mark.unit
class TestDockerfile:

    def test_without_node(self, templates, sample_project):
        content = templates.dockerfile(templates.build_context(sample_project))

        assert "ARG PHP_VERSION=8.3" in content
        assert "ARG PHP_VARIANT=fpm-apache" in content
        assert "--service apache" in content
        assert "nodesource" not in content
        assert "RUN install-php-extensions xdebug \\" in content
        assert "{{" not in content

    def test_node_lts_and_extensions(self, templates):
        project = make_project(node_version="lts", php_extensions=["redis", "gd"], php_variant="fpm-nginx")
        content = templates.dockerfile(templates.build_context(project))

        assert "setup_24.x" in content
        assert "and Node.js 24" in content
        assert "install-php-extensions xdebug redis gd" in content
        assert "--service nginx" in content


@pytest.mark.unit
class TestComposeFiles:

    def test_root_compose_profiles(self, templates, sample_project):
        content = templates.root_compose(templates.build_context(sample_project))
        compose = parse_compose(content)

        assert content.startswith("# Docker Compose Configuration")
        assert compose["services"]["app-dev"]["profiles"] == ["development"]
        assert compose["services"]["app-prod"]["build"]["target"] == "production"
        assert compose["networks"] == {"damp-network": {"external": True}}

    def test_bundled_compose(self, templates, bundled_project):
        compose = parse_compose(templates.bundled_compose(templates.build_context(bundled_project)))
        services = compose["services"]

        assert set(services) == {"app", "mysql", "mailpit", "phpmyadmin"}
        assert services["app"]["depends_on"] == {"mysql": {"condition": "service_healthy"}}
        assert services["mysql"]["container_name"] == "my-site-mysql"
        assert services["mysql"]["volumes"] == ["my-site_mysql_data:/var/lib/mysql"]
        assert services["mysql"]["healthcheck"]["timeout"] == "5s"
        assert "PMA_HOST=mysql" in services["phpmyadmin"]["environment"]
        assert services["phpmyadmin"]["depends_on"] == {"mysql": {"condition": "service_healthy"}}
        assert compose["volumes"]["proj_my-site"] == {"external": True}
        assert compose["volumes"]["my-site_mysql_data"] == {}

    def test_custom_credentials_override_defaults(self, templates):
        project = make_project(bundled_services=[
            BundledService(
                service_id="mysql",
                custom_credentials=BundledServiceCredentials(database="shop", password="s3cret"),
            )
        ])
        compose = parse_compose(templates.bundled_compose(templates.build_context(project)))
        env = compose["services"]["mysql"]["environment"]

        assert "MYSQL_DATABASE=shop" in env
        assert "MYSQL_PASSWORD=s3cret" in env
        assert "MYSQL_DATABASE=development" not in env
        assert "MYSQL_USER=developer" in env


@pytest.mark.unit
class TestEnvDamp:

    def test_bundled_connection_settings(self, templates, bundled_project):
        content = templates.env_damp(bundled_project)

        assert "# Domain: https://my-site.local" in content
        assert "DB_CONNECTION=mysql" in content
        assert "DB_HOST=my-site-mysql" in content
        assert "MAIL_HOST=my-site-mailpit" in content

    def test_redis_cache(self, templates):
        project = make_project(bundled_services=[BundledService(service_id="redis")])
        content = templates.env_damp(project)

        assert "CACHE_STORE=redis" in content
        assert "REDIS_HOST=my-site-redis" in content
        assert "DB_CONNECTION" not in content


@pytest.mark.unit
class TestWriteProjectFiles:

    def test_writes_files_and_index(self, templates, tmp_path):
        project = make_project(path=str(tmp_path))

        written = templates.write_project_files(project)

        assert ".devcontainer/devcontainer.json" in written
        assert "public/index.php" in written
        assert ".env.damp" not in written
        assert (tmp_path / "Dockerfile").is_file()
        assert "<title>my-site - PHP Development Site</title>" in (tmp_path / "public" / "index.php").read_text()

    def test_bundled_files(self, templates, tmp_path, bundled_project):
        project = bundled_project.model_copy(update={"path": str(tmp_path)})

        written = templates.write_project_files(project)

        assert ".devcontainer/docker-compose.yml" in written
        assert (tmp_path / ".env.damp").is_file()

    def test_existing_index_is_kept(self, templates, tmp_path):
        (tmp_path / "public").mkdir()
        (tmp_path / "public" / "index.php").write_text("<?php echo 'mine';")

        written = templates.write_project_files(make_project(path=str(tmp_path)))

        assert "public/index.php" not in written
        assert (tmp_path / "public" / "index.php").read_text() == "<?php echo 'mine';"

    def test_refuses_existing_devcontainer(self, templates, tmp_path):
        (tmp_path / ".devcontainer").mkdir()

        with pytest.raises(ValidationError):
            templates.write_project_files(make_project(path=str(tmp_path)))

    def test_overwrite_replaces_devcontainer(self, templates, tmp_path):
        (tmp_path / ".devcontainer").mkdir()
        (tmp_path / ".devcontainer" / "devcontainer.json").write_text("{}")

        templates.write_project_files(make_project(path=str(tmp_path)), overwrite=True)

        config = json.loads((tmp_path / ".devcontainer" / "devcontainer.json").read_text())
        assert config["name"] == "my-site"

    def test_laravel_skips_index(self, templates, tmp_path):
        written = templates.write_project_files(make_project(path=str(tmp_path), type=ProjectType.LARAVEL))
        assert "public/index.php" not in written
