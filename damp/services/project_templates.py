"""
Project Template Generator

Generates the devcontainer and build files written into a project folder:

  .devcontainer/devcontainer.json
  .devcontainer/docker-compose.yml   (only when services are bundled)
  .vscode/launch.json                (Xdebug)
  Dockerfile                         (serversideup/php base, dev + prod stages)
  .dockerignore
  docker-compose.yml                 (app-dev / app-prod profiles)
  .env.damp                          (connection settings for bundled services)
  public/index.php                   (welcome page for new basic PHP projects)

JSON files are built as dicts and serialized with json.dumps; compose files
are built as dicts and serialized with yaml.dump; the Dockerfile and the
welcome page are text templates.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from damp.errors import ValidationError
from damp.models.project import BundledService, Project, ProjectType
from damp.models.service import ServiceDefinition, ServiceType
from damp.services.service_registry import ServiceRegistry
from damp.utils import labels as label_keys
from damp.utils.docker_helpers import merge_env_vars
from damp.utils.logging import get_logger
from damp.utils.naming import bundled_container_name

logger = get_logger(__name__, prefix="Templates")

NODE_VERSION_MAP = {
    "lts": "24",
    "latest": "25",
    "20": "20",
    "22": "22",
    "24": "24",
    "25": "25",
}

CLAUDE_CODE_FEATURE = "ghcr.io/anthropics/devcontainer-features/claude-code:1.0"

POST_CREATE_COMMAND = (
    "[ -f composer.json ] && composer install || true; "
    "[ -f package.json ] && npm install && npm run build || true"
)
POST_START_COMMAND = ""

VSCODE_EXTENSIONS = [
    "xdebug.php-debug",
    "bmewburn.vscode-intelephense-client",
    "streetsidesoftware.code-spell-checker",
]

# Custom credential fields -> environment variable, per bundled database
CREDENTIAL_ENV_KEYS: Dict[str, Dict[str, str]] = {
    "mysql": {
        "root_password": "MYSQL_ROOT_PASSWORD",
        "database": "MYSQL_DATABASE",
        "username": "MYSQL_USER",
        "password": "MYSQL_PASSWORD",
    },
    "mariadb": {
        "root_password": "MARIADB_ROOT_PASSWORD",
        "database": "MARIADB_DATABASE",
        "username": "MARIADB_USER",
        "password": "MARIADB_PASSWORD",
    },
    "postgresql": {
        "password": "POSTGRES_PASSWORD",
        "database": "POSTGRES_DB",
        "username": "POSTGRES_USER",
    },
    "mongodb": {
        "username": "MONGO_INITDB_ROOT_USERNAME",
        "password": "MONGO_INITDB_ROOT_PASSWORD",
    },
}

# Admin tool -> env var naming the database host it connects to
ADMIN_HOST_ENV = {
    "phpmyadmin": "PMA_HOST",
    "adminer": "ADMINER_DEFAULT_SERVER",
}


# =============================================================================
# Context
# =============================================================================

@dataclass
class TemplateContext:
    """Values substituted into every generated file."""
    project_id: str
    project_name: str
    volume_name: str
    php_version: str
    php_variant: str
    node_version: str
    php_extensions: List[str]
    network_name: str
    forwarded_port: int
    enable_claude_ai: bool
    post_start_command: str
    post_create_command: str
    launch_index_path: str
    bundled_services: List[BundledService] = field(default_factory=list)

    @property
    def node_version_mapped(self) -> str:
        if not self.node_version or self.node_version == "none":
            return ""
        return NODE_VERSION_MAP.get(self.node_version, self.node_version)

    @property
    def service_type(self) -> str:
        """serversideup service name for set-file-permissions."""
        if "apache" in self.php_variant:
            return "apache"
        if "nginx" in self.php_variant:
            return "nginx"
        if "frankenphp" in self.php_variant:
            return "frankenphp"
        return "fpm"

    @property
    def labels(self) -> Dict[str, str]:
        return label_keys.project_container_labels(self.project_id, self.project_name)


@dataclass
class GeneratedFiles:
    """Relative path -> file content."""
    files: Dict[str, str]

    def __getitem__(self, relative_path: str) -> str:
        return self.files[relative_path]

    def __contains__(self, relative_path: str) -> bool:
        return relative_path in self.files


def render(template: str, values: Dict[str, str]) -> str:
    """Replace {{KEY}} placeholders."""
    for key, value in values.items():
        template = template.replace("{{" + key + "}}", value)
    return template


# =============================================================================
# Text templates
# =============================================================================

DOCKERFILE_TEMPLATE = """# syntax=docker/dockerfile:1.4

############################################
# Build Arguments
############################################
ARG PHP_VERSION={{PHP_VERSION}}
ARG PHP_VARIANT={{PHP_VARIANT}}
ARG USER_ID=1000
ARG GROUP_ID=1000

############################################
# Base Image
############################################
FROM serversideup/php:${PHP_VERSION}-${PHP_VARIANT} AS base

############################################
# Development Image
############################################
FROM base AS development

USER root

# Match www-data UID/GID to the host user
ARG USER_ID
ARG GROUP_ID
RUN docker-php-serversideup-set-id www-data ${USER_ID}:${GROUP_ID} && \\
    docker-php-serversideup-set-file-permissions --owner ${USER_ID}:${GROUP_ID} --service {{SERVICE_TYPE}}

# Install development tools{{NODE_INSTALL_COMMENT}}
RUN --mount=type=cache,target=/var/cache/apt,sharing=locked \\
    --mount=type=cache,target=/var/lib/apt,sharing=locked \\
    {{NODE_CACHE_MOUNT}}{{NODE_SETUP_COMMANDS}} \\
    && apt-get clean \\
    && rm -rf /var/lib/apt/lists/*

# Install Xdebug and additional PHP extensions
RUN install-php-extensions xdebug{{PHP_EXTENSIONS}} \\
    && cat > /usr/local/etc/php/conf.d/xdebug.ini <<'EOF'
xdebug.mode = develop,debug,trace,coverage,profile
xdebug.start_with_request = trigger
xdebug.client_port = 9003
EOF

# Configure www-data user for development
RUN usermod -s /usr/bin/zsh www-data && \\
    mkdir -p /var/www && \\
    chown www-data:www-data /var/www && \\
    echo "www-data ALL=(root) NOPASSWD:ALL" > /etc/sudoers.d/www-data && \\
    chmod 0440 /etc/sudoers.d/www-data

# Install Oh My Zsh for www-data
USER www-data
RUN sh -c "$(curl -fsSL https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh)" "" --unattended \\
    && git clone https://github.com/zsh-users/zsh-autosuggestions ${ZSH_CUSTOM:-~/.oh-my-zsh/custom}/plugins/zsh-autosuggestions \\
    && git clone https://github.com/zsh-users/zsh-syntax-highlighting ${ZSH_CUSTOM:-~/.oh-my-zsh/custom}/plugins/zsh-syntax-highlighting \\
    && sed -i 's/plugins=(git)/plugins=(git node npm composer sudo command-not-found zsh-autosuggestions zsh-syntax-highlighting)/' ~/.zshrc

############################################
# Production Image
############################################
FROM base AS production

COPY --chown=www-data:www-data . /var/www/html
"""

NODE_SETUP_COMMANDS = """curl -fsSL https://deb.nodesource.com/setup_{{NODE_VERSION}}.x | bash - \\
    && apt-get install -y --no-install-recommends \\
        git \\
        zsh \\
        sudo \\
        nodejs \\
    && npm install -g npm@latest"""

BASE_SETUP_COMMANDS = """apt-get update \\
    && apt-get install -y --no-install-recommends \\
        git \\
        sudo \\
        zsh"""

DOCKERIGNORE = """# Development files
.devcontainer/
.vscode/
.idea/
.git/
.gitignore
.editorconfig

# Environment files
.env.*
!.env.example

# Build artifacts
*.log
npm-debug.log*
yarn-debug.log*
yarn-error.log*
.npm
.cache/

# Testing
coverage/
.phpunit.result.cache
tests/_output/

# OS files
.DS_Store
Thumbs.db

# Editors
*.swp
*.swo
*~

# Temporary files
tmp/
temp/
*.tmp
"""

ROOT_COMPOSE_HEADER = """# Docker Compose Configuration
#
# Usage:
#   Development:  docker compose --profile development up app-dev
#   Production:   docker compose --profile production up app-prod
#
# Environment variables can be customized in .env:
#   DEV_PORT, DEV_SSL_PORT, PROD_PORT, PROD_SSL_PORT, APP_ENV, APP_DEBUG, LOG_LEVEL

"""

INDEX_PHP_TEMPLATE = """<?php
/**
 * Welcome to {{PROJECT_NAME}}
 * PHP Version: {{PHP_VERSION}}
 */

$phpVersion = phpversion();
$extensions = get_loaded_extensions();

?>
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{PROJECT_NAME}} - PHP Development Site</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; background: #f5f5f5; }
        .container { background: white; padding: 30px; border-radius: 8px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
        .header { text-align: center; color: #333; margin-bottom: 30px; }
        .info { background: #e8f4fd; padding: 15px; border-radius: 5px; margin: 20px 0; }
        .extensions { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 10px; margin-top: 20px; }
        .extension { background: #f8f9fa; padding: 8px 12px; border-radius: 4px; font-size: 14px; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{{PROJECT_NAME}}</h1>
            <p>Your PHP development environment is ready!</p>
        </div>

        <div class="info">
            <h3>Environment Information</h3>
            <p><strong>PHP Version:</strong> <?= $phpVersion ?></p>
            <p><strong>Site Name:</strong> {{PROJECT_NAME}}</p>
            <p><strong>Server:</strong> <?= $_SERVER['SERVER_SOFTWARE'] ?? 'Built-in PHP Server' ?></p>
            <p><strong>Document Root:</strong> <?= $_SERVER['DOCUMENT_ROOT'] ?? __DIR__ ?></p>
        </div>

        <div class="info">
            <h3>Available PHP Extensions</h3>
            <div class="extensions">
                <?php foreach ($extensions as $extension): ?>
                    <div class="extension"><?= htmlspecialchars($extension) ?></div>
                <?php endforeach; ?>
            </div>
        </div>

        <div class="info">
            <h3>Next Steps</h3>
            <ul>
                <li>Open this folder in VS Code</li>
                <li>Use "Dev Containers: Reopen in Container"</li>
                <li>Start developing your PHP application!</li>
            </ul>
        </div>
    </div>
</body>
</html>
"""


def _ns_to_seconds(value: int) -> str:
    return f"{int(value // 1_000_000_000)}s"


def _dump_yaml(data: Dict[str, Any]) -> str:
    return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


# =============================================================================
# Generator
# =============================================================================

class ProjectTemplates:
    """Renders and writes the files that make a folder a DAMP project."""

    def __init__(self, registry: ServiceRegistry):
        self.registry = registry

    def build_context(self, project: Project) -> TemplateContext:
        return TemplateContext(
            project_id=project.id,
            project_name=project.name,
            volume_name=project.volume_name,
            php_version=project.php_version,
            php_variant=project.php_variant,
            node_version=project.node_version,
            php_extensions=list(project.php_extensions),
            network_name=project.network_name,
            forwarded_port=project.forwarded_port,
            enable_claude_ai=project.enable_claude_ai,
            post_start_command=project.post_start_command,
            post_create_command=project.post_create_command or "",
            launch_index_path="public/" if project.type == ProjectType.LARAVEL else "",
            bundled_services=list(project.bundled_services),
        )

    def _bundled_definitions(self, context: TemplateContext) -> List[tuple]:
        """(bundled service, definition) pairs, skipping unknown ids."""
        pairs = []
        for bundled in context.bundled_services:
            definition = self.registry.get_service(bundled.service_id)
            if definition is None:
                logger.warning(f"Unknown bundled service '{bundled.service_id}' skipped")
                continue
            pairs.append((bundled, definition))
        return pairs

    # =========================================================================
    # devcontainer.json / launch.json
    # =========================================================================

    def devcontainer_json(self, context: TemplateContext) -> str:
        compose_mode = bool(context.bundled_services)
        config: Dict[str, Any] = {"name": context.project_name}

        if compose_mode:
            config["dockerComposeFile"] = "docker-compose.yml"
            config["service"] = "app"
        else:
            config["workspaceMount"] = f"source={context.volume_name},target=/var/www/html,type=volume"
        config["workspaceFolder"] = "/var/www/html"

        if not compose_mode:
            config["build"] = {
                "dockerfile": "../Dockerfile",
                "context": "..",
                "target": "development",
                "args": {
                    "USER_ID": "${localEnv:UID:1000}",
                    "GROUP_ID": "${localEnv:GID:1000}",
                },
            }

        config["remoteUser"] = "www-data"
        config["overrideCommand"] = False
        config["containerEnv"] = {"SSL_MODE": "full", "PHP_OPCACHE_ENABLE": "0"}
        config["features"] = {CLAUDE_CODE_FEATURE: {}} if context.enable_claude_ai else {}
        config["customizations"] = {
            "vscode": {
                "settings": {"php.validate.executablePath": "/usr/local/bin/php"},
                "extensions": list(VSCODE_EXTENSIONS),
            }
        }

        if not compose_mode:
            config["runArgs"] = [f"--network={context.network_name}"] + [
                f"--label={key}={value}" for key, value in context.labels.items()
            ]

        config["forwardPorts"] = [context.forwarded_port]
        config["postCreateCommand"] = context.post_create_command
        config["postStartCommand"] = context.post_start_command
        return json.dumps(config, indent=4) + "\n"

    def launch_json(self, context: TemplateContext) -> str:
        config = {
            "version": "0.2.0",
            "configurations": [
                {
                    "name": "Listen for XDebug",
                    "type": "php",
                    "request": "launch",
                    "port": 9003,
                },
                {
                    "name": "Launch application",
                    "type": "php",
                    "request": "launch",
                    "program": f"${{workspaceFolder}}/{context.launch_index_path}index.php",
                    "cwd": "${workspaceFolder}",
                    "port": 9003,
                },
                {
                    "name": "Launch currently open script",
                    "type": "php",
                    "request": "launch",
                    "program": "${file}",
                    "cwd": "${fileDirname}",
                    "port": 9003,
                },
            ],
        }
        return json.dumps(config, indent=4) + "\n"

    # =========================================================================
    # Dockerfile
    # =========================================================================

    def dockerfile(self, context: TemplateContext) -> str:
        node = context.node_version_mapped
        if node:
            node_values = {
                "NODE_INSTALL_COMMENT": f" and Node.js {node}",
                "NODE_CACHE_MOUNT": "--mount=type=cache,target=/root/.npm,sharing=locked \\\n    ",
                "NODE_SETUP_COMMANDS": render(NODE_SETUP_COMMANDS, {"NODE_VERSION": node}),
            }
        else:
            node_values = {
                "NODE_INSTALL_COMMENT": "",
                "NODE_CACHE_MOUNT": "",
                "NODE_SETUP_COMMANDS": BASE_SETUP_COMMANDS,
            }

        extensions = " ".join(e for e in context.php_extensions if e.strip())
        return render(DOCKERFILE_TEMPLATE, {
            "PHP_VERSION": context.php_version,
            "PHP_VARIANT": context.php_variant,
            "SERVICE_TYPE": context.service_type,
            "PHP_EXTENSIONS": f" {extensions}" if extensions else "",
            **node_values,
        })

    # =========================================================================
    # Compose files
    # =========================================================================

    def root_compose(self, context: TemplateContext) -> str:
        """docker-compose.yml with app-dev and app-prod profiles."""
        build_args = {"PHP_VERSION": context.php_version, "PHP_VARIANT": context.php_variant}
        compose = {
            "services": {
                "app-dev": {
                    "build": {
                        "context": ".",
                        "dockerfile": "Dockerfile",
                        "target": "development",
                        "args": {**build_args, "USER_ID": "${UID:-1000}", "GROUP_ID": "${GID:-1000}"},
                    },
                    "restart": "unless-stopped",
                    "ports": ["${DEV_PORT:-80}:8080", "${DEV_SSL_PORT:-443}:8443"],
                    "networks": [context.network_name],
                    "environment": [
                        "APP_ENV=${APP_ENV:-local}",
                        "APP_DEBUG=${APP_DEBUG:-true}",
                        "SSL_MODE=${SSL_MODE:-full}",
                        "PHP_OPCACHE_ENABLE=0",
                        "PHP_DISPLAY_ERRORS=On",
                        "LOG_LEVEL=${LOG_LEVEL:-debug}",
                    ],
                    "volumes": [".:/var/www/html"],
                    "profiles": ["development"],
                },
                "app-prod": {
                    "build": {
                        "context": ".",
                        "dockerfile": "Dockerfile",
                        "target": "production",
                        "args": dict(build_args),
                    },
                    "restart": "unless-stopped",
                    "ports": ["${PROD_PORT:-80}:8080", "${PROD_SSL_PORT:-443}:8443"],
                    "networks": [context.network_name],
                    "environment": [
                        "APP_ENV=production",
                        "APP_DEBUG=false",
                        "SSL_MODE=${SSL_MODE:-full}",
                        "PHP_OPCACHE_ENABLE=1",
                        "PHP_DISPLAY_ERRORS=Off",
                        "LOG_LEVEL=${LOG_LEVEL:-warning}",
                    ],
                    "healthcheck": {
                        "test": ["CMD", "curl", "-f", "http://localhost:8080/healthcheck"],
                        "interval": "30s",
                        "timeout": "10s",
                        "retries": 3,
                        "start_period": "40s",
                    },
                    "profiles": ["production"],
                },
            },
            "networks": {context.network_name: {"external": True}},
        }
        return ROOT_COMPOSE_HEADER + _dump_yaml(compose)

    def bundled_compose(self, context: TemplateContext) -> str:
        """.devcontainer/docker-compose.yml: the app plus every bundled service."""
        pairs = self._bundled_definitions(context)
        labels = [f"{key}={value}" for key, value in context.labels.items()]

        app: Dict[str, Any] = {
            "build": {
                "context": "..",
                "dockerfile": "Dockerfile",
                "target": "development",
                "args": {
                    "PHP_VERSION": context.php_version,
                    "PHP_VARIANT": context.php_variant,
                    "USER_ID": "${UID:-1000}",
                    "GROUP_ID": "${GID:-1000}",
                },
            },
            "container_name": f"{context.project_name}-app",
            "restart": "unless-stopped",
            "volumes": [f"{context.volume_name}:/var/www/html"],
            "networks": [context.network_name],
            "environment": ["SSL_MODE=full", "PHP_OPCACHE_ENABLE=0", "PHP_DISPLAY_ERRORS=On"],
            "labels": labels,
        }

        databases = [
            definition for _, definition in pairs
            if definition.service_type == ServiceType.DATABASE and not definition.linked_database_service
        ]
        if databases:
            app["depends_on"] = {
                definition.name: {
                    "condition": "service_healthy" if definition.default_config.healthcheck else "service_started"
                }
                for definition in databases
            }

        services: Dict[str, Any] = {"app": app}
        volumes: Dict[str, Any] = {context.volume_name: {"external": True}}

        for bundled, definition in pairs:
            services[definition.name] = self._bundled_service(context, bundled, definition, pairs)
            if definition.default_config.data_volume:
                volumes[f"{context.project_name}_{definition.name}_data"] = {}

        compose = {
            "services": services,
            "volumes": volumes,
            "networks": {context.network_name: {"external": True}},
        }
        header = (
            "# Docker Compose Configuration with Bundled Services\n"
            f"# Project: {context.project_name}\n"
            "# Auto-generated by DAMP - Do not edit manually\n\n"
        )
        return header + _dump_yaml(compose)

    def _bundled_service(
        self,
        context: TemplateContext,
        bundled: BundledService,
        definition: ServiceDefinition,
        pairs: List[tuple],
    ) -> Dict[str, Any]:
        config = definition.default_config
        service: Dict[str, Any] = {
            "image": config.image,
            "container_name": bundled.container_name or bundled_container_name(context.project_name, definition.name),
            "restart": "unless-stopped",
            "networks": [context.network_name],
            "labels": [
                f"{label_keys.MANAGED}=true",
                f"{label_keys.TYPE}={label_keys.TYPE_BUNDLED_SERVICE}",
                f"{label_keys.PROJECT_ID}={context.project_id}",
                f"{label_keys.PROJECT_NAME}={context.project_name}",
                f"{label_keys.SERVICE_ID}={definition.id}",
            ],
        }

        environment = self.bundled_env_vars(bundled, definition, pairs)
        if environment:
            service["environment"] = environment

        if config.data_volume:
            mount_path = config.volume_bindings[0].split(":", 1)[1] if config.volume_bindings else "/data"
            service["volumes"] = [f"{context.project_name}_{definition.name}_data:{mount_path}"]

        if config.healthcheck:
            healthcheck: Dict[str, Any] = {
                "test": list(config.healthcheck.test),
                "retries": config.healthcheck.retries,
                "timeout": _ns_to_seconds(config.healthcheck.timeout),
            }
            if config.healthcheck.interval:
                healthcheck["interval"] = _ns_to_seconds(config.healthcheck.interval)
            if config.healthcheck.start_period:
                healthcheck["start_period"] = _ns_to_seconds(config.healthcheck.start_period)
            service["healthcheck"] = healthcheck

        linked = self._linked_database(definition, pairs)
        if linked is not None:
            service["depends_on"] = {linked.name: {"condition": "service_healthy"}}

        return service

    def bundled_env_vars(
        self,
        bundled: BundledService,
        definition: ServiceDefinition,
        pairs: List[tuple],
    ) -> List[str]:
        """Default environment with custom credentials and admin-tool hosts applied."""
        overrides: List[str] = []
        credentials = bundled.custom_credentials
        if credentials:
            for field_name, env_key in CREDENTIAL_ENV_KEYS.get(definition.id, {}).items():
                value = getattr(credentials, field_name)
                if value:
                    overrides.append(f"{env_key}={value}")

        host_key = ADMIN_HOST_ENV.get(definition.id)
        if host_key:
            linked = self._linked_database(definition, pairs)
            if linked is not None:
                overrides.append(f"{host_key}={linked.name}")

        return merge_env_vars(definition.default_config.environment_vars, overrides)

    def _linked_database(self, admin: ServiceDefinition, pairs: List[tuple]) -> Optional[ServiceDefinition]:
        """The bundled database an admin tool should connect to, if any."""
        if not admin.linked_database_service:
            return None
        bundled_ids = {definition.id: definition for _, definition in pairs}
        if admin.linked_database_service in bundled_ids:
            return bundled_ids[admin.linked_database_service]
        if admin.id == "phpmyadmin" and "mariadb" in bundled_ids:
            return bundled_ids["mariadb"]
        if admin.id == "adminer":
            for definition in bundled_ids.values():
                if definition.service_type == ServiceType.DATABASE and not definition.linked_database_service:
                    return definition
        return None

    # =========================================================================
    # .env.damp
    # =========================================================================

    def env_damp(self, project: Project) -> str:
        """Laravel-style connection settings for the bundled services."""
        lines = [
            "# DAMP Environment Configuration",
            "# Auto-generated by DAMP for bundled services",
            "# Copy the values you need to your .env file",
            "",
            f"# Project: {project.name}",
            f"# Domain: https://{project.domain}",
            "",
        ]

        # Databases keyed by name, everything else by service type
        by_key: Dict[str, tuple] = {}
        for bundled in project.bundled_services:
            definition = self.registry.get_service(bundled.service_id)
            if definition is None:
                continue
            key = definition.name if definition.service_type == ServiceType.DATABASE else definition.service_type.value
            by_key[key] = (bundled, definition)

        host = lambda definition: bundled_container_name(project.name, definition.name)  # noqa: E731

        mysql = by_key.get("mysql") or by_key.get("mariadb")
        if mysql:
            bundled, definition = mysql
            creds = bundled.custom_credentials
            lines += [
                f"# Database - {definition.display_name}",
                "DB_CONNECTION=mysql",
                f"DB_HOST={host(definition)}",
                "DB_PORT=3306",
                f"DB_DATABASE={(creds and creds.database) or 'development'}",
                f"DB_USERNAME={(creds and creds.username) or 'developer'}",
                f"DB_PASSWORD={(creds and creds.password) or 'developer'}",
                "",
            ]
        elif "postgresql" in by_key:
            bundled, definition = by_key["postgresql"]
            creds = bundled.custom_credentials
            lines += [
                "# Database - PostgreSQL",
                "DB_CONNECTION=pgsql",
                f"DB_HOST={host(definition)}",
                "DB_PORT=5432",
                f"DB_DATABASE={(creds and creds.database) or 'postgres'}",
                f"DB_USERNAME={(creds and creds.username) or 'postgres'}",
                f"DB_PASSWORD={(creds and creds.password) or 'postgres'}",
                "",
            ]
        elif "mongodb" in by_key:
            bundled, definition = by_key["mongodb"]
            creds = bundled.custom_credentials
            lines += [
                "# Database - MongoDB",
                "DB_CONNECTION=mongodb",
                f"DB_HOST={host(definition)}",
                "DB_PORT=27017",
                f"DB_USERNAME={(creds and creds.username) or 'root'}",
                f"DB_PASSWORD={(creds and creds.password) or 'root'}",
                "",
            ]

        if "cache" in by_key:
            _, definition = by_key["cache"]
            driver = "redis" if definition.name == "valkey" else definition.name
            lines += [
                f"# Cache - {definition.display_name}",
                f"CACHE_STORE={driver}",
                f"REDIS_HOST={host(definition)}",
                "REDIS_PASSWORD=null",
                "REDIS_PORT=6379",
                "",
                f"SESSION_DRIVER={driver}",
                f"QUEUE_CONNECTION={driver}",
                "",
            ]

        if "email" in by_key:
            _, definition = by_key["email"]
            lines += [
                "# Email - Mailpit",
                "MAIL_MAILER=smtp",
                f"MAIL_HOST={host(definition)}",
                "MAIL_PORT=1025",
                "MAIL_USERNAME=null",
                "MAIL_PASSWORD=null",
                "MAIL_ENCRYPTION=null",
                f'MAIL_FROM_ADDRESS="hello@{project.domain}"',
                'MAIL_FROM_NAME="${APP_NAME}"',
                "",
            ]

        if "search" in by_key:
            _, definition = by_key["search"]
            if definition.name == "meilisearch":
                lines += [
                    "# Search - Meilisearch",
                    "SCOUT_DRIVER=meilisearch",
                    f"MEILISEARCH_HOST=http://{host(definition)}:7700",
                    "MEILISEARCH_KEY=masterkey",
                    "",
                ]
            elif definition.name == "typesense":
                lines += [
                    "# Search - Typesense",
                    "SCOUT_DRIVER=typesense",
                    "TYPESENSE_API_KEY=xyz",
                    f"TYPESENSE_HOST={host(definition)}",
                    "TYPESENSE_PORT=8108",
                    "",
                ]

        if "queue" in by_key:
            _, definition = by_key["queue"]
            lines += [
                "# Queue - RabbitMQ",
                f"RABBITMQ_HOST={host(definition)}",
                "RABBITMQ_PORT=5672",
                "RABBITMQ_USER=rabbitmq",
                "RABBITMQ_PASSWORD=rabbitmq",
                "RABBITMQ_VHOST=/",
                "",
            ]

        return "\n".join(lines)

    # =========================================================================
    # Rendering and writing
    # =========================================================================

    def index_php(self, project: Project) -> str:
        return render(INDEX_PHP_TEMPLATE, {"PROJECT_NAME": project.name, "PHP_VERSION": project.php_version})

    def render_all(self, project: Project) -> GeneratedFiles:
        context = self.build_context(project)
        files = {
            ".devcontainer/devcontainer.json": self.devcontainer_json(context),
            ".vscode/launch.json": self.launch_json(context),
            "Dockerfile": self.dockerfile(context),
            ".dockerignore": DOCKERIGNORE,
            "docker-compose.yml": self.root_compose(context),
        }
        if project.bundled_services:
            files[".devcontainer/docker-compose.yml"] = self.bundled_compose(context)
            files[".env.damp"] = self.env_damp(project)
        return GeneratedFiles(files=files)

    def write_project_files(self, project: Project, overwrite: bool = False) -> List[str]:
        """
        Write all generated files into the project folder.

        Raises:
            ValidationError: .devcontainer already exists and overwrite is False

        Returns:
            Relative paths written
        """
        root = Path(project.path)
        if not overwrite and (root / ".devcontainer").exists():
            raise ValidationError("Devcontainer folder already exists. Set overwrite_existing to replace it.")

        generated = self.render_all(project)
        written = []
        for relative_path, content in generated.files.items():
            target = root / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            written.append(relative_path)

        if project.type == ProjectType.BASIC_PHP:
            index_path = root / "public" / "index.php"
            if not index_path.exists():
                index_path.parent.mkdir(parents=True, exist_ok=True)
                index_path.write_text(self.index_php(project), encoding="utf-8")
                written.append("public/index.php")
                logger.info(f"Created public/index.php for project {project.name}")

        logger.info(f"Created devcontainer files for project {project.name}")
        return written
