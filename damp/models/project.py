"""
Project Models

A Project is a local PHP site bound to one devcontainer, one Docker volume and
one .local domain. Records are owned by ProjectManager and persisted through
ProjectStorage.
"""

import re
import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
DOMAIN_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")
EXTENSION_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")

PHP_VERSIONS = ("7.4", "8.1", "8.2", "8.3", "8.4")
PHP_VARIANTS = ("fpm-apache", "fpm-nginx", "frankenphp", "fpm")
NODE_VERSIONS = ("none", "lts", "latest", "20", "22", "24", "25")


def now_ms() -> int:
    return int(time.time() * 1000)


def check_domain(v: str) -> str:
    if len(v) > 253 or not DOMAIN_PATTERN.fullmatch(v):
        raise ValueError(f"Invalid domain '{v}'")
    return v


def check_extensions(v: List[str]) -> List[str]:
    for extension in v:
        if not EXTENSION_PATTERN.fullmatch(extension):
            raise ValueError(f"Invalid PHP extension name '{extension}'")
    return v


# =============================================================================
# Enums
# =============================================================================

class ProjectType(str, Enum):
    BASIC_PHP = "basic-php"
    LARAVEL = "laravel"
    EXISTING = "existing"


class ImportMethod(str, Enum):
    CREATE = "create"
    IMPORT = "import"


# =============================================================================
# Components
# =============================================================================

class LaravelOptions(BaseModel):
    """Options for scaffolding a fresh Laravel application into the volume."""
    starter_kit: str = Field("none", description="none, react, vue, livewire or custom")
    custom_starter_kit_url: Optional[str] = None
    authentication: str = Field("laravel", description="laravel, workos or none")
    use_volt: bool = False
    testing_framework: str = Field("pest", description="pest or phpunit")
    install_boost: bool = False

    @field_validator("starter_kit")
    @classmethod
    def validate_starter_kit(cls, v: str) -> str:
        if v not in ("none", "react", "vue", "livewire", "custom"):
            raise ValueError(f"Unknown starter kit: {v}")
        return v

    @field_validator("testing_framework")
    @classmethod
    def validate_testing_framework(cls, v: str) -> str:
        if v not in ("pest", "phpunit"):
            raise ValueError(f"Unknown testing framework: {v}")
        return v


class BundledServiceCredentials(BaseModel):
    """Custom credentials for a bundled database service."""
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    root_password: Optional[str] = None


class BundledService(BaseModel):
    """A service embedded in the project's own compose stack."""
    service_id: str
    custom_credentials: Optional[BundledServiceCredentials] = None
    container_name: Optional[str] = Field(None, description="Resolved <project>-<service> name")


# =============================================================================
# Project
# =============================================================================

class Project(BaseModel):
    """Persisted project record."""
    id: str = Field(..., description="UUID")
    name: str = Field(..., description="Canonical slug, derived once at creation")
    type: ProjectType
    import_method: ImportMethod = ImportMethod.CREATE
    path: str = Field(..., description="Absolute path to the project folder")
    volume_name: str
    container_name: str
    domain: str
    php_version: str = "8.3"
    php_variant: str = "fpm-apache"
    node_version: str = "none"
    php_extensions: List[str] = Field(default_factory=list)
    enable_claude_ai: bool = False
    forwarded_port: int = 8443
    network_name: str = "damp-network"
    post_start_command: str = ""
    post_create_command: Optional[str] = None
    laravel_options: Optional[LaravelOptions] = None
    bundled_services: List[BundledService] = Field(default_factory=list)
    files_generated: bool = False
    volume_copied: bool = False
    order: int = 0
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not SLUG_PATTERN.fullmatch(v):
            raise ValueError(f"Invalid project name '{v}'")
        return v

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        return check_domain(v)

    @field_validator("php_extensions")
    @classmethod
    def validate_php_extensions(cls, v: List[str]) -> List[str]:
        return check_extensions(v)


# =============================================================================
# Inputs
# =============================================================================

class CreateProjectInput(BaseModel):
    """Input for ProjectManager.create_project."""
    name: str = Field("", description="Display name; sanitized into the project slug")
    type: ProjectType = ProjectType.BASIC_PHP
    path: Optional[str] = Field(None, description="Parent folder (create) or project folder (import)")
    php_version: str = "8.3"
    php_variant: str = "fpm-apache"
    node_version: str = "none"
    php_extensions: List[str] = Field(default_factory=list)
    enable_claude_ai: bool = False
    overwrite_existing: bool = False
    laravel_options: Optional[LaravelOptions] = None
    bundled_services: List[BundledService] = Field(default_factory=list)

    @field_validator("php_version")
    @classmethod
    def validate_php_version(cls, v: str) -> str:
        if v not in PHP_VERSIONS:
            raise ValueError(f"Unsupported PHP version: {v}")
        return v

    @field_validator("php_variant")
    @classmethod
    def validate_php_variant(cls, v: str) -> str:
        if v not in PHP_VARIANTS:
            raise ValueError(f"Unsupported PHP variant: {v}")
        return v

    @field_validator("node_version")
    @classmethod
    def validate_node_version(cls, v: str) -> str:
        if v not in NODE_VERSIONS:
            raise ValueError(f"Unsupported Node version: {v}")
        return v

    @field_validator("php_extensions")
    @classmethod
    def validate_php_extensions(cls, v: List[str]) -> List[str]:
        return check_extensions(v)

    @property
    def import_method(self) -> ImportMethod:
        return ImportMethod.IMPORT if self.type == ProjectType.EXISTING else ImportMethod.CREATE


class UpdateProjectInput(BaseModel):
    """Partial update. The project name is never re-derived."""
    domain: Optional[str] = None
    php_version: Optional[str] = None
    php_variant: Optional[str] = None
    node_version: Optional[str] = None
    php_extensions: Optional[List[str]] = None
    enable_claude_ai: Optional[bool] = None
    forwarded_port: Optional[int] = None
    bundled_services: Optional[List[BundledService]] = None
    regenerate_files: bool = False

    @field_validator("php_version")
    @classmethod
    def validate_php_version(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PHP_VERSIONS:
            raise ValueError(f"Unsupported PHP version: {v}")
        return v

    @field_validator("php_variant")
    @classmethod
    def validate_php_variant(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PHP_VARIANTS:
            raise ValueError(f"Unsupported PHP variant: {v}")
        return v

    @field_validator("node_version")
    @classmethod
    def validate_node_version(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in NODE_VERSIONS:
            raise ValueError(f"Unsupported Node version: {v}")
        return v

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: Optional[str]) -> Optional[str]:
        return check_domain(v) if v is not None else v

    @field_validator("php_extensions")
    @classmethod
    def validate_php_extensions(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return check_extensions(v) if v is not None else v

    def changes(self) -> Dict[str, object]:
        """Fields explicitly set by the caller, excluding control flags."""
        return self.model_dump(exclude_unset=True, exclude={"regenerate_files"})


class ProjectProgress(BaseModel):
    """Progress event emitted while a project is being created."""
    message: str
    current_step: int
    total_steps: int = 10
    percentage: int
    stage: Optional[str] = None
