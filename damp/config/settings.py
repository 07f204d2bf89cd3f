"""
DAMP Settings Configuration
Loads configuration from environment variables (prefix DAMP_)
"""

import os
import platform
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


def _default_data_dir() -> str:
    if platform.system() == "Windows":
        base = os.environ.get("APPDATA", str(Path.home()))
        return str(Path(base) / "damp")
    return str(Path.home() / ".local" / "share" / "damp")


def _default_hosts_file() -> str:
    if platform.system() == "Windows":
        return r"C:\Windows\System32\drivers\etc\hosts"
    return "/etc/hosts"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8765
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"  # comma-separated

    # Storage
    DATA_DIR: str = _default_data_dir()
    PROJECTS_FILE: str = "projects-state.json"
    SERVICES_FILE: str = "services-state.json"
    USER_SERVICES_DIR: str = ""  # optional YAML overrides for service definitions

    # Hosts file
    HOSTS_FILE: str = _default_hosts_file()
    HOSTS_IP: str = "127.0.0.1"

    # Docker
    NETWORK_NAME: str = "damp-network"
    PROJECT_VOLUME_PREFIX: str = "proj_"
    PROJECT_CONTAINER_SUFFIX: str = "_devcontainer"
    PROJECT_DOMAIN_SUFFIX: str = ".local"
    FORWARDED_PORT: int = 8443
    CONTAINER_STOP_TIMEOUT: int = 10

    # Reverse proxy
    PROXY_SERVICE_ID: str = "caddy"
    PROXY_CONFIG_PATH: str = "/etc/caddy/Caddyfile"
    PROXY_BOOTSTRAP_DOMAIN: str = "damp.local"
    PROXY_ROOT_CERT_PATH: str = "/data/caddy/pki/authorities/local/root.crt"
    PROXY_CERT_WAIT_TIMEOUT: float = 30.0
    PROXY_CERT_POLL_INTERVAL: float = 2.0

    # Volume transfer helpers
    COPY_HELPER_IMAGE: str = "alpine:latest"
    SYNC_HELPER_IMAGE: str = "damp-rsync:latest"
    SYNC_HELPER_BASE_IMAGE: str = "alpine:latest"
    COPY_TIMEOUT: float = 300.0
    SYNC_TIMEOUT: float = 1800.0
    INSTALLER_TIMEOUT: float = 900.0
    INSTALLER_IMAGE: str = "composer:latest"

    # Port resolution
    PORT_SCAN_ATTEMPTS: int = 100

    @field_validator("PROJECT_VOLUME_PREFIX", "NETWORK_NAME")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Docker resource names cannot be empty."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR).expanduser()

    class Config:
        env_prefix = "DAMP_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
