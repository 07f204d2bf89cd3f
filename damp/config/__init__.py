"""Configuration: environment settings and YAML service definitions."""

from damp.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
