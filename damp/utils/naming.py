"""Project name canonicalization and the resource names derived from it."""

import re

from damp.config.settings import Settings

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_EDGE_HYPHENS = re.compile(r"(^-+)|(-+$)")
_REPEATED_HYPHENS = re.compile(r"-+")


def sanitize_name(name: str) -> str:
    """
    Canonicalize a display name into a project slug.

    Lowercase, runs of anything outside [a-z0-9] become one hyphen, no leading
    or trailing hyphens. Idempotent: sanitize_name(sanitize_name(x)) == sanitize_name(x).

    Examples:
        >>> sanitize_name("My Site!!")
        'my-site'
    """
    slug = _NON_ALNUM.sub("-", name.lower())
    slug = _EDGE_HYPHENS.sub("", slug)
    return _REPEATED_HYPHENS.sub("-", slug)


def volume_name_for(name: str, settings: Settings) -> str:
    return f"{settings.PROJECT_VOLUME_PREFIX}{name}"


def container_name_for(name: str, settings: Settings) -> str:
    return f"{name}{settings.PROJECT_CONTAINER_SUFFIX}"


def domain_for(name: str, settings: Settings) -> str:
    return f"{name}{settings.PROJECT_DOMAIN_SUFFIX}"


def bundled_container_name(project_name: str, service_name: str) -> str:
    return f"{project_name}-{service_name}"
