"""
Framework detection for imported projects.

A folder is treated as Laravel only when two independent signals agree:
composer.json requires laravel/framework AND an `artisan` file exists.
Either signal alone falls back to a plain PHP project.
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Detect")

LARAVEL_PACKAGE = "laravel/framework"


class LaravelDetection(BaseModel):
    is_laravel: bool = False
    version: Optional[str] = None
    composer_json_path: Optional[str] = None


def detect_laravel(folder_path: str) -> LaravelDetection:
    """Inspect a folder for a Laravel application."""
    folder = Path(folder_path)
    composer_json = folder / "composer.json"
    artisan = folder / "artisan"

    if not composer_json.is_file():
        return LaravelDetection()

    try:
        manifest = json.loads(composer_json.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {composer_json}: {e}")
        return LaravelDetection()

    if not isinstance(manifest, dict):
        return LaravelDetection()

    version = None
    for section in ("require", "require-dev"):
        packages = manifest.get(section)
        if isinstance(packages, dict) and isinstance(packages.get(LARAVEL_PACKAGE), str):
            version = packages[LARAVEL_PACKAGE]
            break

    if version and artisan.is_file():
        logger.info(f"Laravel detected: composer.json + artisan present (version: {version})")
        return LaravelDetection(is_laravel=True, version=version, composer_json_path=str(composer_json))

    if version:
        logger.info("Laravel package found in composer.json but artisan file missing - treating as non-Laravel")
    return LaravelDetection()


def devcontainer_exists(folder_path: str) -> bool:
    return (Path(folder_path) / ".devcontainer").exists()
