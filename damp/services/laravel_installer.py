"""
Fresh Laravel scaffolding, installed straight into a project volume.

Runs the Laravel installer inside a one-shot composer helper container,
builds the application in the container's scratch space and then copies it
into the mounted volume with host ownership.
"""

import shlex
from typing import Callable, List, Optional

from damp.config.settings import Settings
from damp.models.project import LaravelOptions
from damp.services.volume_transfer import VolumeTransfer
from damp.utils.docker_helpers import get_host_uid_gid
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Laravel")

OutputCallback = Callable[[str], None]

STARTER_KIT_FLAGS = {
    "react": "--react",
    "vue": "--vue",
    "livewire": "--livewire",
}


def build_installer_flags(options: LaravelOptions) -> List[str]:
    """Translate LaravelOptions into `laravel new` flags."""
    flags: List[str] = []

    if options.starter_kit == "custom":
        if options.custom_starter_kit_url:
            flags.append(f"--using={shlex.quote(options.custom_starter_kit_url)}")
    elif options.starter_kit in STARTER_KIT_FLAGS:
        flags.append(STARTER_KIT_FLAGS[options.starter_kit])

        if options.authentication == "workos":
            flags.append("--workos")
        elif options.authentication == "none":
            flags.append("--no-authentication")

        if options.starter_kit == "livewire" and not options.use_volt:
            flags.append("--livewire-class-components")

    flags.append("--pest" if options.testing_framework == "pest" else "--phpunit")
    if options.install_boost:
        flags.append("--boost")

    flags.append("--no-interaction")
    return flags


def build_install_command(project_name: str, options: LaravelOptions) -> str:
    app_dir = f"/tmp/{project_name}"
    flags = " ".join(build_installer_flags(options))
    return (
        "composer global require laravel/installer --no-interaction --quiet "
        f"&& cd /tmp && \"$(composer global config bin-dir --absolute --quiet)/laravel\" new {project_name} {flags} "
        f"&& cp -a {app_dir}/. /volume/ "
        f"&& chown -R {get_host_uid_gid()} /volume"
    )


class LaravelInstaller:
    """Scaffolds a new Laravel application into a volume."""

    def __init__(self, volume_transfer: VolumeTransfer, settings: Settings):
        self.volume_transfer = volume_transfer
        self.settings = settings

    async def install(
        self,
        volume_name: str,
        project_name: str,
        project_id: str,
        options: LaravelOptions,
        on_output: Optional[OutputCallback] = None,
    ) -> None:
        """
        Run `laravel new` and copy the result into the volume.

        Raises:
            TransferFailedError: installer exited non-zero
            TransferTimeoutError: installer did not finish within INSTALLER_TIMEOUT
        """
        logger.info(f"Installing Laravel into {volume_name} (starter kit: {options.starter_kit})")
        await self.volume_transfer.run_in_volume(
            image=self.settings.INSTALLER_IMAGE,
            command=build_install_command(project_name, options),
            volume_name=volume_name,
            operation="laravel-install",
            project_id=project_id,
            timeout=self.settings.INSTALLER_TIMEOUT,
            environment={"COMPOSER_ALLOW_SUPERUSER": "1"},
            on_line=on_output,
        )
        logger.info(f"Laravel installed into {volume_name}")
