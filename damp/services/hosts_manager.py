"""
Hosts file editor.

Maps project domains to the loopback address. Lines written here end with a
"# DAMP" marker and only marked lines are ever removed, so entries added by
hand are left alone. Writing the system hosts file usually requires elevated
privileges; a permission error is returned as a failed result, never raised.
"""

import asyncio
import os
from pathlib import Path
from typing import List, Optional

from damp.config.settings import Settings
from damp.models.result import OperationResult
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Hosts")

MARKER = "# DAMP"


def _entry_domains(line: str) -> List[str]:
    """Hostnames on a hosts line, ignoring comments."""
    content = line.split("#", 1)[0].split()
    return content[1:] if len(content) > 1 else []


class HostsManager:
    """Adds and removes marked loopback entries in the hosts file."""

    def __init__(self, settings: Settings, hosts_path: Optional[Path] = None):
        self.ip = settings.HOSTS_IP
        self.hosts_path = Path(hosts_path or settings.HOSTS_FILE)
        self._lock = asyncio.Lock()

    def _read_lines(self) -> List[str]:
        if not self.hosts_path.exists():
            return []
        return self.hosts_path.read_text(encoding="utf-8").splitlines()

    def _write_lines(self, lines: List[str]) -> None:
        tmp_path = self.hosts_path.with_name(f".{self.hosts_path.name}.damp.tmp")
        tmp_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.hosts_path)

    def has_entry(self, domain: str) -> bool:
        return any(domain in _entry_domains(line) for line in self._read_lines())

    async def add_entry(self, domain: str) -> OperationResult:
        """
        Map domain to the loopback address.

        Returns:
            OperationResult with data {"added": bool}; added is False when the
            domain was already mapped
        """
        if not domain or "#" in domain or any(ch.isspace() for ch in domain):
            return OperationResult.fail(f"Invalid hostname: {domain!r}")

        async with self._lock:
            try:
                lines = await asyncio.to_thread(self._read_lines)
                if any(domain in _entry_domains(line) for line in lines):
                    logger.info(f"{domain} already present in hosts file")
                    return OperationResult.ok({"added": False})

                lines.append(f"{self.ip}\t{domain}\t{MARKER}")
                await asyncio.to_thread(self._write_lines, lines)
            except OSError as e:
                logger.error(f"Failed to add {domain} to hosts file: {e}")
                return OperationResult.fail(f"Could not update hosts file: {e}")

        logger.info(f"Added {domain} -> {self.ip}")
        return OperationResult.ok({"added": True})

    async def remove_entry(self, domain: str) -> OperationResult:
        """Remove marked lines for domain. Unmarked lines are left alone."""
        async with self._lock:
            try:
                lines = await asyncio.to_thread(self._read_lines)
                kept = [
                    line for line in lines
                    if not (MARKER in line and domain in _entry_domains(line))
                ]
                removed = len(lines) - len(kept)
                if removed:
                    await asyncio.to_thread(self._write_lines, kept)
            except OSError as e:
                logger.error(f"Failed to remove {domain} from hosts file: {e}")
                return OperationResult.fail(f"Could not update hosts file: {e}")

        if removed:
            logger.info(f"Removed {domain} from hosts file")
        return OperationResult.ok({"removed": removed})
