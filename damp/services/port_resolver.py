"""
Port Resolver

Maps desired host ports to ports that are actually free on this machine.

Availability is probed by binding a listening TCP socket on 0.0.0.0 and
closing it immediately. A busy port is replaced by the next free port found
by scanning upward, bounded by max_attempts.

Ports handed out are remembered in an in-process claim set until released,
so two overlapping resolutions never return the same port even before Docker
has bound the first one. There is still a window between the probe and the
moment Docker binds the port; if another process takes it in between,
container creation fails with an ordinary "port is already allocated" error.
"""

import socket
import threading
from typing import Callable, Dict, Iterable, Optional, Set

from damp.errors import PortExhaustionError
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Ports")

MAX_PORT = 65535


def is_port_available(port: int, host: str = "0.0.0.0") -> bool:
    """Return True if a TCP listener can bind the port right now."""
    if port < 1 or port > MAX_PORT:
        return False
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        sock.listen(1)
        return True
    except OSError:
        return False
    finally:
        sock.close()


class PortResolver:
    """Resolves desired host ports to available ones."""

    def __init__(
        self,
        max_attempts: int = 100,
        probe: Optional[Callable[[int], bool]] = None,
    ):
        self.max_attempts = max_attempts
        self._probe = probe or is_port_available
        self._claimed: Set[int] = set()
        self._lock = threading.Lock()

    def _usable(self, port: int) -> bool:
        return port not in self._claimed and self._probe(port)

    def find_next_available_port(self, start_port: int) -> int:
        """
        Scan upward from start_port (inclusive) for a free, unclaimed port.

        Raises:
            PortExhaustionError: no port found within max_attempts
        """
        with self._lock:
            return self._find_and_claim(start_port)

    def _find_and_claim(self, start_port: int) -> int:
        for offset in range(self.max_attempts):
            candidate = start_port + offset
            if candidate > MAX_PORT:
                break
            if self._usable(candidate):
                self._claimed.add(candidate)
                return candidate
        raise PortExhaustionError(start_port, self.max_attempts)

    def resolve(self, desired_ports: Iterable[int]) -> Dict[int, int]:
        """
        Resolve a set of desired ports.

        Each desired port maps to itself when free, otherwise to the next free
        port above it. Every returned port is claimed until release().

        Returns:
            Dict mapping desired -> actual port
        """
        mapping: Dict[int, int] = {}
        with self._lock:
            try:
                for desired in desired_ports:
                    desired = int(desired)
                    if desired in mapping:
                        continue
                    if self._usable(desired):
                        self._claimed.add(desired)
                        mapping[desired] = desired
                        continue

                    actual = self._find_and_claim(desired + 1)
                    logger.info(f"Port {desired} is in use, using {actual} instead")
                    mapping[desired] = actual
            except PortExhaustionError:
                self._claimed.difference_update(mapping.values())
                raise

        return mapping

    def claim(self, ports: Iterable[int]) -> None:
        """Mark ports as in use by this process (e.g. bindings of existing containers)."""
        with self._lock:
            self._claimed.update(int(p) for p in ports)

    def release(self, ports: Iterable[int]) -> None:
        with self._lock:
            for port in ports:
                self._claimed.discard(int(port))

    @property
    def claimed(self) -> Set[int]:
        with self._lock:
            return set(self._claimed)
