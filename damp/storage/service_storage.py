"""
Service storage.

Persists ServiceState (custom config only) in services-state.json keyed by
service id. Installed and running flags are never stored: they are read
from Docker on demand.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from damp.models.service import CustomConfig, ServiceState
from damp.storage.json_store import JsonStore
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Storage")


class ServiceStorage:
    """Per-service persisted custom configuration."""

    def __init__(self, path: Path):
        self.store = JsonStore(path, root_key="services")

    async def initialize(self, service_ids: Iterable[str] = ()) -> None:
        """Create the file and seed an empty state for every known service."""
        await self.store.initialize()
        ids = list(service_ids)

        def _seed(entries: Dict[str, Any]) -> int:
            added = 0
            for service_id in ids:
                if service_id not in entries:
                    entries[service_id] = ServiceState(id=service_id).model_dump(mode="json")
                    added += 1
            return added

        added = await self.store.update(_seed)
        if added:
            logger.info(f"Seeded state for {added} services")

    async def get_all_states(self) -> Dict[str, ServiceState]:
        entries = await self.store.load()
        return {service_id: ServiceState(**data) for service_id, data in entries.items()}

    async def get_state(self, service_id: str) -> Optional[ServiceState]:
        data = await self.store.get(service_id)
        return ServiceState(**data) if data else None

    async def get_custom_config(self, service_id: str) -> Optional[CustomConfig]:
        state = await self.get_state(service_id)
        return state.custom_config if state else None

    async def set_custom_config(self, service_id: str, custom_config: Optional[CustomConfig]) -> None:
        """Store (or with None, clear) the custom config of a service."""
        state = ServiceState(id=service_id, custom_config=custom_config).model_dump(mode="json")

        def _set(entries: Dict[str, Any]) -> None:
            entries[service_id] = state

        await self.store.update(_set)

    async def clear(self) -> None:
        await self.store.clear()
