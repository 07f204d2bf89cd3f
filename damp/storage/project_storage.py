"""
Project storage.

Persists Project records in projects-state.json keyed by project id.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from damp.errors import NotFoundError, ValidationError
from damp.models.project import Project, now_ms
from damp.storage.json_store import JsonStore
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Storage")


class ProjectStorage:
    """CRUD over persisted projects."""

    def __init__(self, path: Path):
        self.store = JsonStore(path, root_key="projects")

    async def initialize(self) -> None:
        await self.store.initialize()

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_projects(self) -> List[Project]:
        """All projects, sorted by display order then creation time."""
        entries = await self.store.load()
        projects = []
        for project_id, data in entries.items():
            try:
                projects.append(Project(**data))
            except Exception as e:
                logger.warning(f"Skipping unreadable project record {project_id}: {e}")
        return sorted(projects, key=lambda p: (p.order, p.created_at))

    async def get_project(self, project_id: str) -> Optional[Project]:
        data = await self.store.get(project_id)
        return Project(**data) if data else None

    async def find_by_name(self, name: str) -> Optional[Project]:
        for project in await self.get_projects():
            if project.name == name:
                return project
        return None

    async def get_next_order(self) -> int:
        projects = await self.get_projects()
        return max((p.order for p in projects), default=-1) + 1

    # =========================================================================
    # Mutations
    # =========================================================================

    async def set_project(self, project: Project) -> None:
        data = project.model_dump(mode="json")

        def _set(entries: Dict[str, Any]) -> None:
            entries[project.id] = data

        await self.store.update(_set)

    async def update_project(self, project_id: str, changes: Dict[str, Any]) -> Project:
        """
        Merge changes into a stored project and bump updated_at.

        Raises:
            NotFoundError: unknown project id
            ValidationError: changes try to alter the id
        """
        if "id" in changes and changes["id"] != project_id:
            raise ValidationError("Project id cannot be changed")

        def _update(entries: Dict[str, Any]) -> Project:
            current = entries.get(project_id)
            if current is None:
                raise NotFoundError(f"Project {project_id} not found")
            merged = Project(**{**current, **changes, "id": project_id, "updated_at": now_ms()})
            entries[project_id] = merged.model_dump(mode="json")
            return merged

        return await self.store.update(_update)

    async def delete_project(self, project_id: str) -> bool:
        def _delete(entries: Dict[str, Any]) -> bool:
            return entries.pop(project_id, None) is not None

        return await self.store.update(_delete)

    async def reorder_projects(self, project_ids: List[str]) -> None:
        """Assign order by position. Unknown ids are ignored; unlisted projects keep their order after the listed ones."""
        def _reorder(entries: Dict[str, Any]) -> None:
            position = 0
            for project_id in project_ids:
                if project_id in entries:
                    entries[project_id]["order"] = position
                    position += 1
            listed = set(project_ids)
            rest = sorted(
                (pid for pid in entries if pid not in listed),
                key=lambda pid: entries[pid].get("order", 0),
            )
            for project_id in rest:
                entries[project_id]["order"] = position
                position += 1

        await self.store.update(_reorder)

    async def clear(self) -> None:
        await self.store.clear()

    # =========================================================================
    # Import / export
    # =========================================================================

    async def export_projects(self) -> Dict[str, Any]:
        return await self.store.load()

    async def import_projects(self, entries: Dict[str, Any]) -> int:
        """Replace all projects with validated entries. Returns how many were imported."""
        validated = {pid: Project(**data).model_dump(mode="json") for pid, data in entries.items()}
        await self.store.replace(validated)
        logger.info(f"Imported {len(validated)} projects")
        return len(validated)
