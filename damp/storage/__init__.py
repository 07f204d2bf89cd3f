"""JSON-file persistence for projects and service state."""

from damp.storage.json_store import JsonStore
from damp.storage.project_storage import ProjectStorage
from damp.storage.service_storage import ServiceStorage

__all__ = ["JsonStore", "ProjectStorage", "ServiceStorage"]
