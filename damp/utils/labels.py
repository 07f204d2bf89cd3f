"""Docker label keys used to find DAMP-managed containers and volumes."""

from typing import Dict, Optional

LABEL_PREFIX = "com.damp"

MANAGED = f"{LABEL_PREFIX}.managed"
TYPE = f"{LABEL_PREFIX}.type"
SERVICE_ID = f"{LABEL_PREFIX}.service-id"
SERVICE_TYPE = f"{LABEL_PREFIX}.service-type"
PROJECT_ID = f"{LABEL_PREFIX}.project-id"
PROJECT_NAME = f"{LABEL_PREFIX}.project-name"
VOLUME_NAME = f"{LABEL_PREFIX}.volume-name"
OPERATION = f"{LABEL_PREFIX}.operation"
DESCRIPTION = f"{LABEL_PREFIX}.description"

TYPE_SERVICE = "service"
TYPE_PROJECT = "project"
TYPE_PROJECT_VOLUME = "project-volume"
TYPE_SERVICE_VOLUME = "service-volume"
TYPE_BUNDLED_SERVICE = "bundled-service"
TYPE_HELPER = "helper"
TYPE_NETWORK = "network"


def service_container_labels(service_id: str, service_type: str) -> Dict[str, str]:
    return {
        MANAGED: "true",
        TYPE: TYPE_SERVICE,
        SERVICE_ID: service_id,
        SERVICE_TYPE: service_type,
    }


def service_volume_labels(service_id: str, volume_name: str) -> Dict[str, str]:
    return {
        MANAGED: "true",
        TYPE: TYPE_SERVICE_VOLUME,
        SERVICE_ID: service_id,
        VOLUME_NAME: volume_name,
    }


def project_container_labels(project_id: str, project_name: str) -> Dict[str, str]:
    return {
        MANAGED: "true",
        TYPE: TYPE_PROJECT,
        PROJECT_ID: project_id,
        PROJECT_NAME: project_name,
    }


def project_volume_labels(project_id: str, volume_name: str) -> Dict[str, str]:
    return {
        MANAGED: "true",
        TYPE: TYPE_PROJECT_VOLUME,
        PROJECT_ID: project_id,
        VOLUME_NAME: volume_name,
    }


def helper_labels(operation: str, volume_name: str, project_id: Optional[str] = None) -> Dict[str, str]:
    labels = {
        MANAGED: "true",
        TYPE: TYPE_HELPER,
        OPERATION: operation,
        VOLUME_NAME: volume_name,
    }
    if project_id:
        labels[PROJECT_ID] = project_id
    return labels


def to_filters(labels: Dict[str, str]) -> Dict[str, list]:
    """Build a docker-py `filters` dict matching every label."""
    return {"label": [f"{key}={value}" for key, value in labels.items()]}
