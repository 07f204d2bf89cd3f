"""Data models"""

from .result import AdvisoryResult, OperationResult
from .project import (
    BundledService,
    BundledServiceCredentials,
    CreateProjectInput,
    ImportMethod,
    LaravelOptions,
    Project,
    ProjectProgress,
    ProjectType,
    UpdateProjectInput,
)
from .service import (
    ContainerState,
    CustomConfig,
    HealthStatus,
    InstallOptions,
    ServiceDefinition,
    ServiceInfo,
    ServiceState,
    ServiceType,
)
from .transfer import SyncDirection, SyncOptions, TransferProgress, TransferStage

__all__ = [
    "AdvisoryResult", "OperationResult",
    "BundledService", "BundledServiceCredentials", "CreateProjectInput", "ImportMethod",
    "LaravelOptions", "Project", "ProjectProgress", "ProjectType", "UpdateProjectInput",
    "ContainerState", "CustomConfig", "HealthStatus", "InstallOptions",
    "ServiceDefinition", "ServiceInfo", "ServiceState", "ServiceType",
    "SyncDirection", "SyncOptions", "TransferProgress", "TransferStage",
]
