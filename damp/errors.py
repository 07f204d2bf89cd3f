"""
Error taxonomy for the orchestration layer.

Internal helpers raise these; the public entry points of the managers catch
them and convert to an OperationResult so nothing crosses the HTTP boundary
as an exception. NotInitializedError is the exception to that rule: it marks
a programming error and always propagates.
"""

from typing import Optional


class DampError(Exception):
    """Base class for all orchestration errors."""


class ValidationError(DampError):
    """Bad input (name format, version constraint, missing field)."""


class PreconditionError(DampError):
    """A required resource or runtime condition is not met."""


class DockerUnavailableError(PreconditionError):
    """The container runtime cannot be reached."""

    def __init__(self, message: str = "Docker is not running. Please start Docker and try again."):
        super().__init__(message)


class NotFoundError(PreconditionError):
    """A project, service definition or container does not exist."""


class NotInstalledError(PreconditionError):
    """A service operation requires an installed container."""


class SyncInProgressError(PreconditionError):
    """A sync for the same project is already running."""


class NotInitializedError(DampError):
    """A manager was used before its backing store was initialized."""


class TransferError(DampError):
    """Base class for helper-container transfer failures."""

    def __init__(self, message: str, logs: Optional[str] = None):
        super().__init__(message)
        self.logs = logs


class TransferFailedError(TransferError):
    """Helper container exited with a non-zero status."""

    def __init__(self, exit_code: int, logs: str = "", operation: str = "transfer"):
        tail = logs.strip()[-2000:] if logs else ""
        message = f"{operation} failed with exit code {exit_code}"
        if tail:
            message = f"{message}: {tail}"
        super().__init__(message, logs=tail)
        self.exit_code = exit_code


class TransferTimeoutError(TransferError):
    """Helper container did not finish before the deadline."""

    def __init__(self, timeout: float, operation: str = "transfer"):
        super().__init__(f"{operation} timed out after {int(timeout)} seconds")
        self.timeout = timeout


class PortExhaustionError(DampError):
    """No free host port was found within the scan bound."""

    def __init__(self, start_port: int, max_attempts: int):
        super().__init__(
            f"No available port found starting from {start_port} "
            f"after {max_attempts} attempts"
        )
        self.start_port = start_port
        self.max_attempts = max_attempts


class RollbackError(DampError):
    """A compensating action failed while unwinding a saga."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"Rollback step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause
