"""
Uniform result shapes returned across the HTTP boundary.

OperationResult is what every public manager operation returns.
AdvisoryResult records the outcome of a best-effort side effect (hosts file,
proxy sync, post-install hook) that is logged but never changes the outcome
of the operation that triggered it.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class OperationResult(BaseModel):
    """{success, data?, error?} result of an orchestration entry point."""
    success: bool = Field(..., description="Whether the operation succeeded")
    data: Optional[Any] = Field(None, description="Operation payload")
    error: Optional[str] = Field(None, description="Human-readable error message")

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "OperationResult":
        return cls(success=False, error=error, data=data)


class AdvisoryResult(BaseModel):
    """Outcome of a best-effort side effect."""
    name: str = Field(..., description="Which side effect ran")
    success: bool
    error: Optional[str] = None
