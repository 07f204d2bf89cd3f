"""Transfer progress and sync option models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TransferStage(str, Enum):
    STARTING = "starting"
    COPYING = "copying"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncDirection(str, Enum):
    FROM_VOLUME = "from"
    TO_VOLUME = "to"


class TransferProgress(BaseModel):
    """Ephemeral progress record pushed to observers during a transfer."""
    stage: TransferStage
    percentage: int = Field(0, ge=0, le=100)
    bytes: Optional[int] = Field(None, description="Bytes transferred so far (sync only)")
    current_step: Optional[int] = None
    total_steps: Optional[int] = None
    message: str = ""


class SyncOptions(BaseModel):
    """User-chosen sync options."""
    include_node_modules: bool = False
    include_vendor: bool = False
