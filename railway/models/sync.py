"""
Offline synchronization models.

A sync operation is one mutation recorded while disconnected; the report
summarizes a reconciler pass.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from .enums import SyncOperationType, SyncStatus


class SyncOperationModel(BaseModel):
    """Queued offline mutation, replayed in id order."""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., ge=1, description="Auto-increment id; defines replay order")
    type: SyncOperationType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)
    status: SyncStatus = Field(default=SyncStatus.PENDING)
    error: Optional[str] = Field(None, description="Failure reason for Failed operations")


class SyncReportModel(BaseModel):
    """
    Outcome of one reconciler pass.

    ``skipped`` counts replays that were already applied on the server; they
    are also counted in ``succeeded`` because they were dequeued.
    """
    model_config = ConfigDict(from_attributes=True)

    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed_operation_ids: List[int] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return self.succeeded + self.failed
