import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Stage = Literal["pending", "working", "done", "ready", "delivered"]


class AutoCreateTasksRequest(BaseModel):
    order_id: uuid.UUID


class TaskStartRequest(BaseModel):
    assignee: str = Field(min_length=1, max_length=100)


class TaskControlRequest(BaseModel):
    staff: Optional[str] = None


class TaskUpdate(BaseModel):
    operation: Optional[str] = None
    stage: Optional[Stage] = None
    planned_minutes: Optional[int] = Field(default=None, ge=0)
    actual_minutes: Optional[float] = Field(default=None, ge=0)
    assignee: Optional[str] = None
    notes: Optional[str] = None
    staff: Optional[str] = None


class TaskResponse(BaseModel):
    id: uuid.UUID
    garment_id: uuid.UUID
    service_id: Optional[uuid.UUID] = None
    operation: str
    stage: str
    planned_minutes: int
    actual_minutes: float
    is_active: bool
    assignee: Optional[str] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
