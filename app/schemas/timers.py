import uuid
from typing import Optional

from pydantic import BaseModel, Field


class TimerTarget(BaseModel):
    order_id: uuid.UUID
    garment_id: Optional[uuid.UUID] = None


class TimerStartRequest(TimerTarget):
    assignee: str = Field(min_length=1, max_length=100)


class TimerControlRequest(TimerTarget):
    staff: Optional[str] = None  # requesting staff code; omitted on shared kiosks


class TimerUpdateRequest(TimerTarget):
    hours: int = Field(ge=0, le=999)
    minutes: int = Field(ge=0, le=59)
    staff: Optional[str] = None
