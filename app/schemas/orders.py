import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

OrderStatus = Literal["pending", "working", "done", "ready", "delivered", "archived"]


class GarmentServiceLine(BaseModel):
    service_id: uuid.UUID
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = None


class GarmentCreate(BaseModel):
    type: Optional[str] = None
    label_code: Optional[str] = None
    notes: Optional[str] = None
    services: List[GarmentServiceLine] = []


class OrderCreate(BaseModel):
    client_name: Optional[str] = None
    notes: Optional[str] = None
    garments: List[GarmentCreate] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None
    staff: Optional[str] = None


class GarmentResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    type: Optional[str] = None
    label_code: Optional[str] = None
    notes: Optional[str] = None
    stage: str
    is_active: bool
    assignee: Optional[str] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    actual_minutes: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: int
    client_name: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    garments: List[GarmentResponse] = []

    class Config:
        from_attributes = True


class ServiceResponse(BaseModel):
    id: uuid.UUID
    code: Optional[str] = None
    name: str
    category: Optional[str] = None
    estimated_minutes: Optional[int] = None

    class Config:
        from_attributes = True
