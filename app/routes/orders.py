import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Service
from ..schemas.orders import OrderCreate, OrderResponse, OrderStatusUpdate, ServiceResponse
from ..services import order_service


router = APIRouter(tags=["orders"])


def _serialize_order(order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


@router.get("/services")
def list_services(db: Session = Depends(get_db)):
    services = db.query(Service).order_by(Service.category, Service.name).all()
    return [ServiceResponse.model_validate(s).model_dump(mode="json") for s in services]


@router.post("/orders", status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    """Intake an order with its garments and service lines"""
    order = order_service.create_order(
        db,
        client_name=payload.client_name,
        notes=payload.notes,
        garments=[g.model_dump() for g in payload.garments],
    )
    return _serialize_order(order)


@router.get("/orders/{order_id}")
def get_order(order_id: uuid.UUID, db: Session = Depends(get_db)):
    return _serialize_order(order_service.get_order(db, order_id))


@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: uuid.UUID, payload: OrderStatusUpdate, response: Response, db: Session = Depends(get_db)
):
    """Status change is committed even when task creation fails; that case answers 207."""
    order, tasks_result = order_service.change_order_status(
        db, order_id, payload.status, notes=payload.notes, actor=payload.staff
    )
    body = _serialize_order(order)
    body["tasks"] = tasks_result.to_dict() if tasks_result else None
    body["success"] = tasks_result is None or tasks_result.success
    if not body["success"]:
        response.status_code = 207
    return body
