import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..errors import Conflict, Internal, NotFound, ValidationError
from ..models.models import Garment, GarmentService, Order, Service
from .audit import record_event
from .task_service import AutoCreateResult, auto_create_tasks

logger = structlog.get_logger(__name__)

# Valid status transitions
VALID_TRANSITIONS = {
    "pending": ["working", "archived"],
    "working": ["done", "ready", "archived"],
    "done": ["ready", "archived"],
    "ready": ["delivered", "archived"],
    "delivered": ["archived"],
    "archived": [],
}


def get_order(db: Session, order_id: uuid.UUID) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.garments).selectinload(Garment.services))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFound("Order not found")
    return order


def _next_order_number(db: Session) -> int:
    current = db.query(func.max(Order.order_number)).scalar()
    return (current or 0) + 1


def create_order(db: Session, client_name: Optional[str], notes: Optional[str], garments: list) -> Order:
    """
    Record an order with its garments and service lines.

    ``garments`` is a list of dicts: {type, label_code, notes, services: [{service_id, quantity, notes}]}
    """
    service_ids = {line["service_id"] for g in garments for line in g.get("services") or []}
    if service_ids:
        known = {row.id for row in db.query(Service.id).filter(Service.id.in_(service_ids)).all()}
        missing = service_ids - known
        if missing:
            raise ValidationError(f"Unknown service id(s): {', '.join(sorted(str(m) for m in missing))}")

    order = Order(
        order_number=_next_order_number(db),
        client_name=client_name,
        notes=notes,
        status="pending",
    )
    for g in garments:
        garment = Garment(
            type=g.get("type"),
            label_code=g.get("label_code"),
            notes=g.get("notes"),
            stage="pending",
            is_active=False,
            actual_minutes=0,
        )
        for line in g.get("services") or []:
            garment.services.append(
                GarmentService(
                    service_id=line["service_id"],
                    quantity=line.get("quantity") or 1,
                    notes=line.get("notes"),
                )
            )
        order.garments.append(garment)

    db.add(order)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("order_create_failed", error=str(exc))
        raise Internal("Failed to create order") from exc
    db.refresh(order)
    logger.info("order_created", order_id=str(order.id), garments=len(garments))
    return order


def change_order_status(
    db: Session,
    order_id: uuid.UUID,
    new_status: str,
    notes: Optional[str] = None,
    actor: Optional[str] = None,
) -> tuple[Order, Optional[AutoCreateResult]]:
    """Move an order along its status workflow. Entering ``working`` expands garments into tasks."""
    order = get_order(db, order_id)
    current = order.status
    allowed = VALID_TRANSITIONS.get(current, [])
    if new_status not in allowed:
        raise Conflict(
            f"Invalid status transition from {current} to {new_status}. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}"
        )

    order.status = new_status
    order.updated_at = datetime.utcnow()
    if notes:
        order.notes = notes
    record_event(
        db, actor=actor or "system", entity="order", entity_id=str(order.id), action="status_changed",
        details={"from": current, "to": new_status}, commit=False,
    )
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("order_status_update_failed", order_id=str(order_id), error=str(exc))
        raise Internal("Failed to update order status") from exc

    tasks_result = None
    if new_status == "working":
        tasks_result = auto_create_tasks(db, order.id)
        if not tasks_result.success:
            logger.warning("order_task_creation_failed", order_id=str(order.id), error=tasks_result.error)
    return order, tasks_result
