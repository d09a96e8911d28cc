from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..models.models import Garment, Order
from .time_rules import elapsed_seconds, utcnow

logger = structlog.get_logger(__name__)


def _claim_unassigned(db: Session, staff_code: str) -> Optional[Garment]:
    garment = (
        db.query(Garment)
        .filter(Garment.is_active.is_(True), Garment.assignee.is_(None))
        .order_by(Garment.started_at)
        .first()
    )
    if not garment:
        return None
    garment.assignee = staff_code
    try:
        db.commit()
    except (StaleDataError, SQLAlchemyError) as exc:
        # Someone else claimed it first
        db.rollback()
        logger.info("active_task_claim_lost", garment_id=str(garment.id), staff=staff_code, error=str(exc))
        return None
    return garment


def find_active_task(db: Session, staff_code: str, now: Optional[datetime] = None) -> Optional[dict]:
    """Running garment for a staff member, claiming an unassigned one when they hold none."""
    now = now or utcnow()
    garment = (
        db.query(Garment)
        .filter(Garment.assignee == staff_code, Garment.is_active.is_(True))
        .first()
    )
    if not garment:
        garment = _claim_unassigned(db, staff_code)
    if not garment:
        return None

    order = db.query(Order).filter(Order.id == garment.order_id).first()
    seconds = int((garment.actual_minutes or 0) * 60)
    seconds += int(elapsed_seconds(garment.started_at, now) or 0)
    return {
        "garment_id": str(garment.id),
        "garment_type": garment.type,
        "order_id": str(garment.order_id),
        "order_number": order.order_number if order else None,
        "client_name": order.client_name if order else None,
        "started_at": garment.started_at.isoformat() if garment.started_at else None,
        "elapsed_seconds": seconds,
        "stage": garment.stage,
    }
