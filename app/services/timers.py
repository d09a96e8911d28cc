"""
Per-garment work timers.
Locates the garment, runs the session transition, logs it and commits with the row version check.
"""
import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..errors import Conflict, Internal, NotFound
from ..models.models import Garment
from . import work_timer
from .audit import record_event
from .permissions import is_operator
from .time_rules import utcnow

logger = structlog.get_logger(__name__)


def commit_unit(db: Session, label: str) -> None:
    """Commit a timed-unit change; a lost version race becomes a Conflict."""
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.info("work_unit_version_conflict", unit=label)
        raise Conflict(f"{label} was modified concurrently, retry") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("work_unit_commit_failed", unit=label, error=str(exc))
        raise Internal(f"Failed to update {label}") from exc


def log_discarded_elapsed(db: Session, entity: str, unit, started_at, actor: str) -> None:
    logger.warning(
        "timer_elapsed_invalid",
        entity=entity,
        entity_id=str(unit.id),
        started_at=str(started_at),
        kept_minutes=unit.actual_minutes,
    )
    record_event(
        db,
        actor=actor,
        entity=entity,
        entity_id=str(unit.id),
        action="timer_elapsed_discarded",
        details={"started_at": str(started_at), "kept_minutes": unit.actual_minutes},
        commit=False,
    )


def _find_garment(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID],
    prefer_state: Optional[str] = None,
) -> Garment:
    query = db.query(Garment).filter(Garment.order_id == order_id)
    if garment_id:
        garment = query.filter(Garment.id == garment_id).first()
        if not garment:
            raise NotFound("Garment not found")
        return garment

    garments = query.order_by(Garment.created_at, Garment.id).all()
    if not garments:
        raise NotFound("No garments found")
    if prefer_state:
        for garment in garments:
            if work_timer.work_state(garment) == prefer_state:
                return garment
    return garments[0]


def _event_details(garment: Garment, outcome: work_timer.SessionOutcome, **extra) -> dict:
    details = {
        "order_id": str(garment.order_id),
        "actual_minutes": garment.actual_minutes,
        "elapsed_seconds": outcome.elapsed_seconds,
    }
    details.update(extra)
    return details


def start_timer(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID],
    assignee: str,
    now: Optional[datetime] = None,
) -> Garment:
    now = now or utcnow()
    garment = _find_garment(db, order_id, garment_id, prefer_state=None)
    outcome = work_timer.start_session(garment, assignee, now)
    record_event(
        db, actor=assignee, entity="garment", entity_id=str(garment.id), action="timer_started",
        details=_event_details(garment, outcome), commit=False,
    )
    commit_unit(db, "Garment")
    logger.info("timer_started", garment_id=str(garment.id), assignee=assignee)
    return garment


def pause_timer(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID] = None,
    requesting_staff: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Garment:
    now = now or utcnow()
    garment = _find_garment(db, order_id, garment_id, prefer_state=work_timer.RUNNING)
    started_at = garment.started_at
    outcome = work_timer.pause_session(garment, now, requesting_staff, is_operator(db, requesting_staff))
    actor = requesting_staff or garment.assignee or "system"
    if outcome.elapsed_discarded:
        log_discarded_elapsed(db, "garment", garment, started_at, actor)
    record_event(
        db, actor=actor, entity="garment", entity_id=str(garment.id), action="timer_paused",
        details=_event_details(garment, outcome), commit=False,
    )
    commit_unit(db, "Garment")
    logger.info("timer_paused", garment_id=str(garment.id), elapsed_seconds=outcome.elapsed_seconds)
    return garment


def resume_timer(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID] = None,
    requesting_staff: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Garment:
    now = now or utcnow()
    garment = _find_garment(db, order_id, garment_id, prefer_state=work_timer.PAUSED)
    outcome = work_timer.resume_session(garment, now, requesting_staff, is_operator(db, requesting_staff))
    record_event(
        db, actor=requesting_staff or garment.assignee, entity="garment", entity_id=str(garment.id),
        action="timer_resumed", details=_event_details(garment, outcome), commit=False,
    )
    commit_unit(db, "Garment")
    logger.info("timer_resumed", garment_id=str(garment.id), assignee=garment.assignee)
    return garment


def stop_timer(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID] = None,
    requesting_staff: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Garment:
    now = now or utcnow()
    garment = _find_garment(db, order_id, garment_id, prefer_state=work_timer.RUNNING)
    started_at = garment.started_at
    holder = garment.assignee
    outcome = work_timer.stop_session(garment, now, requesting_staff, is_operator(db, requesting_staff))
    actor = requesting_staff or holder or "system"
    if outcome.elapsed_discarded:
        log_discarded_elapsed(db, "garment", garment, started_at, actor)
    record_event(
        db, actor=actor, entity="garment", entity_id=str(garment.id), action="timer_stopped",
        details=_event_details(garment, outcome, assignee=holder), commit=False,
    )
    commit_unit(db, "Garment")
    logger.info("timer_stopped", garment_id=str(garment.id), actual_minutes=garment.actual_minutes)
    return garment


def manual_update_timer(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID],
    hours: int,
    minutes: int,
    requesting_staff: Optional[str] = None,
) -> Garment:
    garment = _find_garment(db, order_id, garment_id)
    previous = garment.actual_minutes
    total = work_timer.set_accumulated_time(garment, hours, minutes)
    record_event(
        db, actor=requesting_staff or "system", entity="garment", entity_id=str(garment.id),
        action="timer_edited",
        details={"order_id": str(order_id), "before_minutes": previous, "after_minutes": total},
        commit=False,
    )
    commit_unit(db, "Garment")
    return garment


def get_timer_status(
    db: Session,
    order_id: uuid.UUID,
    garment_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    garment = _find_garment(db, order_id, garment_id, prefer_state=work_timer.RUNNING)
    status = work_timer.session_status(garment, now, settings.tz_default)
    status["order_id"] = str(garment.order_id)
    status["garment_id"] = str(garment.id)
    return status
