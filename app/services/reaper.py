"""
Stale timer sweep.
Force-stops work sessions left running past the ceiling, crediting exactly the ceiling.
"""
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models.models import Garment, Task
from . import work_timer
from .audit import record_event_quietly
from .time_rules import utcnow

logger = structlog.get_logger(__name__)

REAPER_ACTOR = "cron-stale-timers"

# (entity label, model)
_SWEPT_UNITS = (("garment", Garment), ("task", Task))


def _terminate(db: Session, entity: str, unit, now: datetime, max_hours: int) -> Optional[dict]:
    capped_minutes = max_hours * 60
    original_started_at = unit.started_at
    assignee = unit.assignee
    final_minutes = work_timer.force_stop_session(unit, now, capped_minutes)
    try:
        db.commit()
    except (StaleDataError, SQLAlchemyError) as exc:
        db.rollback()
        logger.error("stale_timer_terminate_failed", entity=entity, entity_id=str(unit.id), error=str(exc))
        return None

    record_event_quietly(
        db,
        actor=REAPER_ACTOR,
        entity=entity,
        entity_id=str(unit.id),
        action="timer_auto_terminated",
        details={
            "reason": f"Timer exceeded {max_hours} hour limit",
            "original_started_at": original_started_at.isoformat() if original_started_at else None,
            "assignee": assignee,
            "capped_at_minutes": capped_minutes,
            "final_actual_minutes": final_minutes,
        },
    )
    logger.info("stale_timer_terminated", entity=entity, entity_id=str(unit.id), capped_hours=max_hours)
    return {
        "entity": entity,
        "id": str(unit.id),
        "assignee": assignee,
        "capped_minutes": capped_minutes,
        "final_actual_minutes": final_minutes,
    }


def sweep_stale_timers(db: Session, now: Optional[datetime] = None, max_hours: Optional[int] = None) -> dict:
    """
    Terminate every running garment or task timer started before ``now - max_hours``.

    Each row is committed on its own; a failed row is logged and skipped and
    the sweep carries on with the rest.
    """
    now = now or utcnow()
    max_hours = max_hours if max_hours is not None else settings.stale_timer_max_hours
    cutoff = now - timedelta(hours=max_hours)
    logger.info("stale_timer_sweep_started", cutoff=cutoff.isoformat())

    terminated = []
    for entity, model in _SWEPT_UNITS:
        stale_ids = [
            row.id
            for row in db.query(model.id)
            .filter(model.is_active.is_(True), model.started_at < cutoff)
            .all()
        ]
        for unit_id in stale_ids:
            unit = db.get(model, unit_id)
            # Stopped by someone else since the select
            if unit is None or not unit.is_active:
                continue
            result = _terminate(db, entity, unit, now, max_hours)
            if result:
                terminated.append(result)

    logger.info("stale_timer_sweep_finished", terminated_count=len(terminated))
    return {
        "success": True,
        "terminated_count": len(terminated),
        "terminated": terminated,
        "max_hours": max_hours,
        "timestamp": now.isoformat(),
    }
