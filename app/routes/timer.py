from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..schemas.timers import TimerControlRequest, TimerStartRequest, TimerTarget, TimerUpdateRequest
from ..services import timers, work_timer
from ..services.time_rules import utcnow


router = APIRouter(prefix="/timer", tags=["timer"])


def _timer_payload(garment, message: str) -> dict:
    status = work_timer.session_status(garment, utcnow(), settings.tz_default)
    status.update({
        "success": True,
        "message": message,
        "order_id": str(garment.order_id),
        "garment_id": str(garment.id),
    })
    return status


@router.post("/start")
def start_timer(payload: TimerStartRequest, db: Session = Depends(get_db)):
    garment = timers.start_timer(db, payload.order_id, payload.garment_id, payload.assignee)
    return _timer_payload(garment, "Timer started successfully")


@router.post("/pause")
def pause_timer(payload: TimerControlRequest, db: Session = Depends(get_db)):
    garment = timers.pause_timer(db, payload.order_id, payload.garment_id, payload.staff)
    return _timer_payload(garment, "Timer paused successfully")


@router.post("/resume")
def resume_timer(payload: TimerControlRequest, db: Session = Depends(get_db)):
    garment = timers.resume_timer(db, payload.order_id, payload.garment_id, payload.staff)
    return _timer_payload(garment, "Timer resumed successfully")


@router.post("/stop")
def stop_timer(payload: TimerControlRequest, db: Session = Depends(get_db)):
    garment = timers.stop_timer(db, payload.order_id, payload.garment_id, payload.staff)
    return _timer_payload(garment, "Timer stopped successfully")


@router.post("/update")
def update_timer(payload: TimerUpdateRequest, db: Session = Depends(get_db)):
    garment = timers.manual_update_timer(
        db, payload.order_id, payload.garment_id, payload.hours, payload.minutes, payload.staff
    )
    return _timer_payload(garment, "Timer updated successfully")


@router.get("/status")
def timer_status(target: TimerTarget = Depends(), db: Session = Depends(get_db)):
    status = timers.get_timer_status(db, target.order_id, target.garment_id)
    status["success"] = True
    return status
