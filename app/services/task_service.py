import uuid
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..config import settings
from ..errors import Conflict, NotFound
from ..models.models import Garment, GarmentService, Task
from . import work_timer
from .audit import compute_diff, record_event
from .permissions import is_operator
from .time_rules import utcnow
from .timers import commit_unit, log_discarded_elapsed

logger = structlog.get_logger(__name__)

GENERAL_WORK = "General Work"


@dataclass
class AutoCreateResult:
    success: bool
    message: str
    order_id: str
    tasks_created: int
    garments_processed: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def auto_create_tasks(db: Session, order_id: uuid.UUID) -> AutoCreateResult:
    """
    Expand an order's garment/service lines into Task rows.
    Safe to call repeatedly: existing (garment, service) pairs are skipped.
    """
    logger.info("auto_create_tasks_started", order_id=str(order_id))
    try:
        garments = (
            db.query(Garment)
            .options(selectinload(Garment.services).selectinload(GarmentService.service))
            .filter(Garment.order_id == order_id)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.error("auto_create_tasks_fetch_failed", order_id=str(order_id), error=str(exc))
        return AutoCreateResult(False, "Failed to fetch garments", str(order_id), 0, 0, str(exc))

    if not garments:
        return AutoCreateResult(True, "No garments found", str(order_id), 0, 0)

    garment_ids = [g.id for g in garments]
    try:
        existing_pairs = {
            (row.garment_id, row.service_id)
            for row in db.query(Task.garment_id, Task.service_id).filter(Task.garment_id.in_(garment_ids)).all()
        }
    except SQLAlchemyError as exc:
        logger.error("auto_create_tasks_existing_failed", order_id=str(order_id), error=str(exc))
        return AutoCreateResult(False, "Failed to check existing tasks", str(order_id), 0, 0, str(exc))

    to_create = []
    for garment in garments:
        for line in garment.services:
            service = line.service
            if service is None:
                continue
            if (garment.id, service.id) in existing_pairs:
                continue
            planned = (service.estimated_minutes or 0) * (line.quantity or 1)
            to_create.append(
                Task(
                    garment_id=garment.id,
                    service_id=service.id,
                    operation=service.name,
                    stage="pending",
                    planned_minutes=planned,
                    actual_minutes=0,
                    is_active=False,
                )
            )
            # Same service listed twice on one garment still yields one task
            existing_pairs.add((garment.id, service.id))

        if not garment.services and (garment.id, None) not in existing_pairs:
            to_create.append(
                Task(
                    garment_id=garment.id,
                    service_id=None,
                    operation=GENERAL_WORK,
                    stage="pending",
                    planned_minutes=settings.general_work_minutes,
                    actual_minutes=0,
                    is_active=False,
                )
            )

    if to_create:
        db.add_all(to_create)
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("auto_create_tasks_insert_failed", order_id=str(order_id), error=str(exc))
            return AutoCreateResult(
                False, "Failed to create tasks", str(order_id), 0, len(garments), str(exc)
            )

    logger.info(
        "auto_create_tasks_finished",
        order_id=str(order_id),
        tasks_created=len(to_create),
        garments_processed=len(garments),
    )
    return AutoCreateResult(True, "Task auto-creation complete", str(order_id), len(to_create), len(garments))


def get_task(db: Session, task_id: uuid.UUID) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")
    return task


def list_order_tasks(db: Session, order_id: uuid.UUID) -> list:
    return (
        db.query(Task)
        .join(Garment, Task.garment_id == Garment.id)
        .filter(Garment.order_id == order_id)
        .order_by(Garment.created_at, Task.created_at)
        .all()
    )


def _task_details(task: Task, outcome: work_timer.SessionOutcome) -> dict:
    return {
        "garment_id": str(task.garment_id),
        "operation": task.operation,
        "actual_minutes": task.actual_minutes,
        "elapsed_seconds": outcome.elapsed_seconds,
    }


def _ensure_no_other_active_task(db: Session, task: Task, assignee: str) -> None:
    other = (
        db.query(Task)
        .filter(Task.assignee == assignee, Task.is_active.is_(True), Task.id != task.id)
        .first()
    )
    if other:
        raise Conflict(f"{assignee} already has an active task: {other.operation}")


def start_task(db: Session, task_id: uuid.UUID, assignee: str, now: Optional[datetime] = None) -> Task:
    now = now or utcnow()
    task = get_task(db, task_id)
    if task.is_active:
        raise Conflict("Task is already active")
    _ensure_no_other_active_task(db, task, assignee)
    outcome = work_timer.start_session(task, assignee, now)
    record_event(
        db, actor=assignee, entity="task", entity_id=str(task.id), action="task_started",
        details=_task_details(task, outcome), commit=False,
    )
    commit_unit(db, "Task")
    return task


def pause_task(db: Session, task_id: uuid.UUID, requesting_staff: Optional[str] = None, now: Optional[datetime] = None) -> Task:
    now = now or utcnow()
    task = get_task(db, task_id)
    started_at = task.started_at
    outcome = work_timer.pause_session(task, now, requesting_staff, is_operator(db, requesting_staff))
    actor = requesting_staff or task.assignee or "system"
    if outcome.elapsed_discarded:
        log_discarded_elapsed(db, "task", task, started_at, actor)
    record_event(
        db, actor=actor, entity="task", entity_id=str(task.id), action="task_paused",
        details=_task_details(task, outcome), commit=False,
    )
    commit_unit(db, "Task")
    return task


def resume_task(db: Session, task_id: uuid.UUID, requesting_staff: Optional[str] = None, now: Optional[datetime] = None) -> Task:
    now = now or utcnow()
    task = get_task(db, task_id)
    outcome = work_timer.resume_session(task, now, requesting_staff, is_operator(db, requesting_staff))
    record_event(
        db, actor=task.assignee, entity="task", entity_id=str(task.id), action="task_resumed",
        details=_task_details(task, outcome), commit=False,
    )
    commit_unit(db, "Task")
    return task


def stop_task(db: Session, task_id: uuid.UUID, requesting_staff: Optional[str] = None, now: Optional[datetime] = None) -> Task:
    now = now or utcnow()
    task = get_task(db, task_id)
    started_at = task.started_at
    holder = task.assignee
    outcome = work_timer.stop_session(task, now, requesting_staff, is_operator(db, requesting_staff))
    actor = requesting_staff or holder or "system"
    if outcome.elapsed_discarded:
        log_discarded_elapsed(db, "task", task, started_at, actor)
    details = _task_details(task, outcome)
    details["assignee"] = holder
    record_event(
        db, actor=actor, entity="task", entity_id=str(task.id), action="task_stopped",
        details=details, commit=False,
    )
    commit_unit(db, "Task")
    return task


_EDITABLE_FIELDS = ("operation", "stage", "planned_minutes", "actual_minutes", "assignee", "notes")


def update_task(db: Session, task_id: uuid.UUID, changes: dict, requesting_staff: Optional[str] = None) -> Task:
    task = get_task(db, task_id)
    changes = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
    if "actual_minutes" in changes and task.is_active:
        raise Conflict("Please pause the timer before editing time")
    if changes.get("stage") == "done" and task.is_active:
        raise Conflict("Stop the timer to complete a running task")
    if task.is_active and changes.get("assignee"):
        _ensure_no_other_active_task(db, task, changes["assignee"])

    before = {field: getattr(task, field) for field in changes}
    if "assignee" in changes:
        work_timer.reassign_session(task, changes["assignee"], is_operator(db, requesting_staff))
    for field, value in changes.items():
        if field != "assignee":
            setattr(task, field, value)
    diff = compute_diff(before, changes)
    if diff:
        record_event(
            db, actor=requesting_staff or "system", entity="task", entity_id=str(task.id),
            action="task_updated", details=diff, commit=False,
        )
    commit_unit(db, "Task")
    return task


def delete_task(db: Session, task_id: uuid.UUID, requesting_staff: Optional[str] = None) -> None:
    """Delete a task that was never started."""
    task = get_task(db, task_id)
    if task.is_active or task.started_at is not None or task.stopped_at is not None or (task.actual_minutes or 0) > 0:
        raise Conflict("Only tasks that were never started can be deleted")
    record_event(
        db, actor=requesting_staff or "system", entity="task", entity_id=str(task.id), action="task_deleted",
        details={"garment_id": str(task.garment_id), "operation": task.operation}, commit=False,
    )
    db.delete(task)
    commit_unit(db, "Task")
