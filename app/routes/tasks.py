import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.tasks import (
    AutoCreateTasksRequest,
    TaskControlRequest,
    TaskResponse,
    TaskStartRequest,
    TaskUpdate,
)
from ..services import task_service


router = APIRouter(prefix="/tasks", tags=["tasks"])


def _serialize_task(task) -> dict:
    return TaskResponse.model_validate(task).model_dump(mode="json")


@router.post("/auto-create")
def auto_create(payload: AutoCreateTasksRequest, db: Session = Depends(get_db)):
    result = task_service.auto_create_tasks(db, payload.order_id)
    if not result.success:
        raise HTTPException(status_code=500, detail=f"{result.message}: {result.error}")
    return result.to_dict()


@router.get("/order/{order_id}")
def list_order_tasks(order_id: uuid.UUID, db: Session = Depends(get_db)):
    return [_serialize_task(t) for t in task_service.list_order_tasks(db, order_id)]


@router.get("/{task_id}")
def get_task(task_id: uuid.UUID, db: Session = Depends(get_db)):
    return _serialize_task(task_service.get_task(db, task_id))


@router.patch("/{task_id}")
def update_task(task_id: uuid.UUID, payload: TaskUpdate, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True, exclude={"staff"})
    task = task_service.update_task(db, task_id, changes, payload.staff)
    return _serialize_task(task)


@router.delete("/{task_id}")
def delete_task(task_id: uuid.UUID, staff: Optional[str] = None, db: Session = Depends(get_db)):
    task_service.delete_task(db, task_id, staff)
    return {"status": "ok"}


@router.post("/{task_id}/start")
def start_task(task_id: uuid.UUID, payload: TaskStartRequest, db: Session = Depends(get_db)):
    task = task_service.start_task(db, task_id, payload.assignee)
    return _serialize_task(task)


@router.post("/{task_id}/pause")
def pause_task(task_id: uuid.UUID, payload: TaskControlRequest, db: Session = Depends(get_db)):
    return _serialize_task(task_service.pause_task(db, task_id, payload.staff))


@router.post("/{task_id}/resume")
def resume_task(task_id: uuid.UUID, payload: TaskControlRequest, db: Session = Depends(get_db)):
    return _serialize_task(task_service.resume_task(db, task_id, payload.staff))


@router.post("/{task_id}/stop")
def stop_task(task_id: uuid.UUID, payload: TaskControlRequest, db: Session = Depends(get_db)):
    return _serialize_task(task_service.stop_task(db, task_id, payload.staff))
