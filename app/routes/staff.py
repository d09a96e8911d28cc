from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.staff_service import find_active_task


router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("/{staff_code}/active-task")
def active_task(staff_code: str, db: Session = Depends(get_db)):
    task = find_active_task(db, staff_code)
    return {
        "success": True,
        "has_active_task": task is not None,
        "active_task": task,
    }
