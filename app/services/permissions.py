"""
Permission checks for work timer sessions.
"""
from typing import Optional
from sqlalchemy.orm import Session

from ..models.models import Staff


def is_operator(db: Session, staff_code: Optional[str]) -> bool:
    """Check if the staff member holds the operator role."""
    if not staff_code:
        return False
    staff = db.query(Staff).filter(Staff.code == staff_code).first()
    if not staff or not staff.is_active:
        return False
    return staff.role == "operator"


def can_control_session(unit, requesting_staff: Optional[str], operator: bool = False) -> bool:
    """
    Check if a requester may pause, resume or stop a work session.
    - Anonymous requests (shared kiosk) are allowed
    - The current holder of the session is allowed
    - Operators may control any session
    """
    if not requesting_staff:
        return True
    if operator:
        return True
    if unit.assignee is None:
        return True
    return unit.assignee == requesting_staff
