"""
Work session state machine shared by garments and tasks.

A timed unit is any row carrying the TimedWorkMixin columns. Its state is
derived from those columns:

    idle     never run, not active
    running  is_active
    paused   not active, stopped_at set, stage != done
    done     stage == done

The functions here only mutate the unit in memory. Persisting, logging and
the version check happen in the callers.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..errors import Conflict, PermissionDenied, ValidationError
from .permissions import can_control_session
from .time_rules import elapsed_seconds, parse_timestamp, round_minutes, utc_to_local

IDLE = "idle"
RUNNING = "running"
PAUSED = "paused"
DONE = "done"


@dataclass
class SessionOutcome:
    elapsed_seconds: float = 0.0
    added_minutes: float = 0.0
    elapsed_discarded: bool = False


def work_state(unit) -> str:
    if unit.is_active:
        return RUNNING
    if unit.stage == "done":
        return DONE
    if unit.stopped_at is not None:
        return PAUSED
    return IDLE


def _check_control(unit, requesting_staff: Optional[str], operator: bool) -> None:
    if not can_control_session(unit, requesting_staff, operator):
        raise PermissionDenied(f"Timer is held by {unit.assignee}")


def _close_session(unit, now: datetime) -> SessionOutcome:
    seconds = elapsed_seconds(unit.started_at, now)
    if seconds is None:
        return SessionOutcome(elapsed_discarded=True)
    minutes = seconds / 60
    unit.actual_minutes = (unit.actual_minutes or 0) + minutes
    return SessionOutcome(elapsed_seconds=seconds, added_minutes=minutes)


def start_session(unit, assignee: str, now: datetime) -> SessionOutcome:
    """Start timing. The first start wins; accumulated time is kept."""
    if not assignee:
        raise ValidationError("assignee is required to start a timer")
    if work_state(unit) == RUNNING:
        raise Conflict("Timer already running")
    unit.is_active = True
    unit.started_at = now
    unit.stage = "working"
    unit.assignee = assignee
    return SessionOutcome()


def pause_session(unit, now: datetime, requesting_staff: Optional[str] = None, operator: bool = False) -> SessionOutcome:
    if work_state(unit) != RUNNING:
        raise Conflict("Timer not running")
    _check_control(unit, requesting_staff, operator)
    outcome = _close_session(unit, now)
    unit.is_active = False
    unit.stopped_at = now
    unit.started_at = None
    return outcome


def resume_session(unit, now: datetime, requesting_staff: Optional[str] = None, operator: bool = False) -> SessionOutcome:
    if work_state(unit) != PAUSED:
        raise Conflict("Timer is not paused")
    _check_control(unit, requesting_staff, operator)
    assignee = unit.assignee or requesting_staff
    if not assignee:
        raise ValidationError("staff is required to resume an unassigned timer")
    unit.is_active = True
    unit.started_at = now
    unit.stage = "working"
    unit.assignee = assignee
    return SessionOutcome()


def stop_session(unit, now: datetime, requesting_staff: Optional[str] = None, operator: bool = False) -> SessionOutcome:
    if work_state(unit) != RUNNING:
        raise Conflict("Timer not running")
    _check_control(unit, requesting_staff, operator)
    outcome = _close_session(unit, now)
    if not outcome.elapsed_discarded:
        unit.actual_minutes = round_minutes(unit.actual_minutes or 0)
    unit.is_active = False
    unit.stopped_at = now
    unit.stage = "done"
    unit.assignee = None
    unit.started_at = None
    return outcome


def reassign_session(unit, new_assignee: Optional[str], operator: bool = False) -> None:
    """Hand a held session to someone else. Only operators reassign a session that has a holder."""
    if new_assignee == unit.assignee:
        return
    if work_state(unit) == RUNNING and not new_assignee:
        raise Conflict("A running task must keep its assignee")
    if unit.assignee and work_state(unit) in (RUNNING, PAUSED) and not operator:
        raise PermissionDenied(f"Timer is held by {unit.assignee}")
    unit.assignee = new_assignee


def force_stop_session(unit, now: datetime, capped_minutes: int) -> float:
    """Terminate a forgotten session, crediting a fixed number of minutes. Returns the new total."""
    unit.actual_minutes = (unit.actual_minutes or 0) + capped_minutes
    unit.is_active = False
    unit.stopped_at = now
    unit.stage = "done"
    unit.assignee = None
    unit.started_at = None
    return unit.actual_minutes


def set_accumulated_time(unit, hours: int, minutes: int) -> int:
    if work_state(unit) == RUNNING:
        raise Conflict("Please pause the timer before editing time")
    total = hours * 60 + minutes
    unit.actual_minutes = total
    return total


def session_status(unit, now: datetime, timezone_str: Optional[str] = None) -> dict:
    """Read-only projection of a unit's timer. Never mutates."""
    state = work_state(unit)
    current = 0
    if state == RUNNING:
        current = int(elapsed_seconds(unit.started_at, now) or 0)
    accumulated = unit.actual_minutes or 0
    started = parse_timestamp(unit.started_at)
    stopped = parse_timestamp(unit.stopped_at)
    status = {
        "state": state,
        "is_running": state == RUNNING,
        "is_paused": state == PAUSED,
        "is_completed": state == DONE,
        "assignee": unit.assignee,
        "stage": unit.stage,
        "started_at": started.isoformat() if started else None,
        "stopped_at": stopped.isoformat() if stopped else None,
        "accumulated_minutes": accumulated,
        "current_session_seconds": current,
        "total_seconds": int(accumulated * 60) + current,
    }
    if timezone_str and started:
        status["started_at_local"] = utc_to_local(started, timezone_str).isoformat()
    return status
