import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from app.errors import Conflict, NotFound, PermissionDenied
from app.models.models import EventLog, Garment
from app.services import timers

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _actions(db, garment):
    rows = db.query(EventLog).filter(EventLog.entity_id == str(garment.id)).order_by(EventLog.created_at).all()
    return [row.action for row in rows]


def test_start_unknown_order_is_not_found(db):
    with pytest.raises(NotFound):
        timers.start_timer(db, uuid.uuid4(), None, "Alice", now=T0)


def test_garment_from_another_order_is_not_found(db, make_order):
    first = make_order()
    second = make_order()
    with pytest.raises(NotFound):
        timers.start_timer(db, first.id, second.garments[0].id, "Alice", now=T0)


def test_start_without_garment_id_uses_first_garment(db, make_order):
    order = make_order(garments=[[], []])
    garment = timers.start_timer(db, order.id, None, "Alice", now=T0)
    assert garment.label_code == "G-1"
    assert garment.is_active is True


def test_full_cycle_persists_minutes_and_events(db, make_order):
    order = make_order()
    garment_id = order.garments[0].id

    timers.start_timer(db, order.id, garment_id, "Alice", now=T0)
    timers.pause_timer(db, order.id, garment_id, "Alice", now=T0 + timedelta(minutes=20))
    timers.resume_timer(db, order.id, garment_id, "Alice", now=T0 + timedelta(minutes=50))
    garment = timers.stop_timer(db, order.id, garment_id, "Alice", now=T0 + timedelta(minutes=75))

    db.expire_all()
    garment = db.get(Garment, garment_id)
    assert garment.actual_minutes == 45
    assert garment.stage == "done"
    assert garment.assignee is None
    assert garment.is_active is False
    assert sorted(_actions(db, garment)) == ["timer_paused", "timer_resumed", "timer_started", "timer_stopped"]


def test_pause_and_stop_target_the_running_garment(db, make_order):
    order = make_order(garments=[[], []])
    second = order.garments[1]
    timers.start_timer(db, order.id, second.id, "Alice", now=T0)

    paused = timers.pause_timer(db, order.id, None, now=T0 + timedelta(minutes=10))
    assert paused.id == second.id


def test_stop_by_other_staff_leaves_row_unchanged(db, make_order):
    order = make_order()
    garment_id = order.garments[0].id
    timers.start_timer(db, order.id, garment_id, "Alice", now=T0)

    with pytest.raises(PermissionDenied):
        timers.stop_timer(db, order.id, garment_id, "Bob", now=T0 + timedelta(minutes=30))

    db.expire_all()
    garment = db.get(Garment, garment_id)
    assert garment.is_active is True
    assert garment.assignee == "Alice"
    assert garment.actual_minutes == 0


def test_operator_may_stop_any_timer(db, make_order, make_staff):
    make_staff("manager", role="operator")
    order = make_order()
    garment_id = order.garments[0].id
    timers.start_timer(db, order.id, garment_id, "Alice", now=T0)

    garment = timers.stop_timer(db, order.id, garment_id, "manager", now=T0 + timedelta(minutes=30))
    assert garment.actual_minutes == 30


def test_inactive_operator_is_treated_as_staff(db, make_order, make_staff):
    staff = make_staff("manager", role="operator")
    staff.is_active = False
    db.commit()
    order = make_order()
    timers.start_timer(db, order.id, None, "Alice", now=T0)

    with pytest.raises(PermissionDenied):
        timers.stop_timer(db, order.id, None, "manager", now=T0 + timedelta(minutes=30))


def test_corrupt_start_is_discarded_and_recorded(db, make_order):
    order = make_order()
    garment = order.garments[0]
    timers.start_timer(db, order.id, garment.id, "Alice", now=T0)
    garment.actual_minutes = 12
    db.commit()
    db.refresh(garment)
    # Value as a bad client write would leave it; never flushed
    garment.started_at = "31/02/2026 9am"

    timers.pause_timer(db, order.id, garment.id, now=T0 + timedelta(minutes=5))

    assert garment.actual_minutes == 12
    assert garment.is_active is False
    assert "timer_elapsed_discarded" in _actions(db, garment)


def test_concurrent_modification_is_a_conflict(db, make_order):
    order = make_order()
    garment = order.garments[0]
    timers.start_timer(db, order.id, garment.id, "Alice", now=T0)
    assert garment.version == 2

    # Another writer bumps the row behind this session's back
    table = Garment.__table__
    db.execute(update(table).where(table.c.id == garment.id).values(version=table.c.version + 1))

    with pytest.raises(Conflict):
        timers.pause_timer(db, order.id, garment.id, "Alice", now=T0 + timedelta(minutes=5))


def test_manual_update_requires_paused_timer(db, make_order):
    order = make_order()
    garment_id = order.garments[0].id
    timers.start_timer(db, order.id, garment_id, "Alice", now=T0)
    with pytest.raises(Conflict):
        timers.manual_update_timer(db, order.id, garment_id, 1, 30)

    timers.pause_timer(db, order.id, garment_id, now=T0 + timedelta(minutes=5))
    garment = timers.manual_update_timer(db, order.id, garment_id, 1, 30)
    assert garment.actual_minutes == 90


def test_status_projection(db, make_order):
    order = make_order()
    garment_id = order.garments[0].id
    timers.start_timer(db, order.id, garment_id, "Alice", now=T0)

    status = timers.get_timer_status(db, order.id, garment_id, now=T0 + timedelta(minutes=2))
    assert status["is_running"] is True
    assert status["current_session_seconds"] == 120
    assert status["total_seconds"] == 120
    assert status["garment_id"] == str(garment_id)
