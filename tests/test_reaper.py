from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.models.models import EventLog, Garment, Task
from app.services import reaper

NOW = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)


def _run(db, garment, started_at, assignee="Alice", minutes=15):
    garment.is_active = True
    garment.stage = "working"
    garment.assignee = assignee
    garment.started_at = started_at
    garment.actual_minutes = minutes
    db.commit()


def test_stale_timer_is_capped_at_ceiling(db, make_order):
    order = make_order()
    garment = order.garments[0]
    _run(db, garment, NOW - timedelta(hours=11))

    result = reaper.sweep_stale_timers(db, now=NOW, max_hours=10)

    assert result["terminated_count"] == 1
    assert result["max_hours"] == 10
    db.expire_all()
    garment = db.get(Garment, garment.id)
    assert garment.actual_minutes == 15 + 600
    assert garment.stage == "done"
    assert garment.assignee is None
    assert garment.is_active is False
    assert garment.started_at is None

    entry = db.query(EventLog).filter(EventLog.action == "timer_auto_terminated").one()
    assert entry.actor == "cron-stale-timers"
    assert entry.entity == "garment"
    assert entry.details["capped_at_minutes"] == 600
    assert entry.details["assignee"] == "Alice"
    assert entry.details["final_actual_minutes"] == 615


def test_cap_ignores_how_old_the_timer_is(db, make_order):
    order = make_order()
    garment = order.garments[0]
    _run(db, garment, NOW - timedelta(days=4), minutes=0)

    reaper.sweep_stale_timers(db, now=NOW, max_hours=10)

    db.expire_all()
    assert db.get(Garment, garment.id).actual_minutes == 600


def test_recent_and_paused_timers_are_left_alone(db, make_order):
    order = make_order(garments=[[], []])
    recent, paused = order.garments
    _run(db, recent, NOW - timedelta(hours=2))
    paused.stage = "working"
    paused.stopped_at = NOW - timedelta(hours=30)
    paused.actual_minutes = 20
    db.commit()

    result = reaper.sweep_stale_timers(db, now=NOW, max_hours=10)

    assert result["terminated_count"] == 0
    db.expire_all()
    assert db.get(Garment, recent.id).is_active is True
    assert db.get(Garment, paused.id).actual_minutes == 20


def test_stale_task_timers_are_swept_too(db, make_order):
    order = make_order()
    task = Task(
        garment_id=order.garments[0].id,
        operation="Hem",
        stage="working",
        is_active=True,
        assignee="Alice",
        started_at=NOW - timedelta(hours=12),
        actual_minutes=0,
    )
    db.add(task)
    db.commit()

    result = reaper.sweep_stale_timers(db, now=NOW, max_hours=10)

    assert [t["entity"] for t in result["terminated"]] == ["task"]
    db.expire_all()
    task = db.get(Task, task.id)
    assert task.actual_minutes == 600
    assert task.stage == "done"


def test_failed_row_is_skipped_and_sweep_continues(db, make_order, monkeypatch):
    order = make_order(garments=[[], []])
    for garment in order.garments:
        _run(db, garment, NOW - timedelta(hours=11))
    garment_ids = [g.id for g in order.garments]

    real_commit = db.commit
    calls = {"n": 0}

    def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE garments", {}, Exception("database is locked"))
        return real_commit()

    monkeypatch.setattr(db, "commit", flaky_commit)
    result = reaper.sweep_stale_timers(db, now=NOW, max_hours=10)
    monkeypatch.undo()

    assert result["terminated_count"] == 1
    db.expire_all()
    states = sorted(db.get(Garment, gid).is_active for gid in garment_ids)
    assert states == [False, True]


def test_event_log_failure_does_not_undo_the_stop(db, make_order, monkeypatch):
    order = make_order()
    garment = order.garments[0]
    _run(db, garment, NOW - timedelta(hours=11))

    def broken_record_event(*args, **kwargs):
        raise OperationalError("INSERT INTO event_log", {}, Exception("disk full"))

    monkeypatch.setattr("app.services.audit.record_event", broken_record_event)
    result = reaper.sweep_stale_timers(db, now=NOW, max_hours=10)

    assert result["terminated_count"] == 1
    db.expire_all()
    assert db.get(Garment, garment.id).is_active is False


def test_default_ceiling_comes_from_settings(db, make_order):
    order = make_order()
    _run(db, order.garments[0], NOW - timedelta(hours=9))
    assert reaper.sweep_stale_timers(db, now=NOW)["terminated_count"] == 0
    assert reaper.sweep_stale_timers(db, now=NOW + timedelta(hours=2))["terminated_count"] == 1
