from app.models.models import EventLog
from app.services.audit import compute_diff, get_events, record_event, verify_event
from app.services.time_rules import ensure_utc


def test_recorded_event_verifies(db):
    entry = record_event(db, "Alice", "garment", "g-1", "timer_started", {"actual_minutes": 0.0})
    db.expire_all()

    stored = db.get(EventLog, entry.id)
    assert verify_event(stored) is True


def test_tampered_event_fails_verification(db):
    entry = record_event(db, "Alice", "garment", "g-1", "timer_stopped", {"actual_minutes": 30})
    entry.details = {"actual_minutes": 300}
    db.commit()

    assert verify_event(db.get(EventLog, entry.id)) is False


def test_hashing_disabled(db):
    entry = record_event(db, "Alice", "garment", "g-1", "timer_started", integrity_secret="")
    assert entry.integrity_hash is None
    assert verify_event(entry) is None


def test_get_events_filters_by_entity(db):
    record_event(db, "Alice", "garment", "g-1", "timer_started")
    record_event(db, "Alice", "task", "t-1", "task_started")

    assert [e.action for e in get_events(db, entity="task")] == ["task_started"]
    assert [e.entity_id for e in get_events(db, entity="garment", entity_id="g-1")] == ["g-1"]


def test_compute_diff_only_reports_changes():
    diff = compute_diff({"notes": "a", "planned_minutes": 30}, {"notes": "a", "planned_minutes": 45})
    assert diff == {"planned_minutes": {"before": 30, "after": 45}}


def test_verification_ignores_the_offset_the_database_returns(db):
    import pytz

    entry = record_event(db, "Alice", "garment", "g-1", "timer_started", {"actual_minutes": 0})
    # Postgres hands timestamptz back in the session time zone
    entry.created_at = ensure_utc(entry.created_at).astimezone(pytz.timezone("America/Toronto"))
    assert verify_event(entry) is True

    # SQLite hands it back naive
    entry.created_at = entry.created_at.astimezone(pytz.UTC).replace(tzinfo=None)
    assert verify_event(entry) is True
