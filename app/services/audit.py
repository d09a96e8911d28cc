"""
Event log service.
Append-only audit trail with integrity hashing.
"""
import hashlib
import hmac
import json
from datetime import datetime
from typing import Optional, Dict, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import EventLog
from ..config import settings
from .time_rules import ensure_utc, utcnow

logger = structlog.get_logger(__name__)


def _canonical_timestamp(value: datetime) -> str:
    # Same instant hashes the same whatever offset the database hands back
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _integrity_hash(payload: Dict[str, Any], secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in payload.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    hash_input = f"{canonical_json}:{secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def record_event(
    db: Session,
    actor: str,
    entity: str,
    entity_id: str,
    action: str,
    details: Optional[Dict] = None,
    commit: bool = True,
    integrity_secret: Optional[str] = None,
) -> EventLog:
    """
    Append an event log entry.

    Args:
        db: Database session
        actor: Who performed the action (staff code, cron-stale-timers, system)
        entity: Type of entity (garment|task|order)
        entity_id: Entity ID
        action: Action performed (timer_started|timer_stopped|timer_auto_terminated|...)
        details: Free-form context for the action
        commit: Commit right away; pass False to ride along with the caller's commit
        integrity_secret: Secret for integrity hash (defaults to EVENT_LOG_SECRET)

    Returns:
        Created EventLog object
    """
    created_at = utcnow()
    if integrity_secret is None:
        integrity_secret = settings.event_log_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = _integrity_hash(
            {
                "actor": actor,
                "entity": entity,
                "entity_id": str(entity_id),
                "action": action,
                "details": details,
                "created_at": _canonical_timestamp(created_at),
            },
            integrity_secret,
        )

    entry = EventLog(
        actor=actor,
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        details=details,
        created_at=created_at,
        integrity_hash=integrity_hash,
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry


def record_event_quietly(db: Session, **kwargs) -> Optional[EventLog]:
    """Fire-and-forget variant: a failed write is rolled back and logged, never raised."""
    try:
        return record_event(db, **kwargs)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "event_log_write_failed",
            entity=kwargs.get("entity"),
            entity_id=str(kwargs.get("entity_id")),
            action=kwargs.get("action"),
            error=str(exc),
        )
        return None


def get_events(
    db: Session,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """
    Get event log entries with optional filtering, newest first.
    """
    query = db.query(EventLog)

    if entity:
        query = query.filter(EventLog.entity == entity)

    if entity_id:
        query = query.filter(EventLog.entity_id == str(entity_id))

    query = query.order_by(EventLog.created_at.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Changed fields as {field: {"before": old, "after": new}}."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in set(before) | set(after)
        if before.get(key) != after.get(key)
    }


def verify_event(entry: EventLog, integrity_secret: Optional[str] = None) -> Optional[bool]:
    """Recompute an entry's hash. None when hashing is disabled or the entry was written without one."""
    secret = integrity_secret if integrity_secret is not None else settings.event_log_secret
    if not secret or not entry.integrity_hash:
        return None
    expected = _integrity_hash(
        {
            "actor": entry.actor,
            "entity": entry.entity,
            "entity_id": entry.entity_id,
            "action": entry.action,
            "details": entry.details,
            "created_at": _canonical_timestamp(entry.created_at),
        },
        secret,
    )
    return hmac.compare_digest(expected, entry.integrity_hash)
