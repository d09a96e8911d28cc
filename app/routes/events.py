from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.audit import get_events, verify_event


router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
def list_events(
    entity: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return [
        {
            "id": str(e.id),
            "actor": e.actor,
            "entity": e.entity,
            "entity_id": e.entity_id,
            "action": e.action,
            "details": e.details,
            "created_at": e.created_at.isoformat(),
            "integrity_hash": e.integrity_hash,
            "integrity_ok": verify_event(e),
        }
        for e in get_events(db, entity=entity, entity_id=entity_id, limit=limit, offset=offset)
    ]
