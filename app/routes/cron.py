import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..services.reaper import sweep_stale_timers


router = APIRouter(prefix="/cron", tags=["cron"])


def valid_bearer_token(auth_header: Optional[str], expected_secret: Optional[str]) -> bool:
    """Check an ``Authorization: Bearer <secret>`` header in constant time."""
    if not auth_header or not expected_secret:
        return False
    if not auth_header.startswith("Bearer "):
        return False
    token = auth_header[len("Bearer "):]
    return hmac.compare_digest(token.encode("utf-8"), expected_secret.encode("utf-8"))


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    if not valid_bearer_token(authorization, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/stale-timers", dependencies=[Depends(require_cron_secret)])
def stale_timers(db: Session = Depends(get_db)):
    """Auto-terminate timers running longer than the configured ceiling."""
    return sweep_stale_timers(db)
