from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.clock import civil_today
from core.database import get_db
from services.entitlements import get_entitlements
from services.identity import Identity
from services.summary import build_summary, summary_window

router = APIRouter(prefix="/v1", tags=["summary"])


@router.get("/summary")
def get_summary(
    days: Optional[int] = Query(default=None, ge=1),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Calories and weight per day ending today; `days` is clamped to [7, plan history]."""
    ent = get_entitlements(db, identity.user_id)
    window = summary_window(ent, days)
    return build_summary(db, identity.user_id, today=civil_today(), days=window)
