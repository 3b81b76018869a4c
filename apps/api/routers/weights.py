from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.clock import civil_today
from core.database import get_db
from schemas import WeightResponse, WeightUpsert
from services.entitlements import get_entitlements
from services.identity import Identity
from services.weights import PREMIUM_MAX_DAYS, list_weights, upsert_daily_weight

router = APIRouter(prefix="/v1", tags=["weights"])


@router.put("/weights", response_model=WeightResponse)
def set_weight(
    payload: WeightUpsert,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    row = upsert_daily_weight(
        db,
        user_id=identity.user_id,
        entry_date=payload.entry_date or civil_today(),
        weight_lbs=payload.weight_lbs,
        body_fat_percent=payload.body_fat_percent,
    )
    db.commit()
    return row


@router.get("/weights", response_model=List[WeightResponse])
def get_weights(
    days: Optional[int] = Query(default=None, ge=1),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Weigh-ins for the last `days` days, capped by the plan's history window."""
    ent = get_entitlements(db, identity.user_id)
    max_days = PREMIUM_MAX_DAYS if ent.is_premium else int(ent.limits.history_days)
    window = min(days or max_days, max_days)
    return list_weights(db, identity.user_id, today=civil_today(), days=window)
