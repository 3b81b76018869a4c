from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.clock import shift_days
from core.database import dialect_insert
from models import DailyWeight

PREMIUM_MAX_DAYS = 365


def upsert_daily_weight(
    db: Session,
    *,
    user_id: str,
    entry_date: date,
    weight_lbs: float,
    body_fat_percent: Optional[float] = None,
) -> DailyWeight:
    """One weigh-in per (user, date); a second weigh-in the same day replaces the first."""
    table = DailyWeight.__table__
    stmt = dialect_insert(db, table).values(
        user_id=user_id,
        entry_date=entry_date,
        weight_lbs=float(weight_lbs),
        body_fat_percent=body_fat_percent,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.entry_date],
        set_={
            "weight_lbs": stmt.excluded.weight_lbs,
            "body_fat_percent": stmt.excluded.body_fat_percent,
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)
    return (
        db.query(DailyWeight)
        .populate_existing()
        .filter(DailyWeight.user_id == user_id, DailyWeight.entry_date == entry_date)
        .one()
    )


def list_weights(db: Session, user_id: str, *, today: date, days: int) -> List[DailyWeight]:
    start = shift_days(today, -(max(1, days) - 1))
    return (
        db.query(DailyWeight)
        .filter(DailyWeight.user_id == user_id, DailyWeight.entry_date >= start, DailyWeight.entry_date <= today)
        .order_by(DailyWeight.entry_date.asc())
        .all()
    )
