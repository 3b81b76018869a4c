from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.database import dialect_insert
from models import CalorieGoal


def get_daily_calorie_goal(db: Session, user_id: str) -> Optional[int]:
    row = db.get(CalorieGoal, user_id)
    return int(row.daily_calories) if row is not None else None


def upsert_daily_calorie_goal(db: Session, user_id: str, daily_calories: int) -> int:
    """One goal row per user; insert or overwrite."""
    value = int(daily_calories)
    stmt = dialect_insert(db, CalorieGoal.__table__).values(user_id=user_id, daily_calories=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=[CalorieGoal.__table__.c.user_id],
        set_={"daily_calories": stmt.excluded.daily_calories, "updated_at": func.now()},
    )
    db.execute(stmt)
    # The identity map may hold a stale row for this user.
    existing = db.get(CalorieGoal, user_id)
    if existing is not None:
        db.refresh(existing)
    return value
