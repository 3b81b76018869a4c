"""
Calorie rollover.

Carries yesterday's surplus/deficit into today's effective goal, bounded by a
per-user cap. Computed on every read; never stored.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.clock import shift_days
from models import FoodEntry

DEFAULT_ROLLOVER_CAP = 500
MAX_ROLLOVER_CAP = 2000


@dataclass(frozen=True)
class RolloverResult:
    enabled: bool
    cap: int
    delta: int
    effective_goal: Optional[int]

    def to_dict(self) -> dict:
        return asdict(self)


def clamp_rollover_cap(value: Any) -> int:
    try:
        cap = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_ROLLOVER_CAP
    return max(0, min(MAX_ROLLOVER_CAP, cap))


def rollover_delta(base_goal: int, prior_total: Optional[int], cap: int) -> int:
    """
    Clamp (base - prior_total) to [-cap, cap].

    `prior_total` of None means nothing was logged; that is no data, not zero.
    """
    if prior_total is None:
        return 0
    cap = clamp_rollover_cap(cap)
    raw = int(base_goal) - int(prior_total)
    return max(-cap, min(cap, raw))


def day_calorie_total(db: Session, user_id: str, on_date: date) -> Optional[int]:
    """Total calories for a day, or None when the day has no entries at all."""
    count, total = (
        db.query(func.count(FoodEntry.id), func.coalesce(func.sum(FoodEntry.calories), 0))
        .filter(FoodEntry.user_id == user_id, FoodEntry.entry_date == on_date)
        .one()
    )
    if not count:
        return None
    return int(total)


def compute_rollover(
    db: Session,
    user_id: str,
    on_date: date,
    base_goal: Optional[int],
    *,
    enabled: bool,
    cap: Any = DEFAULT_ROLLOVER_CAP,
) -> RolloverResult:
    cap = clamp_rollover_cap(cap if cap is not None else DEFAULT_ROLLOVER_CAP)

    if not enabled or base_goal is None:
        return RolloverResult(enabled=bool(enabled), cap=cap, delta=0, effective_goal=base_goal)

    prior_total = day_calorie_total(db, user_id, shift_days(on_date, -1))
    delta = rollover_delta(base_goal, prior_total, cap)
    return RolloverResult(enabled=True, cap=cap, delta=delta, effective_goal=int(base_goal) + delta)
