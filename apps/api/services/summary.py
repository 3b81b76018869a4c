"""
Multi-day summary: a dense per-day series of calories eaten and weigh-ins.

Days without entries report 0 calories; days without a weigh-in report a
null weight. The window is at least a week and at most the plan's history
(60 days for premium).
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.clock import shift_days
from models import DailyWeight, FoodEntry
from services.entitlements import DEFAULT_PLAN_CONFIG, Entitlements

MIN_SUMMARY_DAYS = 7
PREMIUM_SUMMARY_DAYS = 60


def summary_window(ent: Entitlements, requested: Optional[int]) -> int:
    if ent.is_premium:
        max_days = PREMIUM_SUMMARY_DAYS
    else:
        max_days = ent.limits.history_days or DEFAULT_PLAN_CONFIG.free_history_days
    return min(max_days, max(MIN_SUMMARY_DAYS, requested or MIN_SUMMARY_DAYS))


def build_summary(db: Session, user_id: str, *, today: date, days: int) -> dict:
    start = shift_days(today, -(days - 1))

    calories = dict(
        db.query(FoodEntry.entry_date, func.sum(FoodEntry.calories))
        .filter(FoodEntry.user_id == user_id, FoodEntry.entry_date >= start, FoodEntry.entry_date <= today)
        .group_by(FoodEntry.entry_date)
        .all()
    )
    weights = dict(
        db.query(DailyWeight.entry_date, DailyWeight.weight_lbs)
        .filter(DailyWeight.user_id == user_id, DailyWeight.entry_date >= start, DailyWeight.entry_date <= today)
        .all()
    )

    series = []
    for i in range(days):
        day = shift_days(start, i)
        weight = weights.get(day)
        series.append(
            {
                "entry_date": day.isoformat(),
                "total_calories": int(calories.get(day) or 0),
                "weight_lbs": float(weight) if weight is not None else None,
            }
        )
    return {"from": start.isoformat(), "to": today.isoformat(), "days": days, "series": series}
