"""
Data Export Service

Premium users can download everything they have logged: the calorie goal,
food entries (hot rows only; archived rows are past the retention window)
and weigh-ins.

Two formats:
- json: one document with goal, profile goals, entries and weights
- csv: food entries only, one row per entry
"""

import csv
import io
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from models import CalorieGoal, DailyWeight, FoodEntry, UserProfile


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


ENTRY_CSV_FIELDS = ["id", "entry_date", "taken_at", "food_name", "calories", "protein_g", "carbs_g", "fat_g", "source"]


def _iso(value: Any) -> Any:
    return value.isoformat() if value is not None and hasattr(value, "isoformat") else value


def _entry_dict(entry: FoodEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "entry_date": _iso(entry.entry_date),
        "taken_at": _iso(entry.taken_at),
        "food_name": entry.food_name,
        "calories": entry.calories,
        "protein_g": entry.protein_g,
        "carbs_g": entry.carbs_g,
        "fat_g": entry.fat_g,
        "raw_extraction": entry.raw_extraction,
    }


def _user_entries(db: Session, user_id: str) -> List[FoodEntry]:
    return (
        db.query(FoodEntry)
        .filter(FoodEntry.user_id == user_id)
        .order_by(FoodEntry.entry_date.asc(), FoodEntry.taken_at.asc(), FoodEntry.id.asc())
        .all()
    )


def build_user_export(db: Session, user_id: str, *, now: datetime) -> Dict[str, Any]:
    goal = db.get(CalorieGoal, user_id)
    profile = db.get(UserProfile, user_id)
    weights = (
        db.query(DailyWeight)
        .filter(DailyWeight.user_id == user_id)
        .order_by(DailyWeight.entry_date.asc())
        .all()
    )

    profile_goals = None
    if profile is not None:
        profile_goals = {
            "goal_weight_lbs": profile.goal_weight_lbs,
            "goal_date": _iso(profile.goal_date),
            "goal_body_fat_percent": profile.goal_body_fat_percent,
            "goal_body_fat_date": _iso(profile.goal_body_fat_date),
            "current_body_fat_percent": profile.current_body_fat_percent,
            "current_body_fat_weight_lbs": profile.current_body_fat_weight_lbs,
        }

    return {
        "user_id": user_id,
        "exported_at": _iso(now),
        "goal": {"daily_calories": goal.daily_calories} if goal else None,
        "profile_goals": profile_goals,
        "entries": [_entry_dict(e) for e in _user_entries(db, user_id)],
        "weights": [
            {
                "entry_date": _iso(w.entry_date),
                "weight_lbs": w.weight_lbs,
                "body_fat_percent": w.body_fat_percent,
            }
            for w in weights
        ],
    }


def entries_to_csv(db: Session, user_id: str) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=ENTRY_CSV_FIELDS)
    writer.writeheader()
    for entry in _user_entries(db, user_id):
        row = _entry_dict(entry)
        raw = row.pop("raw_extraction") or {}
        row["source"] = raw.get("source") if isinstance(raw, dict) else None
        writer.writerow(row)
    return buf.getvalue()
