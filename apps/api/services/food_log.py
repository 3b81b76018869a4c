from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from core.clock import utc_now
from core.exceptions import NotFoundError
from models import FoodEntry
from schemas import FoodEntryCreate, RawExtractionMeta


def _round_or_none(value: Optional[float]) -> Optional[int]:
    return None if value is None else int(round(value))


def _raw_extraction(payload: FoodEntryCreate) -> dict:
    meta = payload.raw_extraction_meta or RawExtractionMeta()
    if payload.is_label:
        return {
            "source": "nutrition_label",
            "confidence": meta.confidence or "high",
            "estimated": False,
            "notes": meta.notes,
        }
    source = meta.source or "plate_photo"
    return {
        "source": source,
        "confidence": meta.confidence or "low",
        "estimated": meta.estimated if meta.estimated is not None else source == "plate_photo",
        "notes": meta.notes,
    }


def create_food_entry(
    db: Session,
    *,
    user_id: str,
    entry_date: date,
    payload: FoodEntryCreate,
    now: Optional[datetime] = None,
) -> FoodEntry:
    """Insert one entry. Callers run the food entry gate first."""
    if payload.is_label:
        servings = float(payload.servings_eaten)
        calories = _round_or_none(payload.calories_per_serving * servings)
        protein = _round_or_none(payload.protein_g_per_serving * servings) if payload.protein_g_per_serving is not None else None
        carbs = _round_or_none(payload.carbs_g_per_serving * servings) if payload.carbs_g_per_serving is not None else None
        fat = _round_or_none(payload.fat_g_per_serving * servings) if payload.fat_g_per_serving is not None else None
    else:
        calories = _round_or_none(payload.calories)
        protein = _round_or_none(payload.protein_g)
        carbs = _round_or_none(payload.carbs_g)
        fat = _round_or_none(payload.fat_g)

    entry = FoodEntry(
        user_id=user_id,
        entry_date=entry_date,
        taken_at=now or utc_now(),
        food_name=(payload.food_name or "").strip() or None,
        calories=calories,
        protein_g=protein,
        carbs_g=carbs,
        fat_g=fat,
        raw_extraction=_raw_extraction(payload),
    )
    db.add(entry)
    db.flush()
    db.refresh(entry)
    return entry


def list_day_entries(db: Session, user_id: str, entry_date: date) -> List[FoodEntry]:
    return (
        db.query(FoodEntry)
        .filter(FoodEntry.user_id == user_id, FoodEntry.entry_date == entry_date)
        .order_by(FoodEntry.taken_at.asc(), FoodEntry.id.asc())
        .all()
    )


def delete_food_entry(db: Session, user_id: str, entry_id: int) -> None:
    entry = db.query(FoodEntry).filter(FoodEntry.id == entry_id, FoodEntry.user_id == user_id).first()
    if entry is None:
        raise NotFoundError("Food entry", str(entry_id))
    db.delete(entry)
    db.flush()
