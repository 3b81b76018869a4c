"""
Food Entry API Endpoints

Free-tier users are limited in entries per day and in how far back they can
read; denials return the upgrade message as the response detail.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.clock import civil_today, parse_iso_date
from core.database import get_db
from core.exceptions import ForbiddenError, ValidationError
from schemas import FoodDayResponse, FoodEntryCreate, FoodEntryResponse
from services.food_log import create_food_entry, delete_food_entry, list_day_entries
from services.identity import Identity
from services.usage_limits import enforce_food_entry_limit, enforce_history_access

router = APIRouter(prefix="/v1", tags=["entries"])


@router.post("/entries", response_model=FoodEntryResponse, status_code=status.HTTP_201_CREATED)
def add_entry(
    payload: FoodEntryCreate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    entry_date = parse_iso_date(payload.date) or civil_today()

    gate = enforce_food_entry_limit(db, identity.user_id, entry_date)
    if not gate.ok:
        raise ForbiddenError(gate.message, error_code=gate.reason)

    entry = create_food_entry(db, user_id=identity.user_id, entry_date=entry_date, payload=payload)
    db.commit()
    return entry


@router.get("/entries", response_model=FoodDayResponse)
def list_entries(
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD; defaults to today"),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    today = civil_today()
    if date is None:
        entry_date = today
    else:
        entry_date = parse_iso_date(date)
        if entry_date is None:
            raise ValidationError("date must be YYYY-MM-DD", field="date")

    gate = enforce_history_access(db, identity.user_id, entry_date, today)
    if not gate.ok:
        raise ForbiddenError(gate.message, error_code=gate.reason)

    entries = list_day_entries(db, identity.user_id, entry_date)
    return FoodDayResponse(
        entry_date=entry_date,
        entries=[FoodEntryResponse.model_validate(e) for e in entries],
        total_calories=sum(int(e.calories or 0) for e in entries),
    )


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_entry(
    entry_id: int,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    delete_food_entry(db, identity.user_id, entry_id)
    db.commit()
    return None
