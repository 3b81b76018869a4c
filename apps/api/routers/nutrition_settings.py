from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.capabilities import get_capabilities
from core.database import get_db
from core.exceptions import SchemaOutdatedError
from models import UserProfile
from schemas import NutritionSettings, NutritionSettingsUpdate
from services.identity import Identity
from services.rollover import clamp_rollover_cap

router = APIRouter(prefix="/v1/nutrition", tags=["nutrition"])


def _require_rollover_schema(db: Session) -> None:
    if not get_capabilities(db).rollover_settings:
        raise SchemaOutdatedError("rollover settings")


@router.get("/settings", response_model=NutritionSettings)
def get_nutrition_settings(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    _require_rollover_schema(db)
    profile = db.get(UserProfile, identity.user_id)
    return NutritionSettings(
        rollover_enabled=bool(profile.rollover_enabled),
        rollover_cap=clamp_rollover_cap(profile.rollover_cap),
    )


@router.put("/settings", response_model=NutritionSettings)
def update_nutrition_settings(
    payload: NutritionSettingsUpdate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    _require_rollover_schema(db)
    profile = db.get(UserProfile, identity.user_id)
    if payload.rollover_enabled is not None:
        profile.rollover_enabled = payload.rollover_enabled
    if payload.rollover_cap is not None:
        profile.rollover_cap = clamp_rollover_cap(payload.rollover_cap)
    db.commit()
    return NutritionSettings(
        rollover_enabled=bool(profile.rollover_enabled),
        rollover_cap=clamp_rollover_cap(profile.rollover_cap),
    )
