"""
Calorie Goal API Endpoints

The stored goal is the base; the returned `effective_daily_calories`
includes rollover from yesterday when the user has it enabled.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.capabilities import get_capabilities
from core.clock import civil_today
from core.database import get_db
from models import UserProfile
from schemas import CalorieGoalUpdate, GoalResponse
from services.calorie_goals import get_daily_calorie_goal, upsert_daily_calorie_goal
from services.identity import Identity
from services.rollover import DEFAULT_ROLLOVER_CAP, compute_rollover

router = APIRouter(prefix="/v1", tags=["goals"])


def _goal_response(db: Session, identity: Identity) -> GoalResponse:
    today = civil_today()
    base = get_daily_calorie_goal(db, identity.user_id)
    profile = db.get(UserProfile, identity.user_id)

    enabled = False
    cap = DEFAULT_ROLLOVER_CAP
    if get_capabilities(db).rollover_settings and profile is not None:
        enabled = bool(profile.rollover_enabled)
        cap = profile.rollover_cap

    ro = compute_rollover(db, identity.user_id, today, base, enabled=enabled, cap=cap)
    return GoalResponse(
        entry_date=today,
        daily_calories=base,
        rollover_enabled=ro.enabled,
        rollover_cap=ro.cap,
        rollover_delta=ro.delta,
        effective_daily_calories=ro.effective_goal,
    )


@router.get("/goal", response_model=GoalResponse)
def get_goal(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return _goal_response(db, identity)


@router.put("/goal", response_model=GoalResponse)
def set_goal(
    payload: CalorieGoalUpdate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    upsert_daily_calorie_goal(db, identity.user_id, int(round(payload.daily_calories)))
    db.commit()
    return _goal_response(db, identity)
