"""
Calorie Autopilot API Endpoints

GET returns the weekly status plus the current suggestion (or the reason it
is not ready). Accepting or declining marks the week as reviewed.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.clock import civil_today
from core.database import get_db
from models import UserProfile
from schemas import AutopilotReviewRequest, AutopilotSettingsUpdate
from services.autopilot import build_suggestion, review_status, review_suggestion, update_autopilot_settings
from services.identity import Identity

router = APIRouter(prefix="/v1/autopilot", tags=["autopilot"])


def _settings(profile: UserProfile) -> dict:
    return {
        "autopilot_enabled": bool(profile.autopilot_enabled),
        "autopilot_mode": profile.autopilot_mode or "weight",
        "last_review_week": profile.autopilot_last_review_week.isoformat() if profile.autopilot_last_review_week else None,
    }


@router.get("")
def get_autopilot(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    today = civil_today()
    profile = db.get(UserProfile, identity.user_id)
    suggestion = build_suggestion(db, profile, today)
    return {
        **_settings(profile),
        **review_status(profile, today),
        "suggestion": suggestion.to_dict(),
    }


@router.put("/settings")
def set_autopilot_settings(
    payload: AutopilotSettingsUpdate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    profile = db.get(UserProfile, identity.user_id)
    update_autopilot_settings(db, profile, enabled=payload.autopilot_enabled, mode=payload.autopilot_mode)
    db.commit()
    return _settings(profile)


@router.post("/review")
def review_autopilot(
    payload: AutopilotReviewRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    profile = db.get(UserProfile, identity.user_id)
    result = review_suggestion(db, profile, accept=payload.accept, today=civil_today())
    db.commit()
    return result
