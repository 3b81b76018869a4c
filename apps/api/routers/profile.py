from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.database import get_db
from models import UserProfile
from schemas import ProfileGoalsResponse, ProfileGoalsUpdate
from services.identity import Identity

router = APIRouter(prefix="/v1/profile", tags=["profile"])


@router.get("/goals", response_model=ProfileGoalsResponse)
def get_profile_goals(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return db.get(UserProfile, identity.user_id)


@router.put("/goals", response_model=ProfileGoalsResponse)
def update_profile_goals(
    payload: ProfileGoalsUpdate,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Partial update: only fields present in the body change (null clears)."""
    profile = db.get(UserProfile, identity.user_id)
    for name, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, name, value)
    db.commit()
    return profile
