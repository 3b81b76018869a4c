"""
Admin API Endpoints

Operator actions behind the shared `X-Admin-Token` header. Every mutation
writes an admin audit row.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import require_admin_token
from core.database import get_db
from core.exceptions import ServiceUnavailableError
from schemas import PlanSettingsUpdate, PremiumPassGrant, RetentionRunRequest
from services import stripe_service
from services.entitlements import get_entitlements, grant_premium_pass, load_plan_config, update_plan_settings
from services.reconciliation import reconcile_subscriptions
from services.retention import run_retention

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post("/subscriptions/reconcile")
def reconcile_now(actor: str = Depends(require_admin_token), db: Session = Depends(get_db)):
    """Run the subscription reconciliation pass immediately."""
    if not stripe_service.stripe_configured():
        raise ServiceUnavailableError("Stripe not configured")
    result = reconcile_subscriptions(db, actor=actor)
    db.commit()
    return {"ok": True, **result}


@router.post("/premium-pass")
def set_premium_pass(
    payload: PremiumPassGrant,
    actor: str = Depends(require_admin_token),
    db: Session = Depends(get_db),
):
    profile = grant_premium_pass(
        db,
        identifier=payload.identifier,
        active=payload.active,
        expires_at=payload.expires_at,
        note=payload.note,
        actor=actor,
    )
    db.commit()
    ent = get_entitlements(db, profile.user_id)
    return {
        "user_id": profile.user_id,
        "email": profile.email,
        "premium_pass": bool(profile.premium_pass),
        "premium_pass_expires_at": (
            profile.premium_pass_expires_at.isoformat() if profile.premium_pass_expires_at else None
        ),
        "premium_pass_note": profile.premium_pass_note,
        "entitlements": ent.to_dict(),
    }


@router.get("/plan-settings")
def get_plan_settings(actor: str = Depends(require_admin_token), db: Session = Depends(get_db)):
    return asdict(load_plan_config(db))


@router.put("/plan-settings")
def put_plan_settings(
    payload: PlanSettingsUpdate,
    actor: str = Depends(require_admin_token),
    db: Session = Depends(get_db),
):
    config = update_plan_settings(db, changes=payload.model_dump(exclude_unset=True), actor=actor)
    db.commit()
    return asdict(config)


@router.post("/retention/run")
def run_retention_now(
    payload: Optional[RetentionRunRequest] = None,
    actor: str = Depends(require_admin_token),
    db: Session = Depends(get_db),
):
    payload = payload or RetentionRunRequest()
    result = run_retention(
        db,
        keep_days=payload.keep_days,
        max_db_size_gb=payload.max_db_size_gb,
        trim_batch_size=payload.trim_batch_size,
        trim_pass_limit=payload.trim_pass_limit,
    )
    db.commit()
    logger.info(f"Retention run by {actor}: {result}")
    return {"ok": True, **result}
