from __future__ import annotations

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_identity, get_signed_identity
from core.capabilities import get_capabilities
from core.clock import civil_today
from core.database import get_db
from models import UserProfile
from schemas import CheckoutRequest
from services.billing_links import checkout_link, manage_subscription_link
from services.entitlements import get_entitlements
from services.identity import Identity
from services.stripe_webhook import ingest_stripe_event
from services.usage_limits import usage_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])


@router.get("/status")
def billing_status(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Plan, pricing, limits and today's usage for the caller."""
    ent = get_entitlements(db, identity.user_id)
    profile = db.get(UserProfile, identity.user_id)
    period_end = profile.subscription_current_period_end if profile else None
    pass_expires_at = None
    if profile is not None and get_capabilities(db).premium_pass:
        pass_expires_at = profile.premium_pass_expires_at
    return {
        "user_id": identity.user_id,
        "identity_type": identity.identity_type,
        "entitlements": ent.to_dict(),
        "subscription_status": profile.subscription_status if profile else None,
        "subscription_current_period_end": period_end.isoformat() if period_end else None,
        "premium_pass_expires_at": pass_expires_at.isoformat() if pass_expires_at else None,
        "usage_today": usage_today(db, identity.user_id, civil_today(), ent),
    }


@router.post("/checkout")
def create_checkout(
    payload: Optional[CheckoutRequest] = None,
    identity: Identity = Depends(get_signed_identity),
    db: Session = Depends(get_db),
):
    """
    Start an upgrade. Returns a hosted URL: a Stripe Checkout session when a
    price is configured for the interval, else the plan's payment link.
    """
    interval = payload.interval if payload else None
    try:
        return checkout_link(db, user_id=identity.user_id, email=identity.email, interval=interval)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except stripe.StripeError:
        logger.exception(f"Stripe checkout session failed for user {identity.user_id}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")


@router.post("/manage")
def manage_subscription(identity: Identity = Depends(get_signed_identity), db: Session = Depends(get_db)):
    """Customer portal for Stripe customers, else the configured manage link (404 when neither)."""
    return manage_subscription_link(db, user_id=identity.user_id)


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook endpoint.

    Verifies signature and processes events idempotently. A 500 tells Stripe
    to retry; the failed event row can be re-claimed by that retry.
    """
    payload = await request.body()
    result = ingest_stripe_event(
        db,
        payload=payload,
        signature_header=request.headers.get("stripe-signature"),
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
