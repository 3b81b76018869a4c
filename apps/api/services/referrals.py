from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import AmbassadorReferral, UserProfile
from services import stripe_service

logger = logging.getLogger(__name__)


def latest_paid_referral_for_email(db: Session, email: str) -> Optional[AmbassadorReferral]:
    return (
        db.query(AmbassadorReferral)
        .filter(
            func.lower(AmbassadorReferral.email) == email.strip().lower(),
            AmbassadorReferral.stripe_subscription_id.isnot(None),
        )
        .order_by(AmbassadorReferral.created_at.desc(), AmbassadorReferral.id.desc())
        .first()
    )


def attach_referral_subscription(db: Session, *, user_id: str, email: Optional[str]) -> bool:
    """
    Link a subscription bought through a referral link before the user signed up.

    At most once: a profile that already carries any Stripe reference is left
    untouched. Best-effort; Stripe failures are logged and never raised.
    Returns True when a subscription was attached.
    """
    if not email:
        return False

    profile = db.get(UserProfile, user_id)
    if profile is None or profile.stripe_subscription_id or profile.stripe_customer_id:
        return False

    referral = latest_paid_referral_for_email(db, email)
    if referral is None:
        return False

    if not stripe_service.stripe_configured():
        logger.info(f"Referral subscription found for user {user_id} but Stripe is not configured")
        return False

    try:
        subscription = stripe_service.get_stripe_client().retrieve_subscription(referral.stripe_subscription_id)
    except Exception as e:
        logger.warning(f"Referral subscription lookup failed for user {user_id}: {e}")
        return False
    if subscription is None:
        return False

    snap = stripe_service.subscription_snapshot(subscription)
    stripe_service.apply_subscription_to_profile(profile, snap)
    if not profile.stripe_customer_id and referral.stripe_customer_id:
        profile.stripe_customer_id = referral.stripe_customer_id
    profile.ambassador_id = profile.ambassador_id or referral.ambassador_id
    profile.ambassador_ref_code = profile.ambassador_ref_code or referral.ref_code
    db.flush()

    logger.info(
        f"Attached referral subscription {snap.subscription_id} to user {user_id} (status={snap.status})"
    )
    return True
