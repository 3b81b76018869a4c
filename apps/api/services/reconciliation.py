"""
Subscription reconciliation.

Webhooks are the primary integration path, but deliveries can be delayed or
missed. This pass re-reads every known subscription from Stripe and mirrors it
onto the profile so entitlements converge on Stripe's state.

Per-user failures are counted and skipped; one bad customer never aborts the
batch.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.logging import log_context
from models import SubscriptionReconcileRun, UserProfile
from services import stripe_service
from services.admin_audit import record_admin_audit_event
from services.alerts import send_reconciliation_alert

logger = logging.getLogger(__name__)

ACTOR_SCHEDULED = "system/scheduled"
ACTOR_ADMIN = "admin_token"


def _fetch_current_subscription(client: stripe_service.StripeClient, profile: UserProfile) -> Optional[Any]:
    """By stored subscription id first; fall back to the customer's newest subscription."""
    sub = None
    if profile.stripe_subscription_id:
        sub = client.retrieve_subscription(profile.stripe_subscription_id)
    if sub is None and profile.stripe_customer_id:
        sub = client.latest_subscription_for_customer(profile.stripe_customer_id)
    return sub


def reconcile_subscriptions(
    db: Session,
    *,
    actor: str = ACTOR_SCHEDULED,
    client: Optional[stripe_service.StripeClient] = None,
) -> Dict[str, int]:
    """
    Re-sync every profile with a Stripe reference.

    `updated` counts profiles whose status or subscription id changed; it is a
    change indicator, not a full diff. Always writes a run row and an audit
    row, and alerts when any lookup failed.
    """
    client = client or stripe_service.get_stripe_client()

    profiles = (
        db.query(UserProfile)
        .filter(or_(UserProfile.stripe_subscription_id.isnot(None), UserProfile.stripe_customer_id.isnot(None)))
        .order_by(UserProfile.user_id)
        .all()
    )

    checked = 0
    updated = 0
    errors = 0

    for profile in profiles:
        checked += 1
        with log_context(actor=actor, user_id=profile.user_id):
            try:
                sub = _fetch_current_subscription(client, profile)
            except Exception as e:
                errors += 1
                logger.warning(f"Reconciliation lookup failed: {e}")
                continue
        if sub is None:
            continue

        snap = stripe_service.subscription_snapshot(sub)
        if snap.status != profile.subscription_status or snap.subscription_id != profile.stripe_subscription_id:
            updated += 1
        stripe_service.apply_subscription_to_profile(profile, snap)

    db.flush()
    result = {"checked": checked, "updated": updated, "errors": errors}

    db.add(SubscriptionReconcileRun(actor=actor, checked=checked, updated=updated, errors=errors))
    db.flush()
    record_admin_audit_event(db, actor=actor, action="subscriptions_reconciled", target="all_users", payload=result)

    if errors > 0:
        send_reconciliation_alert(db, actor=actor, result=result)

    logger.info(
        "Subscription reconciliation finished",
        extra={"extra_fields": {"actor": actor, **result}},
    )
    return result
