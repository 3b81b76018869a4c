"""
Billing Links Service

Where to send a signed-in user to upgrade or manage their subscription.

Checkout: a Stripe Checkout session when a price is configured for the
interval, otherwise the plan's payment link. Manage: the Stripe customer
portal when the user has a customer id, otherwise the configured manage link.
"""
from __future__ import annotations

import logging
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from core.exceptions import APIException, ServiceUnavailableError, ValidationError
from models import UserProfile
from services import stripe_service
from services.entitlements import load_plan_config

logger = logging.getLogger(__name__)

CHECKOUT_INTERVALS = ("monthly", "yearly")

SOURCE_STRIPE_CHECKOUT = "stripe_checkout"
SOURCE_PAYMENT_LINK = "payment_link"
SOURCE_STRIPE_PORTAL = "stripe_portal"
SOURCE_CONFIGURED_LINK = "configured_link"


class ManageSubscriptionUnavailable(APIException):
    def __init__(self):
        super().__init__(status_code=404, detail="Manage subscription is not configured yet.", error_code="NOT_FOUND")


def normalize_interval(raw: Optional[str]) -> str:
    interval = (raw or "monthly").strip().lower()
    if interval not in CHECKOUT_INTERVALS:
        raise ValidationError("interval must be monthly or yearly", field="interval")
    return interval


def checkout_link(db: Session, *, user_id: str, email: Optional[str], interval: str) -> dict:
    interval = normalize_interval(interval)
    profile = db.get(UserProfile, user_id)

    if stripe_service.stripe_configured() and stripe_service.checkout_price_id(interval):
        url = stripe_service.get_stripe_client().create_checkout_session(
            user_id=user_id,
            interval=interval,
            email=email or (profile.email if profile else None),
            customer_id=profile.stripe_customer_id if profile else None,
        )
        logger.info(f"Stripe checkout session created for user {user_id} ({interval})")
        return {"url": url, "checkout_url": url, "interval": interval, "source": SOURCE_STRIPE_CHECKOUT}

    cfg = load_plan_config(db)
    url = cfg.yearly_upgrade_url if interval == "yearly" else cfg.monthly_upgrade_url
    if not url:
        raise ServiceUnavailableError("Stripe payment links are not configured.")
    return {"url": url, "checkout_url": url, "interval": interval, "source": SOURCE_PAYMENT_LINK}


def manage_subscription_link(db: Session, *, user_id: str) -> dict:
    """A portal failure is logged and falls through to the configured link."""
    profile = db.get(UserProfile, user_id)
    customer_id = profile.stripe_customer_id if profile else None

    if customer_id and stripe_service.stripe_configured():
        try:
            url = stripe_service.get_stripe_client().create_portal_session(customer_id=customer_id)
            return {"url": url, "source": SOURCE_STRIPE_PORTAL}
        except stripe.StripeError as e:
            logger.warning(f"Stripe portal session failed for user {user_id}: {e}")

    fallback = load_plan_config(db).manage_subscription_url
    if fallback:
        return {"url": fallback, "source": SOURCE_CONFIGURED_LINK}
    raise ManageSubscriptionUnavailable()
