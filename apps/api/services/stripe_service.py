from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Optional

import stripe

from core.config import settings
from models import PLAN_TIER_FREE, PLAN_TIER_PREMIUM, PREMIUM_SUBSCRIPTION_STATUSES, UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    webhook_tolerance_s: int
    monthly_price_id: Optional[str] = None
    yearly_price_id: Optional[str] = None
    checkout_success_url: str = ""
    checkout_cancel_url: str = ""
    portal_return_url: str = ""


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from Settings.

    Fail closed: without a secret key no Stripe call is attempted.
    """
    secret_key = settings.STRIPE_SECRET_KEY
    if not secret_key:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")
    base_url = settings.WEB_APP_BASE_URL.rstrip("/")
    return StripeConfig(
        secret_key=str(secret_key),
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET or None,
        webhook_tolerance_s=int(settings.STRIPE_WEBHOOK_TOLERANCE_S),
        monthly_price_id=settings.STRIPE_PRICE_MONTHLY_ID or None,
        yearly_price_id=settings.STRIPE_PRICE_YEARLY_ID or None,
        checkout_success_url=settings.STRIPE_CHECKOUT_SUCCESS_URL or f"{base_url}/?checkout=success",
        checkout_cancel_url=settings.STRIPE_CHECKOUT_CANCEL_URL or f"{base_url}/?checkout=cancel",
        portal_return_url=settings.STRIPE_PORTAL_RETURN_URL or base_url,
    )


def stripe_configured() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def checkout_price_id(interval: str) -> Optional[str]:
    """Configured Stripe price for a billing interval (`monthly` or `yearly`), if any."""
    if interval == "yearly":
        return settings.STRIPE_PRICE_YEARLY_ID or None
    return settings.STRIPE_PRICE_MONTHLY_ID or None


def tier_for_subscription_status(status: Optional[str]) -> str:
    """
    Map Stripe subscription status -> local plan tier.

    Only active/trialing are paid.
    """
    s = (status or "").lower()
    if s in PREMIUM_SUBSCRIPTION_STATUSES:
        return PLAN_TIER_PREMIUM
    return PLAN_TIER_FREE


def stripe_field(obj: Any, key: str) -> Any:
    """Read a field from a webhook dict, a StripeObject or a plain object."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError, AttributeError):
        pass
    return getattr(obj, key, None)


def stripe_object_id(value: Any) -> Optional[str]:
    """Stripe references are either an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    ref = stripe_field(value, "id")
    return str(ref) if ref else None


def _maybe_parse_period_end(ts: Any) -> Optional[datetime]:
    try:
        if ts is None:
            return None
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _extract_current_period_end_ts(obj: Any) -> Optional[int]:
    """
    Stripe API compatibility:
    - Older API versions: `subscription.current_period_end` (top-level)
    - Newer API versions: billing period fields live on `subscription.items.data[*].current_period_end`
    """
    ts = stripe_field(obj, "current_period_end")
    if ts is not None:
        try:
            return int(ts)
        except (TypeError, ValueError):
            pass

    items = stripe_field(obj, "items")
    data = stripe_field(items, "data") if items is not None else None
    ends: list[int] = []
    for it in (data or []):
        it_end = stripe_field(it, "current_period_end")
        if it_end is None:
            continue
        try:
            ends.append(int(it_end))
        except (TypeError, ValueError):
            continue
    return max(ends) if ends else None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    subscription_id: Optional[str]
    customer_id: Optional[str]
    status: Optional[str]
    plan_tier: str
    current_period_end: Optional[datetime]
    metadata: dict = field(default_factory=dict)


def subscription_snapshot(subscription: Any) -> SubscriptionSnapshot:
    status = stripe_field(subscription, "status")
    status = str(status) if status else None
    metadata = stripe_field(subscription, "metadata") or {}
    return SubscriptionSnapshot(
        subscription_id=stripe_object_id(stripe_field(subscription, "id")),
        customer_id=stripe_object_id(stripe_field(subscription, "customer")),
        status=status,
        plan_tier=tier_for_subscription_status(status),
        current_period_end=_maybe_parse_period_end(_extract_current_period_end_ts(subscription)),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


def apply_subscription_to_profile(profile: UserProfile, snap: SubscriptionSnapshot) -> None:
    """Mirror a Stripe subscription onto the profile (entitlement source of truth)."""
    profile.plan_tier = snap.plan_tier
    profile.subscription_status = snap.status or "inactive"
    if snap.customer_id:
        profile.stripe_customer_id = snap.customer_id
    if snap.subscription_id:
        profile.stripe_subscription_id = snap.subscription_id
    profile.subscription_current_period_end = snap.current_period_end


class StripeClient:
    """Thin wrapper over the Stripe SDK read calls the billing sync needs."""

    def __init__(self, cfg: Optional[StripeConfig] = None) -> None:
        cfg = cfg or _get_stripe_config()
        stripe.api_key = cfg.secret_key
        stripe.max_network_retries = 2
        self.cfg = cfg

    def retrieve_subscription(self, subscription_id: str) -> Optional[Any]:
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                logger.info(f"Stripe subscription not found: {subscription_id}")
                return None
            raise

    def latest_subscription_for_customer(self, customer_id: str) -> Optional[Any]:
        try:
            resp = stripe.Subscription.list(customer=customer_id, status="all", limit=1)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                logger.info(f"Stripe customer not found: {customer_id}")
                return None
            raise
        data = list(stripe_field(resp, "data") or [])
        return data[0] if data else None

    def retrieve_customer(self, customer_id: str) -> Optional[Any]:
        try:
            return stripe.Customer.retrieve(customer_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                return None
            raise

    def create_checkout_session(
        self,
        *,
        user_id: str,
        interval: str,
        email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> str:
        """Hosted subscription checkout; the webhook maps it back via client_reference_id."""
        price_id = self.cfg.yearly_price_id if interval == "yearly" else self.cfg.monthly_price_id
        if not price_id:
            raise RuntimeError(f"Stripe price not configured for {interval} checkout")

        params: dict[str, Any] = {
            "mode": "subscription",
            "success_url": self.cfg.checkout_success_url,
            "cancel_url": self.cfg.checkout_cancel_url,
            "line_items": [{"price": price_id, "quantity": 1}],
            "client_reference_id": user_id,
            "metadata": {"user_id": user_id, "interval": interval},
        }
        # Prefer the known customer so Stripe does not create a duplicate.
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        session = stripe.checkout.Session.create(**params)
        return str(session.url)

    def create_portal_session(self, *, customer_id: str) -> str:
        sess = stripe.billing_portal.Session.create(
            customer=str(customer_id),
            return_url=self.cfg.portal_return_url,
        )
        return str(sess.url)


def get_stripe_client() -> StripeClient:
    """Factory used by services; tests monkeypatch this to inject a fake."""
    return StripeClient()
