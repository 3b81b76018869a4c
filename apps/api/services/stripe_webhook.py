"""
Stripe Webhook Service

Verifies Stripe signatures, records every event once (keyed on the Stripe
event id) and mirrors subscription state onto user profiles.

Event lifecycle:
    received -> duplicate (200, no reprocessing)
             -> processing -> processed (subscription_synced | payment_failed_synced
                                         | user_not_found | ignored_event_type | ...)
                           -> processing_failed (500 so Stripe retries)

A row left in `processing_failed` can be claimed again by a later delivery
of the same event id; a processed event is never applied twice.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from core.clock import utc_now
from core.config import settings
from core.database import dialect_insert
from core.logging import log_context
from models import StripeWebhookEvent, UserProfile
from services import stripe_service

logger = logging.getLogger(__name__)

RESULT_SYNCED = "subscription_synced"
RESULT_PAYMENT_FAILED_SYNCED = "payment_failed_synced"
RESULT_USER_NOT_FOUND = "user_not_found"
RESULT_IGNORED = "ignored_event_type"
RESULT_NO_SUBSCRIPTION = "no_subscription_reference"
RESULT_SUBSCRIPTION_MISSING = "subscription_not_found"
RESULT_FAILED = "processing_failed"

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)

ERROR_MESSAGE_MAX_CHARS = 1000


@dataclass
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchResult:
    result: str
    user_id: Optional[str] = None
    subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None


def verify_signature(payload: bytes, header: Optional[str], secret: str, *, tolerance_s: int = 300) -> bool:
    """
    Check a `stripe-signature` header with the Stripe SDK.

    Any v1 entry may match. Timestamps older than `tolerance_s` are rejected
    (0 disables the check).
    """
    if not header:
        return False
    try:
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"),
            header,
            secret,
            tolerance=tolerance_s or None,
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
        logger.warning(f"Rejected Stripe webhook signature: {e}")
        return False
    return True


def _claim_event(db: Session, event: Dict[str, Any]) -> Optional[int]:
    """
    Insert the event row; return its id, or None when the event was already seen.

    A previously failed row is re-claimed so Stripe's retry can complete it.
    """
    table = StripeWebhookEvent.__table__
    stmt = dialect_insert(db, table).values(
        stripe_event_id=event.get("id") or None,
        event_type=event.get("type") or None,
        payload=event,
        processed=False,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.stripe_event_id],
        set_={"process_result": None, "error_message": None},
        where=(table.c.processed.is_(False)) & (table.c.process_result == RESULT_FAILED),
    ).returning(table.c.id)
    return db.execute(stmt).scalar_one_or_none()


def _find_user_id(
    db: Session,
    client: Optional[stripe_service.StripeClient],
    snap: stripe_service.SubscriptionSnapshot,
    metadata_user_id: Optional[str],
) -> Optional[str]:
    """metadata.user_id -> subscription id -> customer id -> Stripe customer email."""
    if metadata_user_id and db.get(UserProfile, metadata_user_id) is not None:
        return metadata_user_id

    if snap.subscription_id:
        row = db.query(UserProfile.user_id).filter(UserProfile.stripe_subscription_id == snap.subscription_id).first()
        if row:
            return row[0]

    if snap.customer_id:
        row = db.query(UserProfile.user_id).filter(UserProfile.stripe_customer_id == snap.customer_id).first()
        if row:
            return row[0]

        if client is not None:
            customer = client.retrieve_customer(snap.customer_id)
            email = stripe_service.stripe_field(customer, "email") if customer is not None else None
            if email:
                row = (
                    db.query(UserProfile.user_id)
                    .filter(func.lower(UserProfile.email) == str(email).strip().lower())
                    .order_by(UserProfile.created_at.desc())
                    .first()
                )
                if row:
                    return row[0]
    return None


def _sync_subscription(
    db: Session,
    client: Optional[stripe_service.StripeClient],
    subscription: Any,
    *,
    metadata_user_id: Optional[str] = None,
    success_result: str = RESULT_SYNCED,
) -> DispatchResult:
    snap = stripe_service.subscription_snapshot(subscription)
    user_id = _find_user_id(db, client, snap, metadata_user_id or snap.metadata.get("user_id"))
    if not user_id:
        logger.warning(f"Stripe subscription {snap.subscription_id} did not match any user")
        return DispatchResult(RESULT_USER_NOT_FOUND, None, snap.subscription_id, snap.status)

    profile = db.get(UserProfile, user_id)
    stripe_service.apply_subscription_to_profile(profile, snap)
    db.flush()
    return DispatchResult(success_result, user_id, snap.subscription_id, snap.status)


def _lazy_client(holder: Dict[str, Any]) -> stripe_service.StripeClient:
    if "client" not in holder:
        holder["client"] = stripe_service.get_stripe_client()
    return holder["client"]


def dispatch_event(db: Session, event: Dict[str, Any], holder: Dict[str, Any]) -> DispatchResult:
    event_type = event.get("type") or ""
    obj = ((event.get("data") or {}).get("object")) or {}

    if event_type == "checkout.session.completed":
        sub_id = stripe_service.stripe_object_id(obj.get("subscription"))
        if not sub_id:
            return DispatchResult(RESULT_NO_SUBSCRIPTION)
        client = _lazy_client(holder)
        sub = client.retrieve_subscription(sub_id)
        if sub is None:
            return DispatchResult(RESULT_SUBSCRIPTION_MISSING, subscription_id=sub_id)
        meta_user = (obj.get("metadata") or {}).get("user_id") or obj.get("client_reference_id")
        return _sync_subscription(db, client, sub, metadata_user_id=meta_user)

    if event_type in SUBSCRIPTION_EVENTS:
        client = _lazy_client(holder) if stripe_service.stripe_configured() else None
        return _sync_subscription(db, client, obj)

    if event_type == "invoice.payment_failed":
        sub_id = stripe_service.stripe_object_id(obj.get("subscription"))
        if not sub_id:
            details = ((obj.get("parent") or {}).get("subscription_details") or {})
            sub_id = stripe_service.stripe_object_id(details.get("subscription"))
        if not sub_id:
            return DispatchResult(RESULT_NO_SUBSCRIPTION)
        client = _lazy_client(holder)
        sub = client.retrieve_subscription(sub_id)
        if sub is None:
            return DispatchResult(RESULT_SUBSCRIPTION_MISSING, subscription_id=sub_id)
        return _sync_subscription(db, client, sub, success_result=RESULT_PAYMENT_FAILED_SYNCED)

    return DispatchResult(RESULT_IGNORED)


def ingest_stripe_event(
    db: Session,
    *,
    payload: bytes,
    signature_header: Optional[str],
) -> WebhookResponse:
    """
    Verify, deduplicate and process one webhook delivery.

    The event row is committed before processing so a failure can be recorded
    against it after the processing changes are rolled back.
    """
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        return WebhookResponse(503, {"detail": "Stripe webhook secret not configured"})

    if not verify_signature(payload, signature_header, secret, tolerance_s=settings.STRIPE_WEBHOOK_TOLERANCE_S):
        return WebhookResponse(400, {"detail": "Invalid stripe-signature"})

    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return WebhookResponse(400, {"detail": "Invalid JSON body"})
    if not isinstance(event, dict):
        return WebhookResponse(400, {"detail": "Invalid JSON body"})

    with log_context(stripe_event_id=event.get("id")):
        return _process_event(db, event)


def _process_event(db: Session, event: Dict[str, Any]) -> WebhookResponse:
    event_id = event.get("id")
    event_type = event.get("type")

    row_id = _claim_event(db, event)
    if row_id is None:
        logger.info(f"Duplicate Stripe event ignored: {event_id}")
        return WebhookResponse(200, {"received": True, "duplicate": True})
    db.commit()

    table = StripeWebhookEvent.__table__
    holder: Dict[str, Any] = {}
    try:
        outcome = dispatch_event(db, event, holder)
    except Exception as e:
        db.rollback()
        logger.exception(f"Stripe webhook processing failed for {event_id} ({event_type})")
        db.execute(
            update(table)
            .where(table.c.id == row_id)
            .values(
                processed=False,
                process_result=RESULT_FAILED,
                error_message=str(e)[:ERROR_MESSAGE_MAX_CHARS],
                processed_at=utc_now(),
            )
        )
        db.commit()
        return WebhookResponse(500, {"detail": "Failed processing Stripe webhook event"})

    db.execute(
        update(table)
        .where(table.c.id == row_id)
        .values(
            processed=True,
            process_result=outcome.result,
            error_message=None,
            user_id=outcome.user_id,
            subscription_id=outcome.subscription_id,
            subscription_status=outcome.subscription_status,
            processed_at=utc_now(),
        )
    )
    db.commit()

    logger.info(
        f"Stripe event processed: {event_id}",
        extra={"extra_fields": {"event_type": event_type, "result": outcome.result, "user_id": outcome.user_id}},
    )
    return WebhookResponse(200, {"received": True, "event_type": event_type, "result": outcome.result})
