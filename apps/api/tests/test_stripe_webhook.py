"""
Stripe webhook ingestion tests.

Payloads are signed locally with the test webhook secret, exactly as Stripe
signs them, and verified through the Stripe SDK.
"""
import json
import time

import pytest

from models import StripeWebhookEvent, UserProfile
from services import stripe_service, stripe_webhook
from services.stripe_webhook import verify_signature
from api_helpers import stripe_signature_header

SECRET = "whsec_test_secret"


def _signed(event: dict, secret: str = SECRET, ts: int = None):
    body = json.dumps(event).encode("utf-8")
    return body, {"stripe-signature": stripe_signature_header(body, secret, ts)}


def _sub_event(event_id="evt_1", status="active", customer="cus_1", sub_id="sub_1", event_type="customer.subscription.updated"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": sub_id,
                "object": "subscription",
                "customer": customer,
                "status": status,
                "metadata": {},
                "items": {"data": [{"current_period_end": 1767225600}]},
            }
        },
    }


class _FakeStripeClient:
    def __init__(self, subscriptions=None, customers=None):
        self.subscriptions = subscriptions or {}
        self.customers = customers or {}

    def retrieve_subscription(self, subscription_id):
        return self.subscriptions.get(subscription_id)

    def latest_subscription_for_customer(self, customer_id):
        return None

    def retrieve_customer(self, customer_id):
        return self.customers.get(customer_id)


class TestSignature:
    def test_valid_signature(self):
        body = b'{"id":"evt"}'
        assert verify_signature(body, stripe_signature_header(body, SECRET), SECRET, tolerance_s=300)

    def test_any_v1_may_match(self):
        body = b'{"id":"evt"}'
        t, v1 = stripe_signature_header(body, SECRET).split(",")
        assert verify_signature(body, f"{t},v1=deadbeef,{v1}", SECRET, tolerance_s=300)

    def test_wrong_secret_is_rejected(self):
        body = b'{"id":"evt"}'
        assert not verify_signature(body, stripe_signature_header(body, "whsec_other"), SECRET, tolerance_s=300)

    def test_tampered_body_is_rejected(self):
        header = stripe_signature_header(b'{"id":"evt"}', SECRET)
        assert not verify_signature(b'{"id":"evt_other"}', header, SECRET, tolerance_s=300)

    def test_stale_timestamp_is_rejected(self):
        body = b'{"id":"evt"}'
        stale = stripe_signature_header(body, SECRET, ts=int(time.time()) - 301)
        assert not verify_signature(body, stale, SECRET, tolerance_s=300)
        assert verify_signature(body, stale, SECRET, tolerance_s=0)

    @pytest.mark.parametrize("header", [None, "", "v1=abc", "t=123", "t=abc,v1=abc", "garbage"])
    def test_malformed_headers_are_rejected(self, header):
        assert not verify_signature(b"{}", header, SECRET, tolerance_s=0)


class TestWebhookEndpoint:
    def test_wrong_secret_is_rejected_before_persisting(self, client, db_session):
        body, headers = _signed(_sub_event(), secret="whsec_other")
        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 400
        assert db_session.query(StripeWebhookEvent).count() == 0

    def test_missing_signature_is_rejected(self, client, db_session):
        resp = client.post("/v1/billing/webhooks/stripe", content=b"{}")
        assert resp.status_code == 400
        assert db_session.query(StripeWebhookEvent).count() == 0

    def test_missing_secret_is_503(self, client, db_session, monkeypatch):
        from core.config import settings

        monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
        body, headers = _signed(_sub_event())
        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 503

    def test_subscription_update_syncs_profile(self, client, db_session, make_user):
        make_user("u1", email="a@example.com", stripe_customer_id="cus_1")
        body, headers = _signed(_sub_event())

        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["result"] == "subscription_synced"

        profile = db_session.get(UserProfile, "u1")
        assert profile.plan_tier == "premium"
        assert profile.subscription_status == "active"
        assert profile.stripe_subscription_id == "sub_1"
        assert profile.subscription_current_period_end is not None

        row = db_session.query(StripeWebhookEvent).one()
        assert row.processed is True
        assert row.user_id == "u1"
        assert row.subscription_status == "active"

    def test_duplicate_delivery_is_short_circuited(self, client, db_session, make_user):
        make_user("u1", stripe_customer_id="cus_1")
        body, headers = _signed(_sub_event())

        first = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        second = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"received": True, "duplicate": True}
        assert db_session.query(StripeWebhookEvent).filter(StripeWebhookEvent.stripe_event_id == "evt_1").count() == 1

    def test_canceled_subscription_downgrades(self, client, db_session, make_user):
        make_user("u1", plan_tier="premium", subscription_status="active", stripe_subscription_id="sub_1")
        body, headers = _signed(_sub_event(status="canceled", event_type="customer.subscription.deleted"))

        assert client.post("/v1/billing/webhooks/stripe", content=body, headers=headers).status_code == 200
        profile = db_session.get(UserProfile, "u1")
        assert profile.plan_tier == "free"
        assert profile.subscription_status == "canceled"

    def test_unmatched_subscription_is_recorded(self, client, db_session):
        body, headers = _signed(_sub_event(customer="cus_unknown"))
        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["result"] == "user_not_found"
        assert db_session.query(StripeWebhookEvent).one().process_result == "user_not_found"

    def test_unhandled_event_type_is_ignored(self, client, db_session):
        body, headers = _signed({"id": "evt_x", "type": "charge.refunded", "data": {"object": {}}})
        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["result"] == "ignored_event_type"

    def test_checkout_completed_retrieves_subscription(self, client, db_session, make_user, monkeypatch):
        make_user("u1", email="buyer@example.com")
        fake = _FakeStripeClient(
            subscriptions={"sub_9": {"id": "sub_9", "customer": "cus_9", "status": "trialing", "metadata": {}}}
        )
        monkeypatch.setattr(stripe_service, "get_stripe_client", lambda: fake)
        event = {
            "id": "evt_checkout",
            "type": "checkout.session.completed",
            "data": {"object": {"subscription": "sub_9", "client_reference_id": "u1"}},
        }
        body, headers = _signed(event)

        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 200
        profile = db_session.get(UserProfile, "u1")
        assert profile.plan_tier == "premium"
        assert profile.stripe_customer_id == "cus_9"

    def test_customer_email_fallback(self, client, db_session, make_user, monkeypatch):
        from core.config import settings

        make_user("u_mail", email="payer@example.com")
        fake = _FakeStripeClient(customers={"cus_new": {"id": "cus_new", "email": "Payer@Example.com"}})
        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_dummy")
        monkeypatch.setattr(stripe_service, "get_stripe_client", lambda: fake)
        body, headers = _signed(_sub_event(customer="cus_new", sub_id="sub_new"))

        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.json()["result"] == "subscription_synced"
        assert db_session.get(UserProfile, "u_mail").stripe_customer_id == "cus_new"

    def test_processing_failure_returns_500_and_can_be_retried(self, client, db_session, make_user, monkeypatch):
        make_user("u1", stripe_customer_id="cus_1")
        body, headers = _signed(_sub_event())
        real_dispatch = stripe_webhook.dispatch_event

        def _boom(db, event, holder):
            raise RuntimeError("stripe exploded")

        monkeypatch.setattr(stripe_webhook, "dispatch_event", _boom)
        resp = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 500

        row = db_session.query(StripeWebhookEvent).one()
        assert row.processed is False
        assert row.process_result == "processing_failed"
        assert "stripe exploded" in row.error_message

        monkeypatch.setattr(stripe_webhook, "dispatch_event", real_dispatch)
        retry = client.post("/v1/billing/webhooks/stripe", content=body, headers=headers)
        assert retry.status_code == 200
        assert retry.json()["result"] == "subscription_synced"

        db_session.expire_all()
        row = db_session.query(StripeWebhookEvent).one()
        assert row.processed is True
        assert row.error_message is None
