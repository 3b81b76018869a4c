"""
Subscription reconciliation tests.

One failing customer never aborts the batch; failures are counted, alerted
and audited.
"""
from unittest.mock import MagicMock

import pytest

from core.config import settings
from models import AdminAuditLog, AlertNotification, SubscriptionReconcileRun, UserProfile
from services import alerts, stripe_service
from services.reconciliation import reconcile_subscriptions


class _FakeClient:
    def __init__(self, by_subscription=None, by_customer=None, failing=()):
        self.by_subscription = by_subscription or {}
        self.by_customer = by_customer or {}
        self.failing = set(failing)

    def retrieve_subscription(self, subscription_id):
        if subscription_id in self.failing:
            raise RuntimeError(f"lookup failed for {subscription_id}")
        return self.by_subscription.get(subscription_id)

    def latest_subscription_for_customer(self, customer_id):
        if customer_id in self.failing:
            raise RuntimeError(f"lookup failed for {customer_id}")
        return self.by_customer.get(customer_id)

    def retrieve_customer(self, customer_id):
        return None


@pytest.fixture
def alert_post(monkeypatch):
    post = MagicMock()
    post.return_value.ok = True
    post.return_value.status_code = 200
    monkeypatch.setattr(alerts.requests, "post", post)
    monkeypatch.setattr(settings, "RECON_ALERT_WEBHOOK_URL", "https://alerts.example.com/hook")
    return post


def test_drift_is_corrected_and_counted(db_session, make_user, alert_post):
    make_user("u_drift", plan_tier="free", subscription_status="past_due", stripe_subscription_id="sub_a")
    make_user("u_same", plan_tier="premium", subscription_status="active", stripe_subscription_id="sub_b")
    make_user("u_cust", stripe_customer_id="cus_c")
    make_user("u_none")
    client = _FakeClient(
        by_subscription={
            "sub_a": {"id": "sub_a", "customer": "cus_a", "status": "active"},
            "sub_b": {"id": "sub_b", "customer": "cus_b", "status": "active"},
        },
        by_customer={"cus_c": {"id": "sub_c", "customer": "cus_c", "status": "trialing"}},
    )

    result = reconcile_subscriptions(db_session, actor="admin_token", client=client)
    db_session.commit()

    assert result == {"checked": 3, "updated": 2, "errors": 0}
    assert db_session.get(UserProfile, "u_drift").plan_tier == "premium"
    assert db_session.get(UserProfile, "u_cust").stripe_subscription_id == "sub_c"
    alert_post.assert_not_called()

    run = db_session.query(SubscriptionReconcileRun).one()
    assert (run.actor, run.checked, run.updated, run.errors) == ("admin_token", 3, 2, 0)
    audit = db_session.query(AdminAuditLog).filter(AdminAuditLog.action == "subscriptions_reconciled").one()
    assert audit.target == "all_users"
    assert audit.payload == result


def test_stale_subscription_id_falls_back_to_customer(db_session, make_user, alert_post):
    make_user(
        "u_stale",
        plan_tier="premium",
        subscription_status="active",
        stripe_customer_id="cus_x",
        stripe_subscription_id="sub_old",
    )
    client = _FakeClient(by_customer={"cus_x": {"id": "sub_new", "customer": "cus_x", "status": "canceled"}})

    result = reconcile_subscriptions(db_session, client=client)
    db_session.commit()

    assert result == {"checked": 1, "updated": 1, "errors": 0}
    profile = db_session.get(UserProfile, "u_stale")
    assert profile.stripe_subscription_id == "sub_new"
    assert profile.subscription_status == "canceled"
    assert profile.plan_tier == "free"


def test_one_failure_does_not_abort_batch(db_session, make_user, alert_post):
    make_user("u_bad", stripe_subscription_id="sub_bad")
    make_user("u_good", subscription_status="inactive", stripe_subscription_id="sub_good")
    client = _FakeClient(
        by_subscription={"sub_good": {"id": "sub_good", "customer": "cus_g", "status": "active"}},
        failing={"sub_bad"},
    )

    result = reconcile_subscriptions(db_session, actor="system/scheduled", client=client)
    db_session.commit()

    assert result == {"checked": 2, "updated": 1, "errors": 1}
    assert db_session.get(UserProfile, "u_good").subscription_status == "active"

    alert_post.assert_called_once()
    sent = alert_post.call_args.kwargs["json"]
    assert sent["type"] == "reconciliation_alert"
    assert sent["errors"] == 1
    alert = db_session.query(AlertNotification).one()
    assert alert.delivered is True
    assert alert.alert_type == "reconciliation_error"


def test_undeliverable_alert_is_recorded(db_session, make_user, alert_post):
    alert_post.return_value.ok = False
    alert_post.return_value.status_code = 502
    make_user("u_bad", stripe_customer_id="cus_bad")

    reconcile_subscriptions(db_session, actor="system/scheduled", client=_FakeClient(failing={"cus_bad"}))
    db_session.commit()

    alert = db_session.query(AlertNotification).one()
    assert alert.delivered is False
    assert alert.error_message == "HTTP 502"


def test_admin_endpoint_requires_stripe(client, db_session):
    resp = client.post("/v1/admin/subscriptions/reconcile", headers={"X-Admin-Token": "admin-test-token"})
    assert resp.status_code == 503


def test_admin_endpoint_runs_as_admin_actor(client, db_session, make_user, monkeypatch, alert_post):
    make_user("u1", stripe_subscription_id="sub_1")
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setattr(
        stripe_service,
        "get_stripe_client",
        lambda: _FakeClient(by_subscription={"sub_1": {"id": "sub_1", "customer": "cus_1", "status": "active"}}),
    )

    resp = client.post("/v1/admin/subscriptions/reconcile", headers={"X-Admin-Token": "admin-test-token"})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "checked": 1, "updated": 1, "errors": 0}
    assert db_session.query(SubscriptionReconcileRun).one().actor == "admin_token"
