"""
Checkout and manage-subscription link tests.

Stripe SDK calls are replaced with fakes that record their parameters.
"""
import dataclasses
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import stripe

from api_helpers import auth_headers, device_headers
from core.config import settings
from models import AppAdminSettings
from services import billing_links
from services.entitlements import DEFAULT_PLAN_CONFIG


@pytest.fixture
def stripe_keys(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_PRICE_MONTHLY_ID", "price_month")
    monkeypatch.setattr(settings, "STRIPE_PRICE_YEARLY_ID", "price_year")
    monkeypatch.setattr(settings, "WEB_APP_BASE_URL", "https://app.example.com/")


@pytest.fixture
def checkout_create(monkeypatch):
    create = MagicMock(return_value=SimpleNamespace(url="https://checkout.stripe.test/c/abc"))
    monkeypatch.setattr(stripe.checkout.Session, "create", create)
    return create


@pytest.fixture
def portal_create(monkeypatch):
    create = MagicMock(return_value=SimpleNamespace(url="https://billing.stripe.test/p/xyz"))
    monkeypatch.setattr(stripe.billing_portal.Session, "create", create)
    return create


class TestCheckout:
    def test_requires_signed_in_user(self, client, db_session):
        resp = client.post("/v1/billing/checkout", json={"interval": "monthly"}, headers=device_headers())
        assert resp.status_code == 401

    def test_payment_link_when_stripe_prices_missing(self, client, db_session):
        resp = client.post("/v1/billing/checkout", headers=auth_headers("u1", "u1@example.com"))
        assert resp.status_code == 200
        assert resp.json() == {
            "url": DEFAULT_PLAN_CONFIG.monthly_upgrade_url,
            "checkout_url": DEFAULT_PLAN_CONFIG.monthly_upgrade_url,
            "interval": "monthly",
            "source": "payment_link",
        }

    def test_yearly_payment_link(self, client, db_session):
        resp = client.post("/v1/billing/checkout", json={"interval": " Yearly "}, headers=auth_headers("u1"))
        assert resp.json()["url"] == DEFAULT_PLAN_CONFIG.yearly_upgrade_url
        assert resp.json()["interval"] == "yearly"

    def test_unknown_interval_is_400(self, client, db_session):
        resp = client.post("/v1/billing/checkout", json={"interval": "weekly"}, headers=auth_headers("u1"))
        assert resp.status_code == 400
        assert resp.json() == {"detail": "interval must be monthly or yearly"}

    def test_missing_payment_link_is_503(self, client, db_session, monkeypatch):
        no_links = dataclasses.replace(DEFAULT_PLAN_CONFIG, monthly_upgrade_url=None)
        monkeypatch.setattr(billing_links, "load_plan_config", lambda db: no_links)

        resp = client.post("/v1/billing/checkout", headers=auth_headers("u1"))
        assert resp.status_code == 503
        assert resp.json() == {"detail": "Stripe payment links are not configured."}

    def test_session_for_new_customer_uses_email(self, client, db_session, stripe_keys, checkout_create):
        resp = client.post("/v1/billing/checkout", json={"interval": "yearly"}, headers=auth_headers("u1", "U1@Example.com"))
        assert resp.status_code == 200
        assert resp.json()["url"] == "https://checkout.stripe.test/c/abc"
        assert resp.json()["source"] == "stripe_checkout"

        params = checkout_create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_year", "quantity": 1}]
        assert params["client_reference_id"] == "u1"
        assert params["metadata"] == {"user_id": "u1", "interval": "yearly"}
        assert params["customer_email"] == "u1@example.com"
        assert "customer" not in params
        assert params["success_url"] == "https://app.example.com/?checkout=success"
        assert params["cancel_url"] == "https://app.example.com/?checkout=cancel"

    def test_session_for_known_customer_reuses_it(self, client, db_session, make_user, stripe_keys, checkout_create):
        make_user("u1", email="u1@example.com", stripe_customer_id="cus_known")
        client.post("/v1/billing/checkout", json={"interval": "monthly"}, headers=auth_headers("u1"))

        params = checkout_create.call_args.kwargs
        assert params["customer"] == "cus_known"
        assert params["line_items"][0]["price"] == "price_month"
        assert "customer_email" not in params

    def test_stripe_failure_is_500(self, client, db_session, stripe_keys, checkout_create):
        checkout_create.side_effect = stripe.APIConnectionError("network down")
        resp = client.post("/v1/billing/checkout", headers=auth_headers("u1"))
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to create checkout session"}


class TestManageSubscription:
    def test_nothing_configured_is_404(self, client, db_session):
        resp = client.post("/v1/billing/manage", headers=auth_headers("u1"))
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Manage subscription is not configured yet."}

    def test_requires_signed_in_user(self, client, db_session):
        assert client.post("/v1/billing/manage", headers=device_headers()).status_code == 401

    def test_portal_for_stripe_customer(self, client, db_session, make_user, stripe_keys, portal_create):
        make_user("u1", stripe_customer_id="cus_1")
        resp = client.post("/v1/billing/manage", headers=auth_headers("u1"))
        assert resp.json() == {"url": "https://billing.stripe.test/p/xyz", "source": "stripe_portal"}
        portal_create.assert_called_once_with(customer="cus_1", return_url="https://app.example.com")

    def test_configured_link_without_customer(self, client, db_session, stripe_keys, portal_create):
        db_session.add(AppAdminSettings(id=1, manage_subscription_url="https://billing.example.com/manage"))
        db_session.commit()
        resp = client.post("/v1/billing/manage", headers=auth_headers("u1"))
        assert resp.json() == {"url": "https://billing.example.com/manage", "source": "configured_link"}
        portal_create.assert_not_called()

    def test_portal_failure_falls_back_to_configured_link(
        self, client, db_session, make_user, stripe_keys, portal_create
    ):
        make_user("u1", stripe_customer_id="cus_1")
        db_session.add(AppAdminSettings(id=1, manage_subscription_url="https://billing.example.com/manage"))
        db_session.commit()
        portal_create.side_effect = stripe.InvalidRequestError("No such customer", "customer")

        resp = client.post("/v1/billing/manage", headers=auth_headers("u1"))
        assert resp.status_code == 200
        assert resp.json()["source"] == "configured_link"
