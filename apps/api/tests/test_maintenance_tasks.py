"""
Scheduled maintenance task tests.

Tasks are called directly (no broker); they open their own session on the
shared in-memory connection, so test data is committed first and the test
session is expired before reading results.
"""
from datetime import datetime, timezone

import pytest

from celerybeat_schedule import beat_schedule
from core.clock import civil_today, shift_days
from core.config import settings
from models import FoodEntry, FoodEntryArchive, SubscriptionReconcileRun, UserProfile
from services import stripe_service
from tasks import maintenance_tasks
from tasks.maintenance_tasks import reconcile_subscriptions_task, run_data_retention_task


class _Client:
    def retrieve_subscription(self, subscription_id):
        return {"id": subscription_id, "customer": "cus_1", "status": "active"}

    def latest_subscription_for_customer(self, customer_id):
        return None

    def retrieve_customer(self, customer_id):
        return None


def test_beat_schedule_registers_both_tasks():
    tasks = {entry["task"] for entry in beat_schedule.values()}
    assert {"tasks.reconcile_subscriptions", "tasks.run_data_retention"} <= tasks


class TestReconcileTask:
    def test_skipped_without_stripe(self, db_session):
        assert reconcile_subscriptions_task() == {"status": "skipped", "message": "Stripe not configured"}

    def test_runs_as_scheduled_actor(self, db_session, make_user, monkeypatch):
        make_user("u1", subscription_status="inactive", stripe_subscription_id="sub_1")
        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_dummy")
        monkeypatch.setattr(stripe_service, "get_stripe_client", lambda: _Client())

        result = reconcile_subscriptions_task()

        assert result == {"status": "success", "checked": 1, "updated": 1, "errors": 0}
        db_session.expire_all()
        assert db_session.get(UserProfile, "u1").plan_tier == "premium"
        assert db_session.query(SubscriptionReconcileRun).one().actor == "system/scheduled"


class TestRetentionTask:
    def test_archives_old_entries(self, db_session):
        db_session.add(
            FoodEntry(
                user_id="u1",
                entry_date=shift_days(civil_today(), -365),
                taken_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                calories=400,
            )
        )
        db_session.commit()

        result = run_data_retention_task()

        assert result["status"] == "success"
        assert result["archived"] == 1
        db_session.expire_all()
        assert db_session.query(FoodEntry).count() == 0
        assert db_session.query(FoodEntryArchive).count() == 1

    def test_failure_is_reraised(self, db_session, monkeypatch):
        def _boom(db):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(maintenance_tasks, "run_retention", _boom)
        with pytest.raises(RuntimeError, match="disk on fire"):
            run_data_retention_task()
