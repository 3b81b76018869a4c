"""
Scheduled Maintenance Tasks

Subscription reconciliation and data retention.
Runs via Celery Beat scheduler.
"""

from typing import Dict
from celery import Task
from sqlalchemy.orm import Session
from core.database import get_db_sync
from tasks import celery_app
from services import stripe_service
from services.reconciliation import ACTOR_SCHEDULED, reconcile_subscriptions
from services.retention import run_retention
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.reconcile_subscriptions", bind=True)
def reconcile_subscriptions_task(self: Task) -> Dict:
    """
    Re-sync every known Stripe subscription onto user profiles.

    Skipped (not failed) when Stripe is not configured.
    """
    if not stripe_service.stripe_configured():
        logger.info("Skipping subscription reconciliation: Stripe not configured")
        return {"status": "skipped", "message": "Stripe not configured"}

    db: Session = get_db_sync()
    try:
        result = reconcile_subscriptions(db, actor=ACTOR_SCHEDULED)
        db.commit()
        logger.info(f"Scheduled reconciliation finished: {result}")
        return {"status": "success", **result}
    except Exception:
        db.rollback()
        logger.exception("Scheduled reconciliation failed")
        raise
    finally:
        db.close()


@celery_app.task(name="tasks.run_data_retention", bind=True)
def run_data_retention_task(self: Task) -> Dict:
    """Archive old food entries and trim the oldest rows while over the size budget."""
    db: Session = get_db_sync()
    try:
        result = run_retention(db)
        db.commit()
        logger.info(f"Data retention finished: {result}")
        return {"status": "success", **result}
    except Exception:
        db.rollback()
        logger.exception("Data retention failed")
        raise
    finally:
        db.close()
