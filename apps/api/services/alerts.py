"""
Operational alerts.

Alerts are POSTed as JSON to a configured webhook (Slack-compatible relays,
PagerDuty event bridges, ...). Every attempt is recorded in
`alert_notifications` with its delivery outcome. Delivery never raises.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from core.config import settings
from models import AlertNotification

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_CHARS = 500


def deliver_alert(payload: Dict[str, Any], url: Optional[str] = None) -> tuple[bool, Optional[str]]:
    """POST the payload. Returns (delivered, error_message)."""
    target = url or settings.RECON_ALERT_WEBHOOK_URL
    if not target:
        return False, "RECON_ALERT_WEBHOOK_URL not configured"
    try:
        r = requests.post(target, json=payload, timeout=settings.EXTERNAL_API_TIMEOUT)
    except requests.RequestException as e:
        logger.warning(f"Alert delivery failed: {e}")
        return False, str(e)[:ERROR_MESSAGE_MAX_CHARS]
    if not r.ok:
        logger.warning(f"Alert webhook returned HTTP {r.status_code}")
        return False, f"HTTP {r.status_code}"
    return True, None


def record_alert(
    db: Session,
    *,
    alert_type: str,
    severity: str,
    payload: Dict[str, Any],
    delivered: bool,
    error_message: Optional[str],
) -> None:
    try:
        db.add(
            AlertNotification(
                alert_type=alert_type,
                severity=severity,
                payload=payload,
                delivered=delivered,
                error_message=error_message,
            )
        )
        db.flush()
    except Exception as e:
        logger.exception("Failed to record alert notification: %s", str(e))


def send_reconciliation_alert(db: Session, *, actor: str, result: Dict[str, int]) -> bool:
    payload = {
        "type": "reconciliation_alert",
        "severity": "error",
        "message": f"Subscription reconciliation encountered {result.get('errors', 0)} errors",
        "actor": actor,
        **result,
    }
    delivered, error = deliver_alert(payload)
    record_alert(
        db,
        alert_type="reconciliation_error",
        severity="error",
        payload=payload,
        delivered=delivered,
        error_message=error,
    )
    return delivered
