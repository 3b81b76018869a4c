from __future__ import annotations

from typing import Any, Dict, Optional

import logging
from sqlalchemy.orm import Session

from models import AdminAuditLog

logger = logging.getLogger(__name__)

MAX_FIELD_CHARS = 300


def record_admin_audit_event(
    db: Session,
    *,
    actor: str,
    action: str,
    target: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Best-effort append-only audit logging for admin and scheduled actions.

    Safety:
    - Never throws (does not block primary operation).
    - Payload must be bounded and must not contain secrets.
    """
    try:
        ev = AdminAuditLog(
            actor=(actor or "unknown")[:MAX_FIELD_CHARS],
            action=action,
            target=target[:MAX_FIELD_CHARS] if target else None,
            payload=payload or {},
        )
        db.add(ev)
        db.flush()
    except Exception as e:
        # Never block admin operations on audit logging, but do emit a server log.
        logger.exception("Admin audit logging failed: %s", str(e))
