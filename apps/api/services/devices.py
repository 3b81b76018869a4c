"""
Linked devices for a user: the device ids seen alongside the user's identity
token. Removing a link means that device falls back to anonymous usage.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ValidationError
from models import DeviceIdentity, UserDeviceLink
from services.identity import normalize_device_id

logger = logging.getLogger(__name__)


def list_user_devices(db: Session, user_id: str, current_device_id: Optional[str] = None) -> List[dict]:
    """Most recently seen first."""
    rows = (
        db.query(UserDeviceLink, DeviceIdentity.first_seen_at)
        .outerjoin(DeviceIdentity, DeviceIdentity.device_id == UserDeviceLink.device_id)
        .filter(UserDeviceLink.user_id == user_id)
        .order_by(UserDeviceLink.last_seen_at.desc(), UserDeviceLink.id.desc())
        .all()
    )
    return [
        {
            "device_id": link.device_id,
            "created_at": link.created_at,
            "first_seen_at": first_seen_at,
            "last_seen_at": link.last_seen_at,
            "is_current": bool(current_device_id) and link.device_id == current_device_id,
        }
        for link, first_seen_at in rows
    ]


def delete_device_link(db: Session, user_id: str, device_id: str, current_device_id: Optional[str] = None) -> None:
    clean = normalize_device_id(device_id)
    if clean is None:
        raise ValidationError("device_id is required and must be valid", field="device_id")
    if current_device_id and clean == current_device_id:
        raise ValidationError("You cannot delete the current device from itself.", field="device_id")

    deleted = (
        db.query(UserDeviceLink)
        .filter(UserDeviceLink.user_id == user_id, UserDeviceLink.device_id == clean)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError("Device link", clean)
    db.flush()
    logger.info(f"Device link removed for user {user_id}")
