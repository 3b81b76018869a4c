"""
Caller identity resolution.

A request is identified either by a verified identity token (signed-in user)
or by a self-declared device id (anonymous usage before signup). Device ids
seen alongside a verified token are linked to that user so later
device-only requests resolve to the same account.
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.clock import utc_now
from core.database import dialect_insert
from core.exceptions import UnauthorizedError
from models import DeviceIdentity, UserDeviceLink, UserProfile
from services.referrals import attach_referral_subscription

logger = logging.getLogger(__name__)

DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9._-]{12,200}$")
ANON_PREFIX = "device_"
ANON_HASH_CHARS = 40

IDENTITY_USER = "user"
IDENTITY_DEVICE_LINKED = "device_linked"
IDENTITY_DEVICE_ANONYMOUS = "device_anonymous"


@dataclass(frozen=True)
class Identity:
    user_id: str
    identity_type: str
    email: Optional[str] = None
    device_id: Optional[str] = None

    @property
    def is_signed_in(self) -> bool:
        return self.identity_type == IDENTITY_USER


def normalize_device_id(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip()
    return v if DEVICE_ID_RE.match(v) else None


def anonymous_user_id(device_id: str) -> str:
    digest = hashlib.sha256(device_id.encode("utf-8")).hexdigest()
    return f"{ANON_PREFIX}{digest[:ANON_HASH_CHARS]}"


def ensure_user_profile(db: Session, user_id: str, email: Optional[str] = None) -> bool:
    """
    Upsert the profile row; a known email is never overwritten with null.

    Returns True when the profile did not exist before this call.
    """
    existed = db.get(UserProfile, user_id) is not None

    table = UserProfile.__table__
    stmt = dialect_insert(db, table).values(user_id=user_id, email=email)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id],
        set_={"email": func.coalesce(stmt.excluded.email, table.c.email)},
    )
    db.execute(stmt)
    db.get(UserProfile, user_id, populate_existing=True)
    return not existed


def touch_device(db: Session, device_id: str, now: datetime) -> None:
    table = DeviceIdentity.__table__
    stmt = dialect_insert(db, table).values(device_id=device_id, first_seen_at=now, last_seen_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.device_id],
        set_={"last_seen_at": stmt.excluded.last_seen_at},
    )
    db.execute(stmt)


def link_device(db: Session, user_id: str, device_id: str, now: datetime) -> None:
    table = UserDeviceLink.__table__
    stmt = dialect_insert(db, table).values(user_id=user_id, device_id=device_id, last_seen_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.device_id],
        set_={"last_seen_at": stmt.excluded.last_seen_at},
    )
    db.execute(stmt)


def linked_user_for_device(db: Session, device_id: str) -> Optional[str]:
    row = (
        db.query(UserDeviceLink.user_id)
        .filter(UserDeviceLink.device_id == device_id)
        .order_by(UserDeviceLink.last_seen_at.desc(), UserDeviceLink.id.desc())
        .first()
    )
    return row[0] if row else None


def resolve_identity(
    db: Session,
    *,
    subject: Optional[str],
    email: Optional[str],
    device_id_header: Optional[str],
    now: Optional[datetime] = None,
) -> Identity:
    """
    Resolve exactly one identity for the request.

    `subject`/`email` come from an already verified token (or are None).
    Raises UnauthorizedError when neither a subject nor a valid device id is present.
    """
    now = now or utc_now()
    device_id = normalize_device_id(device_id_header)
    clean_email = (email or "").strip().lower() or None

    if subject:
        created = ensure_user_profile(db, subject, clean_email)
        if device_id:
            touch_device(db, device_id, now)
            link_device(db, subject, device_id, now)
        if created and clean_email:
            attach_referral_subscription(db, user_id=subject, email=clean_email)
        return Identity(user_id=subject, identity_type=IDENTITY_USER, email=clean_email, device_id=device_id)

    if device_id:
        touch_device(db, device_id, now)
        linked = linked_user_for_device(db, device_id)
        if linked:
            return Identity(user_id=linked, identity_type=IDENTITY_DEVICE_LINKED, device_id=device_id)

        anon_id = anonymous_user_id(device_id)
        ensure_user_profile(db, anon_id)
        return Identity(user_id=anon_id, identity_type=IDENTITY_DEVICE_ANONYMOUS, device_id=device_id)

    raise UnauthorizedError("Unauthorized")
