"""
Entitlements Service

Clean separation of "can they access this?" logic.
Combines the Stripe subscription mirror, the admin premium pass and the
admin-configurable free-tier limits.

Usage:
    ent = get_entitlements(db, user_id)
    if not ent.is_premium:
        limit = ent.limits.food_entries_per_day
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.capabilities import get_capabilities
from core.clock import ensure_aware, utc_now
from core.exceptions import NotFoundError, SchemaOutdatedError
from models import (
    PLAN_TIER_FREE,
    PLAN_TIER_PREMIUM,
    PREMIUM_SUBSCRIPTION_STATUSES,
    AppAdminSettings,
    UserProfile,
)
from services.admin_audit import record_admin_audit_event

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1
PASS_NOTE_MAX_CHARS = 300

PREMIUM_SOURCE_SUBSCRIPTION = "subscription"
PREMIUM_SOURCE_ADMIN_PASS = "admin_pass"
PREMIUM_SOURCE_NONE = "none"


@dataclass(frozen=True)
class PlanConfig:
    free_food_entries_per_day: int = 5
    free_ai_actions_per_day: int = 5
    free_history_days: int = 20
    monthly_price_usd: int = 5
    yearly_price_usd: int = 50
    monthly_upgrade_url: Optional[str] = "https://buy.stripe.com/eVqbIUci9aZidBB9qg8bS0b"
    yearly_upgrade_url: Optional[str] = "https://buy.stripe.com/aFadR22Hz7N6app1XO8bS0c"
    manage_subscription_url: Optional[str] = None


DEFAULT_PLAN_CONFIG = PlanConfig()

_INT_FIELDS = (
    "free_food_entries_per_day",
    "free_ai_actions_per_day",
    "free_history_days",
    "monthly_price_usd",
    "yearly_price_usd",
)
_URL_FIELDS = ("monthly_upgrade_url", "yearly_upgrade_url", "manage_subscription_url")


@dataclass(frozen=True)
class PlanLimits:
    food_entries_per_day: Optional[int]
    ai_actions_per_day: Optional[int]
    history_days: Optional[int]
    can_export: bool


@dataclass(frozen=True)
class Entitlements:
    plan_tier: str
    is_premium: bool
    premium_source: str
    pricing: dict
    limits: PlanLimits

    def to_dict(self) -> dict:
        return asdict(self)


def _to_pos_int(value: Any, fallback: int) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return fallback
    return n if n > 0 else fallback


def load_plan_config(db: Session) -> PlanConfig:
    """Plan configuration from the admin settings row, falling back to defaults."""
    if not get_capabilities(db).plan_settings:
        return DEFAULT_PLAN_CONFIG

    row = db.get(AppAdminSettings, SETTINGS_ROW_ID)
    if row is None:
        return DEFAULT_PLAN_CONFIG

    values: dict[str, Any] = {}
    for name in _INT_FIELDS:
        values[name] = _to_pos_int(getattr(row, name), getattr(DEFAULT_PLAN_CONFIG, name))
    for name in _URL_FIELDS:
        raw = getattr(row, name)
        values[name] = raw.strip() if isinstance(raw, str) and raw.strip() else getattr(DEFAULT_PLAN_CONFIG, name)
    return PlanConfig(**values)


def is_subscription_premium(profile: Optional[UserProfile]) -> bool:
    if profile is None:
        return False
    status = (profile.subscription_status or "").lower()
    return profile.plan_tier == PLAN_TIER_PREMIUM and status in PREMIUM_SUBSCRIPTION_STATUSES


def is_pass_premium(profile: Optional[UserProfile], now: Optional[datetime] = None) -> bool:
    if profile is None or not profile.premium_pass:
        return False
    expires_at = profile.premium_pass_expires_at
    if expires_at is None:
        return True
    return ensure_aware(expires_at) > (now or utc_now())


def get_entitlements(db: Session, user_id: str, now: Optional[datetime] = None) -> Entitlements:
    """
    Compute entitlements for a user. Read-only.

    Subscription wins over the admin pass when both apply. The pass is only
    read once its columns exist.
    """
    config = load_plan_config(db)
    profile = db.get(UserProfile, user_id)

    sub_premium = is_subscription_premium(profile)
    pass_premium = get_capabilities(db).premium_pass and is_pass_premium(profile, now)
    is_premium = sub_premium or pass_premium

    if sub_premium:
        source = PREMIUM_SOURCE_SUBSCRIPTION
    elif pass_premium:
        source = PREMIUM_SOURCE_ADMIN_PASS
    else:
        source = PREMIUM_SOURCE_NONE

    if is_premium:
        limits = PlanLimits(food_entries_per_day=None, ai_actions_per_day=None, history_days=None, can_export=True)
    else:
        limits = PlanLimits(
            food_entries_per_day=config.free_food_entries_per_day,
            ai_actions_per_day=config.free_ai_actions_per_day,
            history_days=config.free_history_days,
            can_export=False,
        )

    return Entitlements(
        plan_tier=PLAN_TIER_PREMIUM if is_premium else PLAN_TIER_FREE,
        is_premium=is_premium,
        premium_source=source,
        pricing={
            "monthly_price_usd": config.monthly_price_usd,
            "yearly_price_usd": config.yearly_price_usd,
            "monthly_upgrade_url": config.monthly_upgrade_url,
            "yearly_upgrade_url": config.yearly_upgrade_url,
            "manage_subscription_url": config.manage_subscription_url,
        },
        limits=limits,
    )


def update_plan_settings(db: Session, *, changes: dict, actor: str) -> PlanConfig:
    """Upsert the singleton settings row. Unknown keys are ignored."""
    if not get_capabilities(db).plan_settings:
        raise SchemaOutdatedError("plan settings")

    row = db.get(AppAdminSettings, SETTINGS_ROW_ID)
    if row is None:
        row = AppAdminSettings(id=SETTINGS_ROW_ID)
        db.add(row)

    applied = {}
    for name in _INT_FIELDS + _URL_FIELDS:
        if name in changes:
            setattr(row, name, changes[name])
            applied[name] = changes[name]
    db.flush()

    record_admin_audit_event(db, actor=actor, action="plan_settings_updated", target="app_admin_settings", payload=applied)
    return load_plan_config(db)


def find_profile_by_identifier(db: Session, identifier: str) -> Optional[UserProfile]:
    """Resolve an admin-supplied identifier (user id or email) to a profile."""
    ident = (identifier or "").strip()
    if not ident:
        return None
    if "@" in ident:
        return (
            db.query(UserProfile)
            .filter(func.lower(UserProfile.email) == ident.lower())
            .order_by(UserProfile.created_at.desc())
            .first()
        )
    return db.get(UserProfile, ident)


def grant_premium_pass(
    db: Session,
    *,
    identifier: str,
    active: bool,
    expires_at: Optional[datetime],
    note: Optional[str],
    actor: str,
    now: Optional[datetime] = None,
) -> UserProfile:
    """Grant (or revoke) the admin premium pass for a user."""
    if not get_capabilities(db).premium_pass:
        raise SchemaOutdatedError("premium passes")

    profile = find_profile_by_identifier(db, identifier)
    if profile is None:
        raise NotFoundError("User", identifier)

    clean_note = (note or "").strip()[:PASS_NOTE_MAX_CHARS] or None
    profile.premium_pass = bool(active)
    profile.premium_pass_expires_at = expires_at if active else None
    profile.premium_pass_note = clean_note
    profile.premium_pass_granted_at = (now or utc_now()) if active else None
    db.flush()

    record_admin_audit_event(
        db,
        actor=actor,
        action="admin_pass_grant",
        target=profile.user_id,
        payload={
            "active": bool(active),
            "expires_at": expires_at.isoformat() if expires_at else None,
            "note": clean_note,
        },
    )
    logger.info(f"Premium pass {'granted' if active else 'revoked'} for user {profile.user_id}")
    return profile
