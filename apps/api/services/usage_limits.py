"""
Free-tier usage gates.

Each gate returns a GateResult rather than raising: a denial is an expected
outcome carrying a user-facing upgrade message, and routers return that
message unchanged.

The count and the write are separate statements, so two concurrent requests
at the boundary can both pass (off by at most one).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.clock import shift_days
from models import AiUsageEvent, FoodEntry
from services.entitlements import Entitlements, get_entitlements

logger = logging.getLogger(__name__)

ACTION_TYPE_MAX_CHARS = 48

REASON_FOOD_LIMIT = "food_entry_limit_reached"
REASON_AI_LIMIT = "ai_action_limit_reached"
REASON_HISTORY = "history_limit"


@dataclass(frozen=True)
class GateResult:
    ok: bool
    entitlements: Entitlements
    reason: Optional[str] = None
    message: Optional[str] = None
    used: Optional[int] = None
    limit: Optional[int] = None
    min_allowed_date: Optional[date] = None


def count_food_entries(db: Session, user_id: str, entry_date: date) -> int:
    return (
        db.query(func.count(FoodEntry.id))
        .filter(FoodEntry.user_id == user_id, FoodEntry.entry_date == entry_date)
        .scalar()
        or 0
    )


def count_ai_actions(db: Session, user_id: str, entry_date: date) -> int:
    return (
        db.query(func.count(AiUsageEvent.id))
        .filter(AiUsageEvent.user_id == user_id, AiUsageEvent.entry_date == entry_date)
        .scalar()
        or 0
    )


def normalize_action_type(action_type: Optional[str]) -> str:
    value = (action_type or "").strip() or "unknown"
    return value[:ACTION_TYPE_MAX_CHARS]


def min_allowed_history_date(today: date, history_days: int) -> date:
    return shift_days(today, -(max(1, int(history_days)) - 1))


def enforce_food_entry_limit(db: Session, user_id: str, entry_date: date) -> GateResult:
    ent = get_entitlements(db, user_id)
    if ent.is_premium:
        return GateResult(ok=True, entitlements=ent)

    limit = int(ent.limits.food_entries_per_day)
    used = count_food_entries(db, user_id, entry_date)
    if used < limit:
        return GateResult(ok=True, entitlements=ent, used=used, limit=limit)

    return GateResult(
        ok=False,
        entitlements=ent,
        reason=REASON_FOOD_LIMIT,
        message=f"Free tier allows up to {limit} food entries per day. Upgrade to Premium for unlimited entries.",
        used=used,
        limit=limit,
    )


def enforce_ai_action_limit(db: Session, user_id: str, entry_date: date, action_type: Optional[str]) -> GateResult:
    """
    Check the AI quota and, when allowed, consume one unit.

    The usage row is written on attempt, so a downstream failure still costs
    quota. Premium users get a row too but are never blocked.
    """
    ent = get_entitlements(db, user_id)
    action = normalize_action_type(action_type)

    if ent.is_premium:
        _record_ai_usage(db, user_id, entry_date, action)
        return GateResult(ok=True, entitlements=ent)

    limit = int(ent.limits.ai_actions_per_day)
    used = count_ai_actions(db, user_id, entry_date)
    if used >= limit:
        logger.info(f"AI quota reached for user {user_id} on {entry_date} ({used}/{limit})")
        return GateResult(
            ok=False,
            entitlements=ent,
            reason=REASON_AI_LIMIT,
            message=f"Free tier allows up to {limit} AI actions per day. Upgrade to Premium for unlimited AI.",
            used=used,
            limit=limit,
        )

    _record_ai_usage(db, user_id, entry_date, action)
    return GateResult(ok=True, entitlements=ent, used=used + 1, limit=limit)


def _record_ai_usage(db: Session, user_id: str, entry_date: date, action: str) -> None:
    db.add(AiUsageEvent(user_id=user_id, entry_date=entry_date, action_type=action))
    db.flush()


def enforce_history_access(db: Session, user_id: str, requested_date: date, today: date) -> GateResult:
    ent = get_entitlements(db, user_id)
    if ent.is_premium:
        return GateResult(ok=True, entitlements=ent)

    days = int(ent.limits.history_days)
    min_allowed = min_allowed_history_date(today, days)
    if requested_date >= min_allowed:
        return GateResult(ok=True, entitlements=ent, min_allowed_date=min_allowed)

    return GateResult(
        ok=False,
        entitlements=ent,
        reason=REASON_HISTORY,
        message=f"Free tier includes last {days} days of history. Upgrade to Premium for unlimited history.",
        min_allowed_date=min_allowed,
    )


def usage_today(db: Session, user_id: str, today: date, ent: Optional[Entitlements] = None) -> dict:
    """Counts plus remaining quota for the billing status view."""
    ent = ent or get_entitlements(db, user_id)
    food = count_food_entries(db, user_id, today)
    ai = count_ai_actions(db, user_id, today)

    def _remaining(limit: Optional[int], used: int) -> Optional[int]:
        if limit is None:
            return None
        return max(0, int(limit) - used)

    return {
        "date": today.isoformat(),
        "food_entries": food,
        "ai_actions": ai,
        "food_entries_remaining": _remaining(ent.limits.food_entries_per_day, food),
        "ai_actions_remaining": _remaining(ent.limits.ai_actions_per_day, ai),
    }
