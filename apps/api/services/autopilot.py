"""
Calorie Autopilot

Weekly, opt-in adjustment of the daily calorie goal.

The engine infers maintenance calories (TDEE) from what the user ate over the
last 7 days and how their weight moved over the last 14, then proposes the
intake that would produce the desired rate of change toward the target.

Energy balance heuristic: 500 kcal/day ~= 1 lb/week.

Gates run in a fixed order and the first failure short-circuits with a
reason code plus the data needed to become ready:

    autopilot_disabled -> no_calorie_goal -> not_enough_food_days
    -> not_enough_weighins -> weighins_too_close -> no_target_*

Bounds:
- desired rate clamped to [-2.0, +1.0] lb/week
- raw target clamped to [1200, 4500] kcal
- at most +/-150 kcal change from the current goal per review, rounded to 10
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.capabilities import get_capabilities
from core.clock import days_between, shift_days, week_start
from core.exceptions import SchemaOutdatedError, ValidationError
from models import AUTOPILOT_MODES, DailyWeight, FoodEntry, UserProfile
from services.calorie_goals import get_daily_calorie_goal, upsert_daily_calorie_goal

logger = logging.getLogger(__name__)

KCAL_PER_LB_PER_WEEK = 500

FOOD_WINDOW_DAYS = 7
WEIGHT_WINDOW_DAYS = 14
MIN_FOOD_DAYS = 4
MIN_WEIGHINS = 2
MIN_SPAN_DAYS = 6

DEFAULT_DESIRED_RATE = -1.0
MIN_DESIRED_RATE = -2.0
MAX_DESIRED_RATE = 1.0
MIN_WEEKS_FOR_DATED_GOAL = 0.25

MIN_TARGET_CALORIES = 1200
MAX_TARGET_CALORIES = 4500
MAX_WEEKLY_CHANGE = 150
ROUND_TO = 10

MIN_BODY_FAT = 1.0
MAX_BODY_FAT = 80.0


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _round_half_up(value: float, step: int = ROUND_TO) -> int:
    return int(math.floor(value / step + 0.5)) * step


@dataclass
class AutopilotSuggestion:
    ready: bool
    reason: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = {"ready": self.ready}
        if self.reason:
            out["reason"] = self.reason
        out.update(self.details)
        return out


def _not_ready(reason: str, **details) -> AutopilotSuggestion:
    return AutopilotSuggestion(ready=False, reason=reason, details=details)


def lean_mass_target_weight(current_weight: float, current_bf: float, target_bf: float) -> Tuple[float, float]:
    """Return (lean_mass, target_weight) holding lean mass constant."""
    cur = _clamp(float(current_bf), MIN_BODY_FAT, MAX_BODY_FAT)
    tgt = _clamp(float(target_bf), MIN_BODY_FAT, MAX_BODY_FAT)
    lean = float(current_weight) * (1 - cur / 100.0)
    return lean, lean / (1 - tgt / 100.0)


def compute_suggestion(
    *,
    current_goal: int,
    avg_calories: float,
    first_weight: float,
    last_weight: float,
    span_days: int,
    target_weight: float,
    goal_date: Optional[date],
    today: date,
) -> dict:
    """Pure arithmetic once every sufficiency gate has passed."""
    observed = (last_weight - first_weight) / max(1, span_days) * 7

    desired = DEFAULT_DESIRED_RATE
    if goal_date is not None:
        weeks = days_between(today, goal_date) / 7.0
        if weeks > MIN_WEEKS_FOR_DATED_GOAL:
            desired = (target_weight - last_weight) / weeks
    desired = _clamp(desired, MIN_DESIRED_RATE, MAX_DESIRED_RATE)

    inferred_tdee = avg_calories - observed * KCAL_PER_LB_PER_WEEK
    raw_target = _clamp(inferred_tdee - desired * KCAL_PER_LB_PER_WEEK, MIN_TARGET_CALORIES, MAX_TARGET_CALORIES)

    delta = _clamp(raw_target - current_goal, -MAX_WEEKLY_CHANGE, MAX_WEEKLY_CHANGE)
    suggested = _round_half_up(current_goal + delta)
    # Rounding an off-grid goal can push the change past the cap; step back toward it.
    while abs(suggested - current_goal) > MAX_WEEKLY_CHANGE:
        suggested += ROUND_TO if suggested < current_goal else -ROUND_TO

    return {
        "current_daily_calories": int(current_goal),
        "suggested_daily_calories": int(suggested),
        "delta_daily_calories": int(suggested - current_goal),
        "avg_calories_7d": int(round(avg_calories)),
        "observed_lbs_per_week": round(observed, 2),
        "inferred_tdee": int(round(inferred_tdee)),
        "raw_target_calories": int(round(raw_target)),
        "desired_lbs_per_week": round(desired, 2),
        "target_weight_lbs": round(target_weight, 1),
        "goal_date": goal_date.isoformat() if goal_date else None,
    }


def _daily_totals(db: Session, user_id: str, start: date, end: date) -> List[int]:
    rows = (
        db.query(FoodEntry.entry_date, func.sum(FoodEntry.calories))
        .filter(FoodEntry.user_id == user_id, FoodEntry.entry_date >= start, FoodEntry.entry_date <= end)
        .group_by(FoodEntry.entry_date)
        .all()
    )
    return [int(total or 0) for _, total in rows]


def _weighins(db: Session, user_id: str, start: date, end: date) -> List[Tuple[date, float]]:
    rows = (
        db.query(DailyWeight.entry_date, DailyWeight.weight_lbs)
        .filter(DailyWeight.user_id == user_id, DailyWeight.entry_date >= start, DailyWeight.entry_date <= end)
        .order_by(DailyWeight.entry_date.asc())
        .all()
    )
    return [(d, float(w)) for d, w in rows if w is not None]


def _resolve_target(profile: UserProfile, weighins: Sequence[Tuple[date, float]]):
    """Return (target_weight, goal_date, meta) or an AutopilotSuggestion when unresolvable."""
    mode = profile.autopilot_mode or "weight"
    if mode == "bodyfat":
        if profile.goal_body_fat_percent is None:
            return _not_ready("no_target_bodyfat", mode=mode)
        if profile.current_body_fat_percent is None:
            return _not_ready("no_current_bodyfat", mode=mode)
        current_weight = profile.current_body_fat_weight_lbs or weighins[-1][1]
        lean, target = lean_mass_target_weight(
            current_weight, profile.current_body_fat_percent, profile.goal_body_fat_percent
        )
        meta = {
            "mode": mode,
            "current_body_fat_percent": float(profile.current_body_fat_percent),
            "goal_body_fat_percent": float(profile.goal_body_fat_percent),
            "lean_mass_lbs": round(lean, 1),
        }
        return target, profile.goal_body_fat_date, meta

    if profile.goal_weight_lbs is None:
        return _not_ready("no_target_weight", mode=mode)
    return float(profile.goal_weight_lbs), profile.goal_date, {"mode": mode}


def review_status(profile: UserProfile, today: date) -> dict:
    this_week = week_start(today)
    reviewed = profile.autopilot_last_review_week == this_week
    return {
        "week_start": this_week.isoformat(),
        "reviewed_this_week": reviewed,
        "due_this_week": bool(profile.autopilot_enabled) and not reviewed,
    }


def build_suggestion(db: Session, profile: UserProfile, today: date) -> AutopilotSuggestion:
    if not get_capabilities(db).autopilot:
        raise SchemaOutdatedError("autopilot")

    if not profile.autopilot_enabled:
        return _not_ready("autopilot_disabled")

    current_goal = get_daily_calorie_goal(db, profile.user_id)
    if not current_goal:
        return _not_ready("no_calorie_goal")

    totals = [t for t in _daily_totals(db, profile.user_id, shift_days(today, -(FOOD_WINDOW_DAYS - 1)), today) if t > 0]
    if len(totals) < MIN_FOOD_DAYS:
        return _not_ready("not_enough_food_days", need_food_days=MIN_FOOD_DAYS, have_food_days=len(totals))
    avg_calories = sum(totals) / len(totals)

    weighins = _weighins(db, profile.user_id, shift_days(today, -(WEIGHT_WINDOW_DAYS - 1)), today)
    if len(weighins) < MIN_WEIGHINS:
        return _not_ready("not_enough_weighins", need_weighins=MIN_WEIGHINS, have_weighins=len(weighins))

    span_days = max(1, days_between(weighins[0][0], weighins[-1][0]))
    if span_days < MIN_SPAN_DAYS:
        return _not_ready("weighins_too_close", min_span_days=MIN_SPAN_DAYS, span_days=span_days)

    resolved = _resolve_target(profile, weighins)
    if isinstance(resolved, AutopilotSuggestion):
        return resolved
    target_weight, goal_date, meta = resolved

    details = compute_suggestion(
        current_goal=current_goal,
        avg_calories=avg_calories,
        first_weight=weighins[0][1],
        last_weight=weighins[-1][1],
        span_days=span_days,
        target_weight=target_weight,
        goal_date=goal_date,
        today=today,
    )
    details.update(meta)
    details["food_days"] = len(totals)
    details["weighins"] = len(weighins)
    return AutopilotSuggestion(ready=True, details=details)


def update_autopilot_settings(db: Session, profile: UserProfile, *, enabled: Optional[bool], mode: Optional[str]) -> UserProfile:
    if not get_capabilities(db).autopilot:
        raise SchemaOutdatedError("autopilot")
    if mode is not None and mode not in AUTOPILOT_MODES:
        raise ValidationError("autopilot_mode must be 'weight' or 'bodyfat'", field="autopilot_mode")
    if enabled is not None:
        profile.autopilot_enabled = bool(enabled)
    if mode is not None:
        profile.autopilot_mode = mode
    db.flush()
    return profile


def review_suggestion(db: Session, profile: UserProfile, *, accept: bool, today: date) -> dict:
    """
    Accept or decline this week's suggestion.

    Either way the week is marked reviewed (committed before anything else can
    fail). On accept the suggestion is recomputed here rather than trusted from
    the client.
    """
    if not get_capabilities(db).autopilot:
        raise SchemaOutdatedError("autopilot")

    this_week = week_start(today)
    if profile.autopilot_last_review_week == this_week:
        return {"applied": False, "reason": "already_reviewed", "week_start": this_week.isoformat()}

    profile.autopilot_last_review_week = this_week
    db.commit()

    if not accept:
        return {"applied": False, "week_start": this_week.isoformat()}

    if get_daily_calorie_goal(db, profile.user_id) is None:
        raise ValidationError("Set a daily calorie goal before applying an autopilot suggestion.")

    suggestion = build_suggestion(db, profile, today)
    if not suggestion.ready:
        return {"applied": False, "week_start": this_week.isoformat(), "reason": suggestion.reason, **suggestion.details}

    new_goal = upsert_daily_calorie_goal(db, profile.user_id, suggestion.details["suggested_daily_calories"])
    logger.info(
        f"Autopilot applied for user {profile.user_id}: "
        f"{suggestion.details['current_daily_calories']} -> {new_goal}"
    )
    return {
        "applied": True,
        "week_start": this_week.isoformat(),
        "daily_calories": new_goal,
        "previous_daily_calories": suggestion.details["current_daily_calories"],
    }
