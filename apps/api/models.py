from sqlalchemy import Column, Integer, Boolean, Float, Date, DateTime, JSON, Text, Index, UniqueConstraint, false
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import deferred
from sqlalchemy.sql import func
from core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")

PLAN_TIER_FREE = "free"
PLAN_TIER_PREMIUM = "premium"
PREMIUM_SUBSCRIPTION_STATUSES = ("active", "trialing")
AUTOPILOT_MODES = ("weight", "bodyfat")


class UserProfile(Base):
    """
    One row per logical user (verified account or anonymous device).

    `plan_tier` is a mirror of the billing state for display; access checks
    always recompute from subscription status + premium pass.

    Columns added by later migrations are deferred in groups and only read
    behind the matching capability flag, so a partially migrated table still
    loads. They carry server defaults so inserts never name them.
    """

    __tablename__ = "user_profiles"

    user_id = Column(Text, primary_key=True)
    email = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # --- BILLING MIRROR ---
    plan_tier = Column(Text, default=PLAN_TIER_FREE, nullable=False)
    subscription_status = Column(Text, default="inactive", nullable=False)
    stripe_customer_id = Column(Text, nullable=True, index=True)
    stripe_subscription_id = Column(Text, nullable=True, index=True)
    subscription_current_period_end = Column(DateTime(timezone=True), nullable=True)

    # --- ADMIN PREMIUM PASS (independent of billing) ---
    premium_pass = deferred(Column(Boolean, server_default=false(), nullable=False), group="premium_pass")
    premium_pass_expires_at = deferred(Column(DateTime(timezone=True), nullable=True), group="premium_pass")
    premium_pass_note = deferred(Column(Text, nullable=True), group="premium_pass")
    premium_pass_granted_at = deferred(Column(DateTime(timezone=True), nullable=True), group="premium_pass")

    # --- REFERRAL ATTRIBUTION ---
    ambassador_id = Column(Text, nullable=True)
    ambassador_ref_code = Column(Text, nullable=True)

    # --- GOALS ---
    goal_weight_lbs = Column(Float, nullable=True)
    goal_date = Column(Date, nullable=True)
    goal_body_fat_percent = Column(Float, nullable=True)
    goal_body_fat_date = Column(Date, nullable=True)
    current_body_fat_percent = Column(Float, nullable=True)
    current_body_fat_weight_lbs = Column(Float, nullable=True)

    # --- AUTOPILOT ---
    autopilot_enabled = deferred(Column(Boolean, server_default=false(), nullable=False), group="autopilot")
    autopilot_mode = deferred(Column(Text, server_default="weight", nullable=False), group="autopilot")  # weight | bodyfat
    # Monday of the last reviewed week
    autopilot_last_review_week = deferred(Column(Date, nullable=True), group="autopilot")

    # --- NUTRITION SETTINGS ---
    rollover_enabled = deferred(Column(Boolean, server_default=false(), nullable=False), group="rollover")
    rollover_cap = deferred(Column(Integer, server_default="500", nullable=False), group="rollover")


class DeviceIdentity(Base):
    __tablename__ = "device_identities"

    device_id = Column(Text, primary_key=True)
    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)


class UserDeviceLink(Base):
    __tablename__ = "user_device_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    device_id = Column(Text, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_user_device_links_user_device"),
    )


class CalorieGoal(Base):
    __tablename__ = "calorie_goals"

    user_id = Column(Text, primary_key=True)
    daily_calories = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class FoodEntry(Base):
    """
    Logged food (append-mostly).

    Rows older than the retention window move to `food_entries_archive`.
    """

    __tablename__ = "food_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    entry_date = Column(Date, nullable=False)  # civil date
    taken_at = Column(DateTime(timezone=True), nullable=False)
    food_name = Column(Text, nullable=True)
    calories = Column(Integer, nullable=False)
    protein_g = Column(Float, nullable=True)
    carbs_g = Column(Float, nullable=True)
    fat_g = Column(Float, nullable=True)
    # Provenance: {source, confidence, estimated, notes}
    raw_extraction = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_food_entries_user_date", "user_id", "entry_date"),
    )


class FoodEntryArchive(Base):
    __tablename__ = "food_entries_archive"

    id = Column(Integer, primary_key=True, autoincrement=False)  # original food_entries.id
    user_id = Column(Text, nullable=False)
    entry_date = Column(Date, nullable=False)
    taken_at = Column(DateTime(timezone=True), nullable=False)
    food_name = Column(Text, nullable=True)
    calories = Column(Integer, nullable=False)
    protein_g = Column(Float, nullable=True)
    carbs_g = Column(Float, nullable=True)
    fat_g = Column(Float, nullable=True)
    raw_extraction = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_food_entries_archive_entry_date", "entry_date"),
    )


class DailyWeight(Base):
    __tablename__ = "daily_weights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    entry_date = Column(Date, nullable=False)
    weight_lbs = Column(Float, nullable=False)
    body_fat_percent = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "entry_date", name="uq_daily_weights_user_date"),
    )


class AiUsageEvent(Base):
    """One row per AI-gated action (append-only); counted per civil day."""

    __tablename__ = "ai_usage_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False)
    entry_date = Column(Date, nullable=False)
    action_type = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_ai_usage_events_user_date", "user_id", "entry_date"),
    )


class StripeWebhookEvent(Base):
    """
    Received Stripe webhook events.

    The unique `stripe_event_id` is the idempotency guard: an event id is
    processed at most once.
    """

    __tablename__ = "stripe_webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_event_id = Column(Text, nullable=True, unique=True)
    event_type = Column(Text, nullable=True, index=True)
    payload = Column(JSONType, nullable=False, default=dict)
    processed = Column(Boolean, default=False, nullable=False)
    process_result = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    user_id = Column(Text, nullable=True)
    subscription_id = Column(Text, nullable=True)
    subscription_status = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)


class SubscriptionReconcileRun(Base):
    __tablename__ = "subscription_reconcile_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor = Column(Text, nullable=False)
    checked = Column(Integer, nullable=False, default=0)
    updated = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AdminAuditLog(Base):
    """
    Append-only audit log for admin and system actions.

    Payload must be bounded and must not contain secrets.
    """

    __tablename__ = "admin_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor = Column(Text, nullable=False)
    action = Column(Text, nullable=False, index=True)  # e.g. subscriptions_reconciled | admin_pass_grant
    target = Column(Text, nullable=True)
    payload = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AlertNotification(Base):
    __tablename__ = "alert_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    delivered = Column(Boolean, default=False, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AppAdminSettings(Base):
    """Singleton (id=1) plan configuration editable from the admin API."""

    __tablename__ = "app_admin_settings"

    id = Column(Integer, primary_key=True, autoincrement=False)
    free_food_entries_per_day = Column(Integer, nullable=True)
    free_ai_actions_per_day = Column(Integer, nullable=True)
    free_history_days = Column(Integer, nullable=True)
    monthly_price_usd = Column(Integer, nullable=True)
    yearly_price_usd = Column(Integer, nullable=True)
    monthly_upgrade_url = Column(Text, nullable=True)
    yearly_upgrade_url = Column(Text, nullable=True)
    manage_subscription_url = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class AmbassadorReferral(Base):
    """Checkout attribution captured by the referral flow, possibly before signup."""

    __tablename__ = "ambassador_referrals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ambassador_id = Column(Text, nullable=True)
    ref_code = Column(Text, nullable=True)
    email = Column(Text, nullable=True, index=True)
    stripe_customer_id = Column(Text, nullable=True)
    stripe_subscription_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
