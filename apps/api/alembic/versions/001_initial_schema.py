"""initial schema: identity, food log, weights, usage, billing mirror

Revision ID: 001
Revises:
Create Date: 2025-01-06 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'user_profiles',
        sa.Column('user_id', sa.Text(), primary_key=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('plan_tier', sa.Text(), server_default='free', nullable=False),
        sa.Column('subscription_status', sa.Text(), server_default='inactive', nullable=False),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True),
        sa.Column('subscription_current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ambassador_id', sa.Text(), nullable=True),
        sa.Column('ambassador_ref_code', sa.Text(), nullable=True),
        sa.Column('goal_weight_lbs', sa.Float(), nullable=True),
        sa.Column('goal_date', sa.Date(), nullable=True),
        sa.Column('goal_body_fat_percent', sa.Float(), nullable=True),
        sa.Column('goal_body_fat_date', sa.Date(), nullable=True),
        sa.Column('current_body_fat_percent', sa.Float(), nullable=True),
        sa.Column('current_body_fat_weight_lbs', sa.Float(), nullable=True),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'])
    op.create_index('ix_user_profiles_stripe_customer_id', 'user_profiles', ['stripe_customer_id'])
    op.create_index('ix_user_profiles_stripe_subscription_id', 'user_profiles', ['stripe_subscription_id'])

    op.create_table(
        'device_identities',
        sa.Column('device_id', sa.Text(), primary_key=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'user_device_links',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('device_id', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'device_id', name='uq_user_device_links_user_device'),
    )
    op.create_index('ix_user_device_links_user_id', 'user_device_links', ['user_id'])
    op.create_index('ix_user_device_links_device_id', 'user_device_links', ['device_id'])

    op.create_table(
        'calorie_goals',
        sa.Column('user_id', sa.Text(), primary_key=True),
        sa.Column('daily_calories', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'food_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('taken_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('food_name', sa.Text(), nullable=True),
        sa.Column('calories', sa.Integer(), nullable=False),
        sa.Column('protein_g', sa.Float(), nullable=True),
        sa.Column('carbs_g', sa.Float(), nullable=True),
        sa.Column('fat_g', sa.Float(), nullable=True),
        sa.Column('raw_extraction', JSONType, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_food_entries_user_date', 'food_entries', ['user_id', 'entry_date'])

    op.create_table(
        'daily_weights',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('weight_lbs', sa.Float(), nullable=False),
        sa.Column('body_fat_percent', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'entry_date', name='uq_daily_weights_user_date'),
    )

    op.create_table(
        'ai_usage_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('action_type', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_ai_usage_events_user_date', 'ai_usage_events', ['user_id', 'entry_date'])

    op.create_table(
        'stripe_webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('stripe_event_id', sa.Text(), nullable=True),
        sa.Column('event_type', sa.Text(), nullable=True),
        sa.Column('payload', JSONType, nullable=False),
        sa.Column('processed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('process_result', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Text(), nullable=True),
        sa.Column('subscription_id', sa.Text(), nullable=True),
        sa.Column('subscription_status', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('stripe_event_id', name='uq_stripe_webhook_events_event_id'),
    )
    op.create_index('ix_stripe_webhook_events_event_type', 'stripe_webhook_events', ['event_type'])

    op.create_table(
        'subscription_reconcile_runs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('actor', sa.Text(), nullable=False),
        sa.Column('checked', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated', sa.Integer(), server_default='0', nullable=False),
        sa.Column('errors', sa.Integer(), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'admin_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('actor', sa.Text(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('target', sa.Text(), nullable=True),
        sa.Column('payload', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_admin_audit_log_action', 'admin_audit_log', ['action'])

    op.create_table(
        'alert_notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('alert_type', sa.Text(), nullable=False),
        sa.Column('severity', sa.Text(), nullable=False),
        sa.Column('payload', JSONType, nullable=False),
        sa.Column('delivered', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'ambassador_referrals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('ambassador_id', sa.Text(), nullable=True),
        sa.Column('ref_code', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_ambassador_referrals_email', 'ambassador_referrals', ['email'])


def downgrade() -> None:
    op.drop_index('ix_ambassador_referrals_email', table_name='ambassador_referrals')
    op.drop_table('ambassador_referrals')
    op.drop_table('alert_notifications')
    op.drop_index('ix_admin_audit_log_action', table_name='admin_audit_log')
    op.drop_table('admin_audit_log')
    op.drop_table('subscription_reconcile_runs')
    op.drop_index('ix_stripe_webhook_events_event_type', table_name='stripe_webhook_events')
    op.drop_table('stripe_webhook_events')
    op.drop_index('ix_ai_usage_events_user_date', table_name='ai_usage_events')
    op.drop_table('ai_usage_events')
    op.drop_table('daily_weights')
    op.drop_index('ix_food_entries_user_date', table_name='food_entries')
    op.drop_table('food_entries')
    op.drop_table('calorie_goals')
    op.drop_index('ix_user_device_links_device_id', table_name='user_device_links')
    op.drop_index('ix_user_device_links_user_id', table_name='user_device_links')
    op.drop_table('user_device_links')
    op.drop_table('device_identities')
    op.drop_index('ix_user_profiles_stripe_subscription_id', table_name='user_profiles')
    op.drop_index('ix_user_profiles_stripe_customer_id', table_name='user_profiles')
    op.drop_index('ix_user_profiles_email', table_name='user_profiles')
    op.drop_table('user_profiles')
