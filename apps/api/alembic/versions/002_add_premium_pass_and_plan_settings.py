"""add admin premium pass columns and plan settings singleton

Revision ID: 002
Revises: 001
Create Date: 2025-02-03 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('user_profiles', sa.Column('premium_pass', sa.Boolean(), server_default=sa.false(), nullable=False))
    op.add_column('user_profiles', sa.Column('premium_pass_expires_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('user_profiles', sa.Column('premium_pass_note', sa.Text(), nullable=True))
    op.add_column('user_profiles', sa.Column('premium_pass_granted_at', sa.DateTime(timezone=True), nullable=True))

    op.create_table(
        'app_admin_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('free_food_entries_per_day', sa.Integer(), nullable=True),
        sa.Column('free_ai_actions_per_day', sa.Integer(), nullable=True),
        sa.Column('free_history_days', sa.Integer(), nullable=True),
        sa.Column('monthly_price_usd', sa.Integer(), nullable=True),
        sa.Column('yearly_price_usd', sa.Integer(), nullable=True),
        sa.Column('monthly_upgrade_url', sa.Text(), nullable=True),
        sa.Column('yearly_upgrade_url', sa.Text(), nullable=True),
        sa.Column('manage_subscription_url', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('app_admin_settings')
    op.drop_column('user_profiles', 'premium_pass_granted_at')
    op.drop_column('user_profiles', 'premium_pass_note')
    op.drop_column('user_profiles', 'premium_pass_expires_at')
    op.drop_column('user_profiles', 'premium_pass')
