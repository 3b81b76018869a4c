"""add calorie rollover settings and autopilot columns

Revision ID: 003
Revises: 002
Create Date: 2025-03-10 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('user_profiles', sa.Column('rollover_enabled', sa.Boolean(), server_default=sa.false(), nullable=False))
    op.add_column('user_profiles', sa.Column('rollover_cap', sa.Integer(), server_default='500', nullable=False))
    op.add_column('user_profiles', sa.Column('autopilot_enabled', sa.Boolean(), server_default=sa.false(), nullable=False))
    op.add_column('user_profiles', sa.Column('autopilot_mode', sa.Text(), server_default='weight', nullable=False))
    op.add_column('user_profiles', sa.Column('autopilot_last_review_week', sa.Date(), nullable=True))


def downgrade() -> None:
    op.drop_column('user_profiles', 'autopilot_last_review_week')
    op.drop_column('user_profiles', 'autopilot_mode')
    op.drop_column('user_profiles', 'autopilot_enabled')
    op.drop_column('user_profiles', 'rollover_cap')
    op.drop_column('user_profiles', 'rollover_enabled')
