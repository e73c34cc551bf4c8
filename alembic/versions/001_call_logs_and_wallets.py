"""Call logs and minutes wallets

Revision ID: 001
Revises: 
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Finished calls, one row per call that reached teardown
    op.create_table(
        'call_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('caller_id', sa.String(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_call_logs_id'), 'call_logs', ['id'], unique=False)
    op.create_index(op.f('ix_call_logs_caller_id'), 'call_logs', ['caller_id'], unique=False)

    # Remaining talk time per caller
    op.create_table(
        'minutes_wallets',
        sa.Column('caller_id', sa.String(), nullable=False),
        sa.Column('seconds', sa.Integer(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('caller_id')
    )
    op.create_index(op.f('ix_minutes_wallets_caller_id'), 'minutes_wallets', ['caller_id'], unique=False)


def downgrade() -> None:
    op.drop_table('minutes_wallets')
    op.drop_table('call_logs')
