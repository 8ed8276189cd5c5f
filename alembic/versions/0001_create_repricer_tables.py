"""Initial schema - token, price history and job log tables

Revision ID: 0001_create_repricer_tables
Revises:
Create Date: 2025-10-20

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_create_repricer_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'erp_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=False),
        sa.Column('client_id', sa.String(length=255), nullable=True),
        sa.Column('client_secret', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('gold_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('platinum_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_price_history_date'), 'price_history', ['date'], unique=True)

    op.create_table(
        'execution_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('updated_products', sa.Integer(), nullable=False),
        sa.Column('failed_products', sa.Integer(), nullable=False),
        sa.Column('gold_ratio', sa.Float(), nullable=True),
        sa.Column('platinum_ratio', sa.Float(), nullable=True),
        sa.Column('execution_reason', sa.String(length=50), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('skipped_reason', sa.String(length=255), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_execution_logs_date'), 'execution_logs', ['date'], unique=True)
    op.create_index(op.f('ix_execution_logs_status'), 'execution_logs', ['status'], unique=False)

    op.create_table(
        'platform_sync_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('product_count', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_platform_sync_logs_id'), 'platform_sync_logs', ['id'], unique=False)
    op.create_index(op.f('ix_platform_sync_logs_synced_at'), 'platform_sync_logs', ['synced_at'], unique=False)
    op.create_index(op.f('ix_platform_sync_logs_status'), 'platform_sync_logs', ['status'], unique=False)

    op.create_table(
        'keepalive_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('refreshed', sa.Boolean(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_keepalive_logs_status'), 'keepalive_logs', ['status'], unique=False)
    op.create_index(op.f('ix_keepalive_logs_created_at'), 'keepalive_logs', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_keepalive_logs_created_at'), table_name='keepalive_logs')
    op.drop_index(op.f('ix_keepalive_logs_status'), table_name='keepalive_logs')
    op.drop_table('keepalive_logs')

    op.drop_index(op.f('ix_platform_sync_logs_status'), table_name='platform_sync_logs')
    op.drop_index(op.f('ix_platform_sync_logs_synced_at'), table_name='platform_sync_logs')
    op.drop_index(op.f('ix_platform_sync_logs_id'), table_name='platform_sync_logs')
    op.drop_table('platform_sync_logs')

    op.drop_index(op.f('ix_execution_logs_status'), table_name='execution_logs')
    op.drop_index(op.f('ix_execution_logs_date'), table_name='execution_logs')
    op.drop_table('execution_logs')

    op.drop_index(op.f('ix_price_history_date'), table_name='price_history')
    op.drop_table('price_history')

    op.drop_table('erp_tokens')
