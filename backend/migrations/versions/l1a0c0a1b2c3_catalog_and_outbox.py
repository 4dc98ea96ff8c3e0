"""catalog and outbox

Revision ID: l1a0c0a1b2c3
Revises:
Create Date: 2026-09-28 00:00:00.000000

Creates the first device-local tables:
- products: catalog with per-kg pricing and selling units
- offline_outbox_queue: domain events awaiting remote application

client_txn_id is unique; it is the idempotency key carried to the remote
store and must never be regenerated.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l1a0c0a1b2c3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('image', sa.String(length=255), nullable=True),
        sa.Column('base_unit', sa.String(length=8), nullable=False),
        sa.Column('selling_units', sa.JSON(), nullable=False),
        sa.Column('bag_size_kg', sa.Float(), nullable=True),
        sa.Column('price_per_kg_cents', sa.Integer(), nullable=False),
        sa.Column('cost_per_kg_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_barcode', 'products', ['barcode'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])

    # Append-mostly; rows only move PENDING -> SYNCED/FAILED
    op.create_table(
        'offline_outbox_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_txn_id', sa.String(length=128), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_offline_outbox_queue_client_txn_id', 'offline_outbox_queue', ['client_txn_id'], unique=True)
    op.create_index('ix_offline_outbox_queue_event_type', 'offline_outbox_queue', ['event_type'])
    op.create_index('ix_offline_outbox_queue_status', 'offline_outbox_queue', ['status'])
    op.create_index('ix_outbox_status_created', 'offline_outbox_queue', ['status', 'created_at'])


def downgrade():
    op.drop_index('ix_outbox_status_created', table_name='offline_outbox_queue')
    op.drop_index('ix_offline_outbox_queue_status', table_name='offline_outbox_queue')
    op.drop_index('ix_offline_outbox_queue_event_type', table_name='offline_outbox_queue')
    op.drop_index('ix_offline_outbox_queue_client_txn_id', table_name='offline_outbox_queue')
    op.drop_table('offline_outbox_queue')

    op.drop_index('ix_products_category_id', table_name='products')
    op.drop_index('ix_products_barcode', table_name='products')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
