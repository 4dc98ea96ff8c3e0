"""customer ledger, stock and sales

Revision ID: l2b1d4e5f6a7
Revises: l1a0c0a1b2c3
Create Date: 2026-09-29 00:00:00.000000

Adds the receivables and stock ledgers and the sale documents:
- customers / customer_ledger: running-sum ledger, balance cached on customers
- inventory / stock_movements: per (product, branch) aggregate + movement log
- sales / sale_items: immutable sale documents with price snapshots

Ledger and movement rows are append-only; (party, sequence) and
(product, branch, sequence) are unique so replay order is unambiguous.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l2b1d4e5f6a7'
down_revision = 'l1a0c0a1b2c3'
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # customers + customer_ledger
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('last_purchase_at', sa.DateTime(), nullable=True),
        sa.Column('last_payment_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_phone', 'customers', ['phone'])
    op.create_index('ix_customers_status', 'customers', ['status'])

    op.create_table(
        'customer_ledger',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('reference_id', sa.String(length=128), nullable=False),
        sa.Column('payment_channel', sa.String(length=32), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'sequence', name='uq_customer_ledger_customer_seq'),
    )
    op.create_index('ix_customer_ledger_customer_id', 'customer_ledger', ['customer_id'])
    op.create_index('ix_customer_ledger_branch_id', 'customer_ledger', ['branch_id'])
    op.create_index('ix_customer_ledger_type', 'customer_ledger', ['type'])
    op.create_index('ix_customer_ledger_created_at', 'customer_ledger', ['created_at'])
    op.create_index('ix_customer_ledger_customer_created', 'customer_ledger', ['customer_id', 'created_at'])
    op.create_index('ix_customer_ledger_reference_id', 'customer_ledger', ['reference_id'])

    # ============================================================================
    # inventory + stock_movements
    # ============================================================================
    op.create_table(
        'inventory',
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('stock_kg', sa.Float(), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('product_id', 'branch_id'),
    )
    op.create_index('ix_inventory_branch_id', 'inventory', ['branch_id'])
    op.create_index('ix_inventory_last_updated', 'inventory', ['last_updated'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('kg_change', sa.Float(), nullable=False),
        sa.Column('reference_id', sa.String(length=128), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'branch_id', 'sequence', name='uq_stock_movements_product_branch_seq'),
    )
    op.create_index('ix_stock_movements_branch_id', 'stock_movements', ['branch_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_branch', 'stock_movements', ['product_id', 'branch_id'])
    op.create_index('ix_stock_movements_reference_id', 'stock_movements', ['reference_id'])

    # ============================================================================
    # sales + sale_items
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False),
        sa.Column('credit_amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('receipt_no', sa.String(length=16), nullable=True),
        sa.Column('client_txn_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sales_branch_created', 'sales', ['branch_id', 'created_at'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_client_txn_id', 'sales', ['client_txn_id'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])

    op.create_table(
        'sale_items',
        sa.Column('sale_id', sa.String(length=64), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False),
        sa.Column('unit_used', sa.String(length=8), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('kg_calculated', sa.Float(), nullable=False),
        sa.Column('price_per_kg_snapshot_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('sale_id', 'line_no'),
    )
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'])


def downgrade():
    op.drop_index('ix_sale_items_product_id', table_name='sale_items')
    op.drop_table('sale_items')

    for name in ('ix_sales_created_at', 'ix_sales_client_txn_id', 'ix_sales_status',
                 'ix_sales_customer_id', 'ix_sales_branch_created'):
        op.drop_index(name, table_name='sales')
    op.drop_table('sales')

    for name in ('ix_stock_movements_reference_id', 'ix_stock_movements_product_branch',
                 'ix_stock_movements_created_at', 'ix_stock_movements_type',
                 'ix_stock_movements_product_id', 'ix_stock_movements_branch_id'):
        op.drop_index(name, table_name='stock_movements')
    op.drop_table('stock_movements')

    op.drop_index('ix_inventory_last_updated', table_name='inventory')
    op.drop_index('ix_inventory_branch_id', table_name='inventory')
    op.drop_table('inventory')

    for name in ('ix_customer_ledger_reference_id', 'ix_customer_ledger_customer_created',
                 'ix_customer_ledger_created_at', 'ix_customer_ledger_type',
                 'ix_customer_ledger_branch_id', 'ix_customer_ledger_customer_id'):
        op.drop_index(name, table_name='customer_ledger')
    op.drop_table('customer_ledger')

    op.drop_index('ix_customers_status', table_name='customers')
    op.drop_index('ix_customers_phone', table_name='customers')
    op.drop_index('ix_customers_name', table_name='customers')
    op.drop_table('customers')
