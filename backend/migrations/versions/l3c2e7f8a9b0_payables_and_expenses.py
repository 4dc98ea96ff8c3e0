"""payables and expenses

Revision ID: l3c2e7f8a9b0
Revises: l2b1d4e5f6a7
Create Date: 2026-10-02 00:00:00.000000

Adds supplier payables (same running-sum discipline as customer_ledger)
and branch operating expenses.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'l3c2e7f8a9b0'
down_revision = 'l2b1d4e5f6a7'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'suppliers',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_suppliers_name', 'suppliers', ['name'])
    op.create_index('ix_suppliers_status', 'suppliers', ['status'])

    op.create_table(
        'supplier_ledger',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('supplier_id', sa.String(length=64), nullable=False),
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
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('supplier_id', 'sequence', name='uq_supplier_ledger_supplier_seq'),
    )
    op.create_index('ix_supplier_ledger_supplier_id', 'supplier_ledger', ['supplier_id'])
    op.create_index('ix_supplier_ledger_branch_id', 'supplier_ledger', ['branch_id'])
    op.create_index('ix_supplier_ledger_type', 'supplier_ledger', ['type'])
    op.create_index('ix_supplier_ledger_created_at', 'supplier_ledger', ['created_at'])
    op.create_index('ix_supplier_ledger_supplier_created', 'supplier_ledger', ['supplier_id', 'created_at'])
    op.create_index('ix_supplier_ledger_reference_id', 'supplier_ledger', ['reference_id'])

    op.create_table(
        'expenses',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('payment_channel', sa.String(length=32), nullable=False),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('receipt_ref', sa.String(length=128), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expenses_branch_id', 'expenses', ['branch_id'])
    op.create_index('ix_expenses_category', 'expenses', ['category'])
    op.create_index('ix_expenses_created_at', 'expenses', ['created_at'])


def downgrade():
    op.drop_index('ix_expenses_created_at', table_name='expenses')
    op.drop_index('ix_expenses_category', table_name='expenses')
    op.drop_index('ix_expenses_branch_id', table_name='expenses')
    op.drop_table('expenses')

    for name in ('ix_supplier_ledger_reference_id', 'ix_supplier_ledger_supplier_created',
                 'ix_supplier_ledger_created_at', 'ix_supplier_ledger_type',
                 'ix_supplier_ledger_branch_id', 'ix_supplier_ledger_supplier_id'):
        op.drop_index(name, table_name='supplier_ledger')
    op.drop_table('supplier_ledger')

    op.drop_index('ix_suppliers_status', table_name='suppliers')
    op.drop_index('ix_suppliers_name', table_name='suppliers')
    op.drop_table('suppliers')
