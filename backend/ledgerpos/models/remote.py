"""
Remote (company-wide) store tables.

These live on the ``remote`` bind and are shared by every device of a
company. Only the sync engine writes them, and only inside one transaction
per outbox event. Every row is scoped by ``company_id``.
"""
from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


class RemoteSale(db.Model):
    __bind_key__ = "remote"
    __tablename__ = "remote_sales"

    company_id = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False)
    credit_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False)

    client_txn_id = db.Column(db.String(128), nullable=False, index=True)
    cashier_user_id = db.Column(db.String(64), nullable=True)
    created_at_device = db.Column(db.DateTime, nullable=False)
    created_at_server = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    synced_at = db.Column(db.DateTime, nullable=True)


class RemoteSaleItem(db.Model):
    __bind_key__ = "remote"
    __tablename__ = "remote_sale_items"

    company_id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), primary_key=True)
    line_no = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.String(64), nullable=False)
    name_snapshot = db.Column(db.String(255), nullable=False)
    unit_used = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    kg_calculated = db.Column(db.Float, nullable=False)
    price_per_kg_snapshot_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)


class RemoteCustomer(db.Model):
    """Remote balance cache; read-modify-written only inside a sync transaction."""
    __bind_key__ = "remote"
    __tablename__ = "remote_customers"

    company_id = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=True)
    credit_limit_cents = db.Column(db.Integer, nullable=True)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_at = db.Column(db.DateTime, nullable=True)
    last_payment_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "id": self.id,
            "name": self.name,
            "credit_limit_cents": self.credit_limit_cents,
            "current_balance_cents": self.current_balance_cents,
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "last_payment_at": to_utc_z(self.last_payment_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RemoteCustomerLedgerEntry(db.Model):
    __bind_key__ = "remote"
    __tablename__ = "remote_customer_ledger"
    __table_args__ = (
        db.Index("ix_remote_customer_ledger_customer", "company_id", "customer_id"),
    )

    company_id = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(96), primary_key=True)
    customer_id = db.Column(db.String(64), nullable=False)
    branch_id = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    reference_id = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    client_txn_id = db.Column(db.String(128), nullable=False)
    created_at_device = db.Column(db.DateTime, nullable=False)
    created_at_server = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reference_id": self.reference_id,
            "note": self.note,
            "client_txn_id": self.client_txn_id,
            "created_at_device": to_utc_z(self.created_at_device),
        }


class RemoteStockMovement(db.Model):
    __bind_key__ = "remote"
    __tablename__ = "remote_stock_movements"
    __table_args__ = (
        db.Index("ix_remote_stock_movements_product", "company_id", "branch_id", "product_id"),
    )

    company_id = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(192), primary_key=True)
    branch_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    kg_change = db.Column(db.Float, nullable=False)
    reference_id = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    client_txn_id = db.Column(db.String(128), nullable=False)
    user_id = db.Column(db.String(64), nullable=True)
    created_at_device = db.Column(db.DateTime, nullable=False)
    created_at_server = db.Column(db.DateTime, nullable=False, server_default=db.func.now())


class RemoteInventory(db.Model):
    """
    Remote stock counter per (company, branch, product).

    Only ever changed by SQL-side increments so concurrent devices commute.
    """
    __bind_key__ = "remote"
    __tablename__ = "remote_inventory"

    company_id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), primary_key=True)
    stock_kg = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, nullable=True)


class SyncLog(db.Model):
    """Idempotency marker: one row per applied client_txn_id."""
    __bind_key__ = "remote"
    __tablename__ = "sync_logs"

    company_id = db.Column(db.String(64), primary_key=True)
    client_txn_id = db.Column(db.String(128), primary_key=True)
    event_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="APPLIED")
    sale_id = db.Column(db.String(64), nullable=True)
    branch_id = db.Column(db.String(64), nullable=True)
    applied_at = db.Column(db.DateTime, nullable=False)
