from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Credit customer.

    ``current_balance_cents`` is a denormalized mirror of the latest
    ``balance_after_cents`` in the customer ledger. Only the balance engine
    writes it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_phone", "phone"),
        db.Index("ix_customers_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, default="")
    address = db.Column(db.String(255), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, BLOCKED

    last_purchase_at = db.Column(db.DateTime, nullable=True)
    last_payment_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "credit_limit_cents": self.credit_limit_cents,
            "current_balance_cents": self.current_balance_cents,
            "status": self.status,
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "last_payment_at": to_utc_z(self.last_payment_at),
            "created_at": to_utc_z(self.created_at),
        }


class CustomerLedgerEntry(db.Model):
    """
    Append-only customer ledger.

    TYPES: SALE, PAYMENT, ADJUSTMENT, RETURN, VOID
    amount_cents is signed: positive increases debt, negative settles it.

    IMMUTABLE: rows are never updated or deleted. A VOID is a new row.
    Invariant per customer, ordered by sequence:
        balance_after[i] == balance_after[i-1] + amount[i]   (seeded at 0)
    """
    __tablename__ = "customer_ledger"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "sequence", name="uq_customer_ledger_customer_seq"),
        db.Index("ix_customer_ledger_customer_created", "customer_id", "created_at"),
        db.Index("ix_customer_ledger_reference_id", "reference_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=False, index=True)
    branch_id = db.Column(db.String(64), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.String(128), nullable=False)
    payment_channel = db.Column(db.String(32), nullable=True)  # CASH, EVC, BANK_TRANSFER
    payment_reference = db.Column(db.String(128), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, index=True)

    @property
    def party_id(self) -> str:
        return self.customer_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "sequence": self.sequence,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reference_id": self.reference_id,
            "payment_channel": self.payment_channel,
            "payment_reference": self.payment_reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """Supplier; positive ``current_balance_cents`` means we owe them."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        db.Index("ix_suppliers_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "current_balance_cents": self.current_balance_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class SupplierLedgerEntry(db.Model):
    """
    Append-only payables ledger.

    TYPES: PURCHASE, PAYMENT, ADJUSTMENT, RETURN, VOID
    +purchase (we owe more), -payment (we owe less). Same running-sum
    discipline as the customer ledger.
    """
    __tablename__ = "supplier_ledger"
    __table_args__ = (
        db.UniqueConstraint("supplier_id", "sequence", name="uq_supplier_ledger_supplier_seq"),
        db.Index("ix_supplier_ledger_supplier_created", "supplier_id", "created_at"),
        db.Index("ix_supplier_ledger_reference_id", "reference_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = db.Column(db.String(64), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.String(128), nullable=False)
    payment_channel = db.Column(db.String(32), nullable=True)  # CASH, EVC, BANK_TRANSFER, CHECK
    payment_reference = db.Column(db.String(128), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, index=True)

    @property
    def party_id(self) -> str:
        return self.supplier_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "branch_id": self.branch_id,
            "sequence": self.sequence,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "balance_after_cents": self.balance_after_cents,
            "reference_id": self.reference_id,
            "payment_channel": self.payment_channel,
            "payment_reference": self.payment_reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
