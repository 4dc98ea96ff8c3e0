from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Completed sale document.

    IMMUTABLE once written. total_amount_cents == paid_amount_cents + credit_amount_cents
    and equals the sum of item line totals.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_created", "branch_id", "created_at"),
        db.Index("ix_sales_customer_id", "customer_id"),
        db.Index("ix_sales_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)  # snapshot for reports

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False)
    credit_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)  # CASH, CREDIT, MOBILE, CARD, MIXED

    status = db.Column(db.String(16), nullable=False, default="COMPLETED")  # COMPLETED, VOID
    receipt_no = db.Column(db.String(16), nullable=True)
    client_txn_id = db.Column(db.String(128), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, index=True)

    items = db.relationship(
        "SaleItem",
        backref=db.backref("sale", lazy=True),
        lazy=True,
        order_by="SaleItem.line_no",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "credit_amount_cents": self.credit_amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "receipt_no": self.receipt_no,
            "client_txn_id": self.client_txn_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class SaleItem(db.Model):
    """Line item snapshot on a sale (name and price are frozen at sale time)."""
    __tablename__ = "sale_items"

    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), primary_key=True)
    line_no = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    name_snapshot = db.Column(db.String(255), nullable=False)
    unit_used = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    kg_calculated = db.Column(db.Float, nullable=False)
    price_per_kg_snapshot_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_no": self.line_no,
            "product_id": self.product_id,
            "name_snapshot": self.name_snapshot,
            "unit_used": self.unit_used,
            "quantity": self.quantity,
            "kg_calculated": self.kg_calculated,
            "price_per_kg_snapshot_cents": self.price_per_kg_snapshot_cents,
            "line_total_cents": self.line_total_cents,
        }
