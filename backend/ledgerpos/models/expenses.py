from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


EXPENSE_CATEGORIES = (
    "SALARY",
    "RENT",
    "ELECTRICITY",
    "WATER",
    "INTERNET",
    "TRANSPORT",
    "SUPPLIES",
    "MAINTENANCE",
    "TAX",
    "OTHER",
)


class Expense(db.Model):
    """Operating expense paid out of a branch."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_branch_id", "branch_id"),
        db.Index("ix_expenses_category", "category"),
        db.Index("ix_expenses_created_at", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), nullable=False)
    category = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payment_channel = db.Column(db.String(32), nullable=False)  # CASH, EVC, BANK_TRANSFER, CHECK
    payment_reference = db.Column(db.String(128), nullable=True)
    receipt_ref = db.Column(db.String(128), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_channel": self.payment_channel,
            "payment_reference": self.payment_reference,
            "receipt_ref": self.receipt_ref,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
