from __future__ import annotations

from ..extensions import db
from ledgerpos.time_utils import to_utc_z


class Inventory(db.Model):
    """
    Stock aggregate, one row per (product, branch).

    Created lazily on the first movement for the pair and updated in the same
    local transaction as every StockMovement insert. ``stock_kg`` may go
    negative (oversell is allowed at the point of sale).
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_branch_id", "branch_id"),
        db.Index("ix_inventory_last_updated", "last_updated"),
    )

    product_id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), primary_key=True)
    stock_kg = db.Column(db.Float, nullable=False, default=0.0)
    last_updated = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "stock_kg": self.stock_kg,
            "last_updated": to_utc_z(self.last_updated),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    TYPES: PURCHASE, SALE, RETURN, TRANSFER_OUT, TRANSFER_IN, ADJUSTMENT, WASTAGE
    kg_change is signed (+ in, - out) and already canonical.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", "sequence", name="uq_stock_movements_product_branch_seq"),
        db.Index("ix_stock_movements_product_branch", "product_id", "branch_id"),
        db.Index("ix_stock_movements_reference_id", "reference_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    branch_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    kg_change = db.Column(db.Float, nullable=False)
    reference_id = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "sequence": self.sequence,
            "type": self.type,
            "kg_change": self.kg_change,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
