from __future__ import annotations

from ..extensions import db


class Product(db.Model):
    """
    Sellable product master data.

    Prices are per canonical kg (cents). ``bag_size_kg`` is used to convert
    BAG quantities at cart construction time.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_barcode", "barcode"),
        db.Index("ix_products_category_id", "category_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category_id = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    image = db.Column(db.String(255), nullable=True)

    base_unit = db.Column(db.String(8), nullable=False, default="KG")  # KG, BAG, PCS
    selling_units = db.Column(db.JSON, nullable=False, default=list)
    bag_size_kg = db.Column(db.Float, nullable=True)

    price_per_kg_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_per_kg_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "barcode": self.barcode,
            "image": self.image,
            "base_unit": self.base_unit,
            "selling_units": list(self.selling_units or []),
            "bag_size_kg": self.bag_size_kg,
            "price_per_kg_cents": self.price_per_kg_cents,
            "cost_per_kg_cents": self.cost_per_kg_cents,
            "is_active": self.is_active,
        }
