# Overview: Selling-unit normalization into the canonical stock quantity (kg-equivalent).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


class Unit(str, Enum):
    KG = "KG"
    BAG = "BAG"
    PCS = "PCS"


def norm_unit(value) -> Unit:
    code = (str(value.value if isinstance(value, Unit) else value or "")).strip().upper()
    try:
        return Unit(code)
    except ValueError:
        raise ValueError(f"unknown unit {value!r}") from None


def to_canonical_kg(unit, quantity: float, bag_size_kg: float | None, default_bag_size_kg: float = 50.0) -> float:
    """
    Convert a quantity in a selling unit to canonical stock units.

    KG and PCS pass through 1:1 (PCS shares the single numeric stock field);
    BAG multiplies by the product's bag size, falling back to the configured
    default when the product has none.
    """
    u = norm_unit(unit)
    qty = float(quantity)
    if u is Unit.BAG:
        return qty * float(bag_size_kg or default_bag_size_kg)
    return qty


def line_total_cents(kg: float, price_per_kg_cents: int) -> int:
    """kg x price, nearest cent (half-up)."""
    raw = Decimal(str(kg)) * Decimal(int(price_per_kg_cents))
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
