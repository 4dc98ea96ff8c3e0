# Overview: Demo master data (customer, supplier, catalog, opening stock) for a fresh device.

from __future__ import annotations

import logging

from ..models import Customer, Product, Supplier

log = logging.getLogger(__name__)

DEMO_CUSTOMER = {"id": "101", "name": "John Doe", "phone": "555-0123", "credit_limit_cents": 50000}
DEMO_SUPPLIER = {"id": "SUP-001", "name": "Mogadishu Wholesale", "phone": "252-61-1234567"}

# (id, name, category, base unit, selling units, bag size, price/kg cents, cost/kg cents)
DEMO_PRODUCTS = [
    ("1", "Bariis", "grains", "KG", ["KG", "BAG"], 50.0, 120, 100),
    ("2", "Sonkor", "grains", "KG", ["KG", "BAG"], 50.0, 90, 80),
    ("3", "Bur", "grains", "KG", ["KG", "BAG"], 25.0, 60, 50),
    ("4", "Saliid 1L", "oil", "PCS", ["PCS"], None, 500, 450),
    ("5", "Basiir", "produce", "KG", ["KG"], None, 70, 50),
    ("7", "Baasto", "pantry", "KG", ["KG"], None, 75, 55),
    ("9", "Caano 1L", "dairy", "PCS", ["PCS"], None, 110, 90),
    ("11", "Biyo 1.5L", "beverages", "PCS", ["PCS"], None, 50, 30),
    ("13", "Saabuun", "hygiene", "PCS", ["PCS"], None, 40, 25),
    ("18", "Jik 1L", "cleaning", "PCS", ["PCS"], None, 90, 60),
]

OPENING_STOCK = {"1": 100, "2": 50, "4": 24, "5": 40, "7": 60, "9": 30, "11": 100, "13": 80, "18": 25}


def seed_demo(core, *, branch_id: str | None = None, with_remote: bool = True) -> dict:
    """
    Seed demo data through the balance engine so every invariant holds.

    Opening stock is recorded as ADJUSTMENT movements. Existing rows are left
    alone, so running it twice is harmless.
    """
    branch = branch_id or core.branch_id
    engine = core.engine
    created = {"customers": 0, "suppliers": 0, "products": 0, "movements": 0}

    if core.store.get(Customer, DEMO_CUSTOMER["id"]) is None:
        engine.register_customer(
            DEMO_CUSTOMER["name"],
            phone=DEMO_CUSTOMER["phone"],
            credit_limit_cents=DEMO_CUSTOMER["credit_limit_cents"],
            customer_id=DEMO_CUSTOMER["id"],
        )
        created["customers"] += 1

    if core.store.get(Supplier, DEMO_SUPPLIER["id"]) is None:
        engine.register_supplier(DEMO_SUPPLIER["name"], phone=DEMO_SUPPLIER["phone"], supplier_id=DEMO_SUPPLIER["id"])
        created["suppliers"] += 1

    for pid, name, category, base_unit, units, bag_size, price, cost in DEMO_PRODUCTS:
        if engine.has_product(pid):
            continue
        engine.register_product(
            Product(
                id=pid,
                name=name,
                category_id=category,
                base_unit=base_unit,
                selling_units=units,
                bag_size_kg=bag_size,
                price_per_kg_cents=price,
                cost_per_kg_cents=cost,
                is_active=True,
            )
        )
        created["products"] += 1
        opening = OPENING_STOCK.get(pid)
        if opening:
            engine.adjust_stock(pid, branch, "ADJUSTMENT", float(opening), note="Opening stock")
            created["movements"] += 1

    if with_remote:
        core.remote.ensure_customer(
            core.company_id,
            DEMO_CUSTOMER["id"],
            name=DEMO_CUSTOMER["name"],
            credit_limit_cents=DEMO_CUSTOMER["credit_limit_cents"],
        )

    log.info("Demo seed: %s", created)
    return created
