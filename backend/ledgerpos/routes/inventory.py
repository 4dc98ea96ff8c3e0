# backend/ledgerpos/routes/inventory.py
"""
Product catalog and stock routes.

Stock quantities are canonical kg. An adjustment may be given either as
``kg_change`` or as a signed ``quantity`` in a selling ``unit`` (KG, BAG,
PCS); BAG converts through the product's bag size.
"""
from flask import Blueprint, current_app, jsonify, request

from ..core import get_core
from ..errors import ConflictOrValidation, LedgerError, NotFound, http_status
from ..models import Product
from ..units import norm_unit, to_canonical_kg
from ..validation import float_field, int_field, require_fields, str_field


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/products")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "id", "name")
        base_unit = norm_unit(payload.get("base_unit") or "KG").value
        selling_units = [norm_unit(u).value for u in (payload.get("selling_units") or [base_unit])]
        product = Product(
            id=str_field(payload, "id", required=True),
            name=str_field(payload, "name", required=True),
            category_id=str_field(payload, "category_id"),
            barcode=str_field(payload, "barcode"),
            image=str_field(payload, "image"),
            base_unit=base_unit,
            selling_units=selling_units,
            bag_size_kg=float_field(payload, "bag_size_kg"),
            price_per_kg_cents=int_field(payload, "price_per_kg_cents", default=0),
            cost_per_kg_cents=int_field(payload, "cost_per_kg_cents", default=0),
            is_active=bool(payload.get("is_active", True)),
        )
        core.engine.register_product(product)
        return jsonify({"product": product.to_dict()}), 201
    except ValueError as e:
        return jsonify(ConflictOrValidation(str(e)).to_dict()), 422
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products")
def list_products_route():
    core = get_core()
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    return jsonify({"products": [p.to_dict() for p in core.store.list_products(active_only=active_only)]}), 200


@inventory_bp.post("/adjust")
def adjust_stock_route():
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "product_id", "type")
        product_id = str_field(payload, "product_id", required=True)
        branch_id = str_field(payload, "branch_id") or core.branch_id

        kg_change = float_field(payload, "kg_change")
        if kg_change is None:
            quantity = float_field(payload, "quantity", required=True)
            product = core.store.get(Product, product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
            kg_change = to_canonical_kg(
                payload.get("unit") or product.base_unit,
                quantity,
                product.bag_size_kg,
                core.default_bag_size_kg,
            )

        write = core.engine.adjust_stock(
            product_id,
            branch_id,
            str_field(payload, "type", required=True),
            kg_change,
            note=str_field(payload, "note"),
            reference_id=str_field(payload, "reference_id"),
        )
        return jsonify({
            "movement": write.movement.to_dict(),
            "stock_kg": write.stock_kg,
            "committed_to_memory": write.committed_to_memory,
            "committed_to_disk": write.committed_to_disk,
        }), 201
    except ValueError as e:
        return jsonify(ConflictOrValidation(str(e)).to_dict()), 422
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock")
def branch_stock_route():
    core = get_core()
    branch_id = request.args.get("branch_id") or core.branch_id
    levels = core.engine.branch_stock(branch_id)
    return jsonify({
        "branch_id": branch_id,
        "items": [{"product_id": pid, "stock_kg": kg} for pid, kg in sorted(levels.items())],
    }), 200


@inventory_bp.get("/stock/<product_id>")
def product_stock_route(product_id: str):
    core = get_core()
    branch_id = request.args.get("branch_id") or core.branch_id
    if not core.engine.has_product(product_id):
        return jsonify(NotFound(f"Product {product_id} not found").to_dict()), 404
    return jsonify({
        "product_id": product_id,
        "branch_id": branch_id,
        "stock_kg": core.engine.get_stock(product_id, branch_id),
    }), 200


@inventory_bp.get("/movements/<product_id>")
def movements_route(product_id: str):
    core = get_core()
    branch_id = request.args.get("branch_id") or core.branch_id
    movements = core.store.stock_movements(product_id, branch_id)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200
