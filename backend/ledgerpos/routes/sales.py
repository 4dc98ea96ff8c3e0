# Overview: Flask API routes for sale completion; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..core import get_core
from ..errors import ConflictOrValidation, LedgerError, NotFound, http_status
from ..models import Product, Sale
from ..services import sales_service
from ..validation import float_field, int_field, str_field


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _build_cart(core, items: list):
    if not isinstance(items, list) or not items:
        raise ConflictOrValidation("items must be a non-empty list")
    cart = core.new_cart()
    for raw in items:
        if not isinstance(raw, dict):
            raise ConflictOrValidation("each item must be an object")
        product_id = str_field(raw, "product_id", required=True)
        product = core.store.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
        cart.add(product, float_field(raw, "quantity", required=True), raw.get("unit"))
    return cart


@sales_bp.post("")
def complete_sale_route():
    """
    Complete a sale and queue it for sync.

    Body: {items: [{product_id, quantity, unit}], customer_id?, payment_method,
    paid_now_cents?, client_txn_id?}
    """
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        cart = _build_cart(core, payload.get("items"))
        result = sales_service.complete_sale(
            core,
            cart,
            customer_id=str_field(payload, "customer_id"),
            payment_method=str_field(payload, "payment_method", default="CASH"),
            paid_now_cents=int_field(payload, "paid_now_cents", default=0),
            client_txn_id=str_field(payload, "client_txn_id"),
            branch_id=str_field(payload, "branch_id"),
        )
        return jsonify({
            "sale": result.sale.to_dict(),
            "client_txn_id": result.client_txn_id,
            "outbox_entry": result.outbox_entry.to_dict(),
            "ledger_entries": [e.to_dict() for e in result.ledger_entries],
            "committed_to_disk": result.committed_to_disk,
        }), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def recent_sales_route():
    core = get_core()
    limit = request.args.get("limit", default=50, type=int)
    limit = max(1, min(limit, 500))
    return jsonify({"sales": [s.to_dict() for s in sales_service.recent_sales(core, limit)]}), 200


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    core = get_core()
    sale = core.store.get(Sale, sale_id)
    if sale is None:
        return jsonify(NotFound(f"Sale {sale_id} not found").to_dict()), 404
    return jsonify({"sale": sale.to_dict()}), 200
