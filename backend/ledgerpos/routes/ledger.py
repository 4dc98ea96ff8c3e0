# Overview: Flask API routes for customer and supplier accounts; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..core import get_core
from ..errors import LedgerError, NotFound, http_status
from ..ids import make_reference_id
from ..models import Customer, Supplier
from ..validation import int_field, require_fields, str_field

"""
Amounts are integer cents. Entry amounts are signed: positive increases what
the party owes (customer) or what we owe (supplier), negative settles it.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _customer_view(core, customer: Customer) -> dict:
    data = customer.to_dict()
    account = core.engine.customer_account(customer.id)
    data["current_balance_cents"] = account.balance_cents
    data["credit_limit_cents"] = account.credit_limit_cents
    return data


def _supplier_view(core, supplier: Supplier) -> dict:
    data = supplier.to_dict()
    data["current_balance_cents"] = core.engine.get_supplier_balance(supplier.id)
    return data


def _write_response(write):
    return jsonify({
        "entry": write.entry.to_dict(),
        "committed_to_memory": write.committed_to_memory,
        "committed_to_disk": write.committed_to_disk,
    }), 201


# ----------------------------------------------------------------------
# Customers
# ----------------------------------------------------------------------

@ledger_bp.post("/customers")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "name")
        customer = core.engine.register_customer(
            str_field(payload, "name", required=True),
            phone=str_field(payload, "phone", default=""),
            credit_limit_cents=int_field(payload, "credit_limit_cents", default=0),
            address=str_field(payload, "address"),
            customer_id=str_field(payload, "id"),
        )
        return jsonify({"customer": _customer_view(core, customer)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/customers")
def list_customers_route():
    core = get_core()
    return jsonify({"customers": [_customer_view(core, c) for c in core.store.list_customers()]}), 200


@ledger_bp.get("/customers/<customer_id>")
def get_customer_route(customer_id: str):
    core = get_core()
    customer = core.store.get(Customer, customer_id)
    if customer is None:
        e = NotFound(f"Customer {customer_id} not found")
        return jsonify(e.to_dict()), 404
    return jsonify({"customer": _customer_view(core, customer)}), 200


@ledger_bp.get("/customers/<customer_id>/balance")
def customer_balance_route(customer_id: str):
    core = get_core()
    try:
        account = core.engine.customer_account(customer_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({
        "customer_id": customer_id,
        "balance_cents": account.balance_cents,
        "credit_limit_cents": account.credit_limit_cents,
        "available_credit_cents": account.credit_limit_cents - account.balance_cents,
    }), 200


@ledger_bp.get("/customers/<customer_id>/entries")
def customer_entries_route(customer_id: str):
    core = get_core()
    if core.store.get(Customer, customer_id) is None:
        return jsonify(NotFound(f"Customer {customer_id} not found").to_dict()), 404
    entries = core.store.customer_ledger(customer_id)
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200


@ledger_bp.post("/customers/<customer_id>/entries")
def append_customer_entry_route(customer_id: str):
    """
    Append a customer ledger entry (payments, adjustments, returns).

    Debt-increasing entries are checked against the credit limit (409).
    """
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "type", "amount_cents")
        entry_type = str_field(payload, "type", required=True)
        write = core.engine.append_customer_ledger_entry(
            customer_id,
            entry_type,
            int_field(payload, "amount_cents", required=True),
            str_field(payload, "reference_id") or make_reference_id(entry_type.upper()[:3]),
            branch_id=str_field(payload, "branch_id"),
            payment_channel=str_field(payload, "payment_channel"),
            payment_reference=str_field(payload, "payment_reference"),
            note=str_field(payload, "note"),
        )
        return _write_response(write)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to append customer ledger entry")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.put("/customers/<customer_id>/credit-limit")
def set_credit_limit_route(customer_id: str):
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        account = core.engine.set_credit_limit(
            customer_id,
            int_field(payload, "credit_limit_cents", required=True),
        )
        return jsonify({"customer_id": customer_id, "credit_limit_cents": account.credit_limit_cents}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)


@ledger_bp.get("/customers/<customer_id>/verify")
def verify_customer_route(customer_id: str):
    core = get_core()
    try:
        check = core.engine.verify_ledger("customer", customer_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({
        "customer_id": customer_id,
        "entries": check.entries,
        "replayed_cents": check.replayed_cents,
        "last_balance_after_cents": check.last_balance_after_cents,
        "cached_cents": check.cached_cents,
        "chain_ok": check.chain_ok,
        "ok": check.ok,
    }), 200


# ----------------------------------------------------------------------
# Suppliers
# ----------------------------------------------------------------------

@ledger_bp.post("/suppliers")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        supplier = core.engine.register_supplier(
            str_field(payload, "name", required=True),
            phone=str_field(payload, "phone"),
            email=str_field(payload, "email"),
            address=str_field(payload, "address"),
            notes=str_field(payload, "notes"),
            supplier_id=str_field(payload, "id"),
        )
        return jsonify({"supplier": _supplier_view(core, supplier)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/suppliers")
def list_suppliers_route():
    core = get_core()
    return jsonify({
        "suppliers": [_supplier_view(core, s) for s in core.store.list_suppliers()],
        "total_payables_cents": core.engine.total_payables(),
    }), 200


@ledger_bp.get("/suppliers/<supplier_id>")
def get_supplier_route(supplier_id: str):
    core = get_core()
    supplier = core.store.get(Supplier, supplier_id)
    if supplier is None:
        return jsonify(NotFound(f"Supplier {supplier_id} not found").to_dict()), 404
    return jsonify({"supplier": _supplier_view(core, supplier)}), 200


@ledger_bp.get("/suppliers/<supplier_id>/entries")
def supplier_entries_route(supplier_id: str):
    core = get_core()
    if core.store.get(Supplier, supplier_id) is None:
        return jsonify(NotFound(f"Supplier {supplier_id} not found").to_dict()), 404
    return jsonify({"entries": [e.to_dict() for e in core.store.supplier_ledger(supplier_id)]}), 200


@ledger_bp.post("/suppliers/<supplier_id>/entries")
def append_supplier_entry_route(supplier_id: str):
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "type", "amount_cents")
        entry_type = str_field(payload, "type", required=True)
        write = core.engine.append_supplier_ledger_entry(
            supplier_id,
            entry_type,
            int_field(payload, "amount_cents", required=True),
            str_field(payload, "reference_id") or make_reference_id(entry_type.upper()[:3]),
            branch_id=str_field(payload, "branch_id"),
            payment_channel=str_field(payload, "payment_channel"),
            payment_reference=str_field(payload, "payment_reference"),
            note=str_field(payload, "note"),
        )
        return _write_response(write)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to append supplier ledger entry")
        return jsonify({"error": "Internal server error"}), 500
