# Overview: Flask API routes for reporting and expenses; parses input and returns JSON responses.

from datetime import date

from flask import Blueprint, current_app, jsonify, request

from ..core import get_core
from ..errors import ConflictOrValidation, LedgerError, http_status
from ..services import expense_service, reporting_service
from ..validation import datetime_arg, int_field, require_fields, str_field


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ConflictOrValidation(f"{name} must be YYYY-MM-DD") from None


@reports_bp.get("/aging")
def aging_route():
    try:
        as_of = datetime_arg(request.args.get("as_of"), "as_of")
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify(reporting_service.receivables_aging(get_core(), as_of=as_of)), 200


@reports_bp.get("/top-debtors")
def top_debtors_route():
    limit = request.args.get("limit", default=5, type=int)
    return jsonify({"customers": reporting_service.top_debtors(get_core(), max(1, min(limit, 100)))}), 200


@reports_bp.get("/low-stock")
def low_stock_route():
    threshold = request.args.get("threshold_kg", default=20.0, type=float)
    items = reporting_service.low_stock_items(
        get_core(),
        branch_id=request.args.get("branch_id"),
        threshold_kg=threshold,
    )
    return jsonify({"items": items}), 200


@reports_bp.get("/payables")
def payables_route():
    return jsonify(reporting_service.payables_summary(get_core())), 200


@reports_bp.get("/sales-history")
def sales_history_route():
    try:
        history = reporting_service.sales_history(
            get_core(),
            days=request.args.get("days", default=7, type=int),
            today=_date_arg("today"),
            branch_id=request.args.get("branch_id"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"history": history}), 200


@reports_bp.get("/daily-snapshot")
def daily_snapshot_route():
    try:
        snapshot = reporting_service.daily_snapshot(
            get_core(),
            day=_date_arg("date"),
            branch_id=request.args.get("branch_id"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify(snapshot), 200


@reports_bp.get("/expenses")
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            category=request.args.get("category"),
            start=datetime_arg(request.args.get("start"), "start"),
            end=datetime_arg(request.args.get("end"), "end"),
            branch_id=request.args.get("branch_id"),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({
        "expenses": [e.to_dict() for e in expenses],
        "total_cents": sum(e.amount_cents for e in expenses),
    }), 200


@reports_bp.get("/expenses/totals")
def expense_totals_route():
    return jsonify({
        "by_category": expense_service.totals_by_category(),
        "today_cents": expense_service.today_total(),
    }), 200


@reports_bp.post("/expenses")
def record_expense_route():
    payload = request.get_json(silent=True) or {}
    core = get_core()
    try:
        require_fields(payload, "category", "amount_cents", "description")
        expense = expense_service.record_expense(
            str_field(payload, "branch_id") or core.branch_id,
            str_field(payload, "category", required=True),
            int_field(payload, "amount_cents", required=True),
            str_field(payload, "description", required=True),
            payment_channel=str_field(payload, "payment_channel", default="CASH"),
            payment_reference=str_field(payload, "payment_reference"),
            receipt_ref=str_field(payload, "receipt_ref"),
            note=str_field(payload, "note"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500
