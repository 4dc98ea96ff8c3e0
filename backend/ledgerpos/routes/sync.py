# Overview: Flask API routes for the sync queue view (inspect, run, retry, clean up).

from flask import Blueprint, current_app, jsonify, request

from ..core import get_core
from ..errors import LedgerError, http_status


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.get("/queue")
def list_queue_route():
    core = get_core()
    limit = request.args.get("limit", default=200, type=int)
    limit = max(1, min(limit, 1000))
    include_payload = request.args.get("include_payload", "").lower() in ("1", "true", "yes")
    try:
        entries = core.outbox.list_entries(status=request.args.get("status"), limit=limit)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({
        "entries": [e.to_dict(include_payload=include_payload) for e in entries],
        "counts": core.outbox.counts(),
    }), 200


@sync_bp.get("/counts")
def counts_route():
    return jsonify(get_core().outbox.counts()), 200


@sync_bp.post("/run")
def run_pass_route():
    """Operator "sync now"; runs even when background sync is disabled."""
    core = get_core()
    try:
        report = core.sync.sync_pass(force=True)
    except Exception:
        current_app.logger.exception("Manual sync pass failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"report": report.to_dict(), "counts": core.outbox.counts()}), 200


@sync_bp.post("/retry-failed")
def retry_failed_route():
    core = get_core()
    count = core.outbox.retry_failed()
    if core.worker is not None:
        core.worker.trigger()
    return jsonify({"requeued": count}), 200


@sync_bp.post("/clear-synced")
def clear_synced_route():
    return jsonify({"deleted": get_core().outbox.clear_synced()}), 200


@sync_bp.delete("/queue/<int:entry_id>")
def delete_entry_route(entry_id: int):
    try:
        get_core().outbox.delete(entry_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"deleted": entry_id}), 200
