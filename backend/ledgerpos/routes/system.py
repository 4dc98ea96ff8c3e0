# backend/ledgerpos/routes/system.py
"""
System health endpoint.

Reports local store reachability, remote store reachability, balance engine
state and outbox depth so the UI can show a sync indicator.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..core import get_core
from ..extensions import db
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_local_store() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except Exception:
        current_app.logger.exception("Local store health check failed")
        return {"status": "unhealthy", "error": "Database error"}


@system_bp.get("/api/health")
def health():
    core = get_core()
    local = check_local_store()
    remote_ok = core.sync.is_online()
    counts = core.outbox.counts() if local["status"] == "healthy" else {}

    return jsonify({
        "status": "ok" if local["status"] == "healthy" else "degraded",
        "time": to_utc_z(utcnow()),
        "local_store": local,
        "remote_store": {"reachable": remote_ok},
        "engine": {"state": core.engine.state.value},
        "backlog_size": core.store.backlog_size,
        "outbox": counts,
        "sync": {
            "enabled": core.sync.settings.enabled,
            "in_flight": core.sync.in_flight,
            "worker_running": bool(core.worker and core.worker.running),
        },
    }), 200
