# Overview: Sync engine; drains the outbox into the remote store, one remote transaction per row.

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AlreadyApplied, LedgerError, NotFound
from ..extensions import db
from .outbox_service import OutboxQueue
from .remote_store import RemoteStore
"""
Sync Invariants (authoritative)

- At most one pass runs per device at a time (single-flight); a pass that
  finds another in flight, the engine disabled, or the remote unreachable is
  skipped without touching the queue.
- Rows are applied sequentially. Each row gets attempts += 1 and
  last_attempt_at before its remote apply.
- Success or AlreadyApplied -> SYNCED (last_error cleared). Any failure ->
  FAILED with the message; other rows in the batch are unaffected.
- A row whose local status update cannot be written is counted in
  local_errors and left for a later pass; the rest of the batch still runs.
- FAILED rows are not retried automatically; OutboxQueue.retry_failed() is
  the operator action that returns them to PENDING.
- The sync engine never writes the local ledger, balances or inventory.
"""

log = logging.getLogger(__name__)

SKIP_DISABLED = "disabled"
SKIP_OFFLINE = "offline"
SKIP_IN_FLIGHT = "in_flight"

SUPPORTED_EVENT_TYPES = ("SALE",)


@dataclass(frozen=True)
class SyncSettings:
    company_id: str
    branch_id: str
    user_id: str | None = None
    interval_ms: int = 15000
    max_batch: int = 10
    enabled: bool = False
    drain_order: str = "oldest"
    reconnect_probe_ms: int = 2000

    @classmethod
    def from_config(cls, config) -> "SyncSettings":
        order = str(config.get("SYNC_DRAIN_ORDER", "oldest")).strip().lower()
        if order not in ("oldest", "newest"):
            raise ValueError(f"SYNC_DRAIN_ORDER must be 'oldest' or 'newest', got {order!r}")
        return cls(
            company_id=config["COMPANY_ID"],
            branch_id=config["BRANCH_ID"],
            user_id=config.get("USER_ID"),
            interval_ms=int(config.get("SYNC_INTERVAL_MS", 15000)),
            max_batch=int(config.get("SYNC_MAX_BATCH", 10)),
            enabled=bool(config.get("SYNC_ENABLED", False)),
            drain_order=order,
            reconnect_probe_ms=int(config.get("SYNC_RECONNECT_PROBE_MS", 2000)),
        )


@dataclass
class SyncReport:
    selected: int = 0
    synced: int = 0
    already_applied: int = 0
    failed: int = 0
    local_errors: int = 0
    skipped: str | None = None
    errors: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class SyncEngine:
    def __init__(self, outbox: OutboxQueue, remote: RemoteStore, settings: SyncSettings, *, online_check=None):
        self.outbox = outbox
        self.remote = remote
        self.settings = settings
        self.online_check = online_check
        self._in_flight = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def is_online(self) -> bool:
        if self.online_check is not None:
            return bool(self.online_check())
        return self.remote.is_reachable()

    def sync_pass(self, *, force: bool = False) -> SyncReport:
        """
        Run one pass over up to ``max_batch`` PENDING rows.

        ``force`` ignores the enabled flag (operator "sync now"); the online
        and single-flight guards still apply.
        """
        if not (self.settings.enabled or force):
            return SyncReport(skipped=SKIP_DISABLED)
        if not self._in_flight.acquire(blocking=False):
            log.debug("Sync pass skipped: another pass is in flight")
            return SyncReport(skipped=SKIP_IN_FLIGHT)
        try:
            if not self.is_online():
                log.debug("Sync pass skipped: remote store offline")
                return SyncReport(skipped=SKIP_OFFLINE)
            return self._drain()
        finally:
            self._in_flight.release()

    def _drain(self) -> SyncReport:
        rows = self.outbox.list_pending(
            self.settings.max_batch,
            event_types=SUPPORTED_EVENT_TYPES,
            newest_first=self.settings.drain_order == "newest",
        )
        report = SyncReport(selected=len(rows))
        work = [(row.id, row.client_txn_id, row.payload) for row in rows]

        for entry_id, txn_id, payload in work:
            try:
                self._sync_row(report, entry_id, txn_id, payload)
            except (SQLAlchemyError, NotFound) as exc:
                db.session.rollback()
                log.warning("Sync: could not record local status for %s: %s", txn_id, exc)
                report.local_errors += 1
                report.errors[txn_id] = f"local status update failed: {exc}"

        if report.selected:
            log.info(
                "Sync pass: selected=%d synced=%d already_applied=%d failed=%d local_errors=%d",
                report.selected,
                report.synced,
                report.already_applied,
                report.failed,
                report.local_errors,
            )
        return report

    def _sync_row(self, report: SyncReport, entry_id: int, txn_id: str, payload: dict) -> None:
        self.outbox.mark_attempt(entry_id)
        try:
            self.remote.apply_sale(
                self.settings.company_id,
                self.settings.branch_id,
                self.settings.user_id,
                txn_id,
                payload,
            )
        except AlreadyApplied:
            log.info("Sync: %s already applied remotely; marking synced", txn_id)
            self.outbox.mark_synced(entry_id)
            report.already_applied += 1
            return
        except LedgerError as exc:
            log.warning("Sync: %s failed (%s): %s", txn_id, exc.kind.value, exc)
            self.outbox.mark_failed(entry_id, str(exc))
            report.failed += 1
            report.errors[txn_id] = str(exc)
            return
        except Exception as exc:
            log.exception("Sync: unexpected error applying %s", txn_id)
            self.outbox.mark_failed(entry_id, str(exc) or exc.__class__.__name__)
            report.failed += 1
            report.errors[txn_id] = str(exc)
            return

        self.outbox.mark_synced(entry_id)
        report.synced += 1


class SyncWorker:
    """
    Background thread driving sync passes for one device.

    Runs a pass when started, then every ``interval_ms``. While the remote is
    unreachable it probes every ``reconnect_probe_ms`` and runs a pass as soon
    as it comes back.
    """

    def __init__(self, app, engine: SyncEngine):
        self.app = app
        self.engine = engine
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._was_online: bool | None = None
        self.last_report: SyncReport | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="ledgerpos-sync", daemon=True)
        self._thread.start()
        log.info(
            "Sync worker started (interval=%sms, batch=%s, order=%s)",
            self.engine.settings.interval_ms,
            self.engine.settings.max_batch,
            self.engine.settings.drain_order,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling passes; a pass already running finishes its batch."""
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def trigger(self) -> None:
        self._wake.set()

    def notify_online(self) -> None:
        """Network-up hint from the host; runs a pass without waiting for the next probe."""
        log.info("Sync: online notification received")
        self._wake.set()

    def _run_pass(self) -> None:
        try:
            self.last_report = self.engine.sync_pass()
        except Exception:
            log.exception("Sync pass crashed")
        finally:
            db.session.remove()

    def _run(self) -> None:
        settings = self.engine.settings
        interval = settings.interval_ms / 1000.0
        probe = settings.reconnect_probe_ms / 1000.0

        with self.app.app_context():
            self._run_pass()
            next_pass = time.monotonic() + interval

            while not self._stop.is_set():
                online = self.engine.is_online()
                if online and self._was_online is False:
                    log.info("Sync: remote store reachable again; running a pass")
                    self._run_pass()
                    next_pass = time.monotonic() + interval
                self._was_online = online

                remaining = max(0.0, next_pass - time.monotonic())
                woke = self._wake.wait(remaining if online else min(probe, remaining))
                self._wake.clear()
                if self._stop.is_set():
                    break
                if woke or time.monotonic() >= next_pass:
                    self._run_pass()
                    next_pass = time.monotonic() + interval

        log.info("Sync worker stopped")
